from tortoise import fields, models
import uuid


class OutboxEvent(models.Model):
    """
    Persisted realtime notification. Written after the business transaction
    commits and relayed to websocket subscribers by the outbox relay; kept
    afterwards so clients that missed the push can replay it.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    dealer_id = fields.CharField(max_length=64, null=True) # Tenant whose subscribers receive it
    aggregate_type = fields.CharField(max_length=64) # e.g., 'requisition', 'product'
    aggregate_id = fields.CharField(max_length=64, null=True) # ID of the entity that generated the event
    event_type = fields.CharField(max_length=128) # e.g., 'requisition:approved'
    payload = fields.JSONField() # The actual event data
    published = fields.BooleanField(default=False)
    attempts = fields.IntField(default=0)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "outbox_events"
        indexes = [
            ("published", "created_at"),
            ("dealer_id", "created_at"),
        ]
