from tortoise import fields, models
import uuid


class JobCard(models.Model):
    """A workshop service order for a customer vehicle (read-only from this service)."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    dealer_id = fields.CharField(max_length=64)
    service_number = fields.CharField(max_length=64, null=True) # Ticket number shown to the workshop
    technician_id = fields.CharField(max_length=64, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "job_cards"
        indexes = [
            ("dealer_id",),
        ]
