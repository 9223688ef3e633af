from enum import Enum
from tortoise import fields, models
import uuid


class AdjustmentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class StockAdjustment(models.Model):
    """A stock count document; items only touch inventory once approved."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    dealer_id = fields.CharField(max_length=64)
    adjustment_number = fields.CharField(max_length=64)
    reason = fields.CharField(max_length=255, null=True)
    notes = fields.TextField(null=True)
    status = fields.CharEnumField(AdjustmentStatus, default=AdjustmentStatus.PENDING)
    total_items = fields.IntField(default=0)
    performed_by = fields.CharField(max_length=64, null=True)
    approved_by = fields.CharField(max_length=64, null=True)
    approved_at = fields.DatetimeField(null=True)
    rejection_reason = fields.CharField(max_length=255, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "stock_adjustments"
        indexes = [
            ("dealer_id", "created_at"),
        ]


class StockAdjustmentItem(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    adjustment = fields.ForeignKeyField("models.StockAdjustment", related_name="items")
    product = fields.ForeignKeyField("models.Product", related_name="adjustment_items")
    batch = fields.ForeignKeyField(
        "models.InventoryBatch", related_name="adjustment_items", null=True, on_delete=fields.SET_NULL
    )
    system_quantity = fields.IntField() # What the system believed at count time
    actual_quantity = fields.IntField() # What was physically counted
    difference = fields.IntField()
    reason = fields.CharField(max_length=255, null=True)

    class Meta:
        table = "stock_adjustment_items"
