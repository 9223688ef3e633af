from enum import Enum
from tortoise import fields, models
import uuid


class StockStatus(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class BatchStatus(str, Enum):
    ACTIVE = "active"
    DEPLETED = "depleted" # Fully consumed, kept for traceability
    INACTIVE = "inactive"


class MovementType(str, Enum):
    STOCK_IN = "stock_in"
    STOCK_OUT = "stock_out"


class Product(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    dealer_id = fields.CharField(max_length=64, null=True)
    name = fields.CharField(max_length=255)
    sku = fields.CharField(max_length=64, null=True)
    brand = fields.CharField(max_length=128, null=True)
    base_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    sale_price = fields.DecimalField(max_digits=12, decimal_places=2, null=True) # Overrides base_price when set
    cost_price = fields.DecimalField(max_digits=12, decimal_places=2, null=True)
    # Denormalized running total, kept equal to the sum of active batch quantities
    stock_quantity = fields.IntField(default=0)
    low_stock_threshold = fields.IntField(null=True)
    stock_status = fields.CharEnumField(StockStatus, default=StockStatus.OUT_OF_STOCK)
    status = fields.CharField(max_length=32, default="approved") # Catalog approval state
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "products"
        indexes = [
            ("dealer_id",),
            ("dealer_id", "status"),
        ]


class InventoryBatch(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    dealer_id = fields.CharField(max_length=64)
    product = fields.ForeignKeyField("models.Product", related_name="batches")
    batch_number = fields.CharField(max_length=64, null=True)
    received_date = fields.DatetimeField()
    initial_quantity = fields.IntField()
    current_quantity = fields.IntField()
    sold_quantity = fields.IntField(default=0)
    unit_cost_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = fields.CharEnumField(BatchStatus, default=BatchStatus.ACTIVE)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "inventory_batches"
        indexes = [
            ("product_id", "status", "received_date"), # FIFO scan
            ("dealer_id",),
        ]


class InventoryMovement(models.Model):
    """
    Append-only stock ledger. Rows are never updated or deleted; a reversal is
    recorded as a new movement in the opposite direction.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    dealer_id = fields.CharField(max_length=64)
    product = fields.ForeignKeyField("models.Product", related_name="movements")
    batch = fields.ForeignKeyField(
        "models.InventoryBatch", related_name="movements", null=True, on_delete=fields.SET_NULL
    )
    movement_type = fields.CharEnumField(MovementType)
    quantity_before = fields.IntField()
    quantity_change = fields.IntField()
    quantity_after = fields.IntField()
    reference_type = fields.CharField(max_length=32, null=True) # e.g., 'requisition', 'adjustment'
    reference_id = fields.CharField(max_length=64, null=True)
    reason = fields.CharField(max_length=255, null=True)
    notes = fields.TextField(null=True)
    performed_by = fields.CharField(max_length=64, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "inventory_movements"
        indexes = [
            ("dealer_id", "created_at"),
            ("reference_type", "reference_id"),
        ]
