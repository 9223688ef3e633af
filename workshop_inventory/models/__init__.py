# workshop_inventory/models/__init__.py
from .workshop import JobCard
from .inventory import Product, InventoryBatch, InventoryMovement, StockStatus, BatchStatus, MovementType
from .requisition import ServiceRequisition, RequisitionStatus
from .adjustment import StockAdjustment, StockAdjustmentItem, AdjustmentStatus
from .outbox import OutboxEvent

# Export all models
__all__ = [
    "JobCard",
    "Product",
    "InventoryBatch",
    "InventoryMovement",
    "StockStatus",
    "BatchStatus",
    "MovementType",
    "ServiceRequisition",
    "RequisitionStatus",
    "StockAdjustment",
    "StockAdjustmentItem",
    "AdjustmentStatus",
    "OutboxEvent",
]
