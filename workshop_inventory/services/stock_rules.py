"""
Stock rules shared by every flow that moves inventory.

Nothing here touches the database: callers load and lock rows, these helpers
decide what to do with them.
"""
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from workshop_inventory.core.config import DEFAULT_LOW_STOCK_THRESHOLD
from workshop_inventory.core.errors import InsufficientStockError, ValidationError
from workshop_inventory.models.inventory import StockStatus


@dataclass
class BatchAllocation:
    """Quantity drawn from a single batch during a FIFO deduction"""
    batch: Any
    take: int
    quantity_before: int

    @property
    def quantity_after(self) -> int:
        return self.quantity_before - self.take


def effective_threshold(threshold: Optional[int]) -> int:
    # 0 is a legitimate threshold, only a missing value falls back
    return DEFAULT_LOW_STOCK_THRESHOLD if threshold is None else threshold


def stock_status_for(quantity: int, threshold: Optional[int] = None) -> StockStatus:
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= effective_threshold(threshold):
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def stock_bucket_for(quantity: int, threshold: Optional[int] = None) -> str:
    """Hyphenated bucket label used by the inventory listing."""
    return stock_status_for(quantity, threshold).value.replace("_", "-")


def plan_fifo_deduction(batches: Sequence[Any], quantity: int, product_name: Optional[str] = None) -> List[BatchAllocation]:
    """
    Greedily consume ``quantity`` from ``batches``.

    ``batches`` must already be ordered oldest-received first and expose a
    ``current_quantity`` attribute. The full amount is checked before any
    allocation is produced, so an insufficient total raises without a partial
    plan. The returned takes sum to ``quantity`` exactly and no take exceeds its
    batch's remaining quantity.
    """
    if quantity <= 0:
        raise ValidationError("Quantity must be a positive integer")

    available = sum(max(batch.current_quantity, 0) for batch in batches)
    if available < quantity:
        raise InsufficientStockError(quantity, available, product_name)

    allocations = []
    remaining = quantity
    for batch in batches:
        if remaining <= 0:
            break
        on_hand = batch.current_quantity
        if on_hand <= 0:
            continue
        take = min(on_hand, remaining)
        allocations.append(BatchAllocation(batch=batch, take=take, quantity_before=on_hand))
        remaining -= take

    return allocations
