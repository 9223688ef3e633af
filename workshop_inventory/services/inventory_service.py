import logging
import time
from typing import Any, Dict, List, Optional
from uuid import UUID

from tortoise import timezone
from tortoise.transactions import in_transaction

from workshop_inventory.core.auth import CurrentUser
from workshop_inventory.core.config import MOVEMENT_HISTORY_LIMIT
from workshop_inventory.core.errors import (
    ConflictError,
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from workshop_inventory.events.outbox_utility import notify
from workshop_inventory.models.adjustment import AdjustmentStatus, StockAdjustment, StockAdjustmentItem
from workshop_inventory.models.inventory import BatchStatus, InventoryBatch, InventoryMovement, MovementType, Product
from workshop_inventory.services.stock_rules import effective_threshold, stock_bucket_for, stock_status_for

log = logging.getLogger("workshop_inventory.inventory")

BATCH_STRATEGIES = ("FIFO", "LIFO")


def format_product(product: Product) -> Dict[str, Any]:
    stock = product.stock_quantity or 0
    return {
        "id": str(product.id),
        "sku": product.sku or "",
        "name": product.name,
        "brand": product.brand,
        "price": float(product.base_price or 0),
        "salePrice": float(product.sale_price) if product.sale_price is not None else None,
        "costPrice": float(product.cost_price or 0),
        "stock": stock,
        "minStock": effective_threshold(product.low_stock_threshold),
        "status": stock_bucket_for(stock, product.low_stock_threshold),
    }


async def list_products(user: CurrentUser) -> List[Dict[str, Any]]:
    """Dealer's approved catalogue with the computed stock bucket."""
    dealer_id = user.require_dealer()
    products = await Product.filter(dealer_id=dealer_id, status="approved").order_by("name")
    return [format_product(p) for p in products]


async def list_movements(user: CurrentUser, limit: int = MOVEMENT_HISTORY_LIMIT) -> List[InventoryMovement]:
    dealer_id = user.require_dealer()
    return await (
        InventoryMovement.filter(dealer_id=dealer_id)
        .order_by("-created_at")
        .limit(limit)
        .prefetch_related("product")
    )


async def _notify_inventory_change(dealer_id: str, product_id, user_id: str, change_type: str) -> None:
    data = {"productId": str(product_id), "type": change_type, "triggeredBy": user_id, "dealerId": dealer_id}
    await notify("inventory:changed", data, dealer_id=dealer_id, aggregate_type="product", aggregate_id=str(product_id))
    await notify("inventory:adjusted", data, dealer_id=dealer_id, aggregate_type="product", aggregate_id=str(product_id))


async def adjust_stock(
    user: CurrentUser,
    product_id: UUID,
    quantity: int,
    adjustment_type: str,
    reason: Optional[str] = None,
) -> Product:
    """
    Manual stock correction on the product total. No batch is touched; the
    single product update and its movement row commit together.
    """
    dealer_id = user.require_dealer()
    if adjustment_type not in ("in", "out"):
        raise ValidationError("Adjustment type must be 'in' or 'out'")
    if not quantity:
        raise ValidationError("Quantity must be non-zero")

    change = abs(quantity) if adjustment_type == "in" else -abs(quantity)

    async with in_transaction() as conn:
        product = await Product.filter(id=product_id).using_db(conn).select_for_update().first()
        if not product or product.dealer_id != dealer_id:
            raise NotFoundError("Product not found")

        before = product.stock_quantity or 0
        after = before + change
        if after < 0:
            raise InsufficientStockError(abs(change), before, product.name)

        product.stock_quantity = after
        product.stock_status = stock_status_for(after, product.low_stock_threshold)
        await product.save(update_fields=["stock_quantity", "stock_status", "updated_at"], using_db=conn)

        await InventoryMovement.create(
            dealer_id=dealer_id,
            product_id=product.id,
            movement_type=MovementType.STOCK_IN if change > 0 else MovementType.STOCK_OUT,
            quantity_before=before,
            quantity_change=change,
            quantity_after=after,
            reference_type="manual_adjustment",
            reason=reason or "Manual Adjustment",
            performed_by=user.user_id,
            using_db=conn,
        )

    log.info(f"Stock of {product.id} adjusted {before} -> {after} by {user.user_id}")
    await _notify_inventory_change(dealer_id, product.id, user.user_id, adjustment_type)
    return product


async def list_batches(user: CurrentUser, product_id: UUID, strategy: str = "FIFO") -> List[InventoryBatch]:
    """Batches that still hold stock, in the order they would be consumed."""
    dealer_id = user.require_dealer()
    strategy = (strategy or "FIFO").upper()
    if strategy not in BATCH_STRATEGIES:
        raise ValidationError("Strategy must be FIFO or LIFO")

    ordering = ("received_date", "created_at") if strategy == "FIFO" else ("-received_date", "-created_at")
    return await InventoryBatch.filter(
        dealer_id=dealer_id,
        product_id=product_id,
        status=BatchStatus.ACTIVE,
        current_quantity__gt=0,
    ).order_by(*ordering)


# ----------- Stock adjustment documents -----------

async def create_adjustment(
    user: CurrentUser,
    reason: Optional[str],
    notes: Optional[str],
    items: List[Dict[str, Any]],
) -> StockAdjustment:
    """
    Records a physical count against what the system holds. Nothing moves
    until an admin approves the document.
    """
    dealer_id = user.require_dealer()
    if not items:
        raise ValidationError("Items are required")

    async with in_transaction() as conn:
        adjustment = await StockAdjustment.create(
            dealer_id=dealer_id,
            adjustment_number=f"ADJ-{int(time.time() * 1000)}",
            reason=reason,
            notes=notes,
            performed_by=user.user_id,
            status=AdjustmentStatus.PENDING,
            total_items=len(items),
            using_db=conn,
        )

        for item in items:
            actual = item["actual_quantity"]
            if actual < 0:
                raise ValidationError("Counted quantity cannot be negative")

            product = await Product.get_or_none(id=item["product_id"]).using_db(conn)
            if not product or product.dealer_id != dealer_id:
                raise NotFoundError(f"Product {item['product_id']} not found")

            batch_id = item.get("batch_id")
            if batch_id:
                batch = await InventoryBatch.get_or_none(id=batch_id).using_db(conn)
                if not batch or batch.dealer_id != dealer_id or batch.product_id != product.id:
                    raise NotFoundError(f"Batch {batch_id} not found")
                system_quantity = batch.current_quantity
            else:
                system_quantity = product.stock_quantity or 0

            await StockAdjustmentItem.create(
                adjustment_id=adjustment.id,
                product_id=product.id,
                batch_id=batch_id,
                system_quantity=system_quantity,
                actual_quantity=actual,
                difference=actual - system_quantity,
                reason=item.get("reason") or reason,
                using_db=conn,
            )

    log.info(f"Stock adjustment {adjustment.adjustment_number} created with {len(items)} item(s)")
    return adjustment


async def list_adjustments(user: CurrentUser) -> List[StockAdjustment]:
    dealer_id = user.require_dealer()
    return await (
        StockAdjustment.filter(dealer_id=dealer_id)
        .order_by("-created_at")
        .prefetch_related("items", "items__product")
    )


async def _apply_adjustment_item(
    item: StockAdjustmentItem, adjustment: StockAdjustment, dealer_id: str, user_id: str, conn: Any
) -> None:
    product = await Product.filter(id=item.product_id).using_db(conn).select_for_update().first()
    if not product or product.dealer_id != dealer_id:
        raise NotFoundError(f"Product {item.product_id} not found")

    product_before = product.stock_quantity or 0
    batch = None
    if item.batch_id:
        batch = await InventoryBatch.filter(id=item.batch_id).using_db(conn).select_for_update().first()
        if batch is not None and batch.dealer_id != dealer_id:
            raise NotFoundError(f"Batch {item.batch_id} not found")

    if batch is not None:
        # Differences are recomputed against live quantities, stock may have moved since the count
        before = batch.current_quantity
        change = item.actual_quantity - before
        batch.current_quantity = item.actual_quantity
        if batch.current_quantity == 0:
            batch.status = BatchStatus.DEPLETED
        elif batch.status == BatchStatus.DEPLETED:
            batch.status = BatchStatus.ACTIVE
        await batch.save(update_fields=["current_quantity", "status", "updated_at"], using_db=conn)
        product_after = max(product_before + change, 0)
    else:
        before = product_before
        change = item.actual_quantity - before
        product_after = item.actual_quantity

    if change:
        await InventoryMovement.create(
            dealer_id=dealer_id,
            product_id=product.id,
            batch_id=batch.id if batch is not None else None,
            movement_type=MovementType.STOCK_IN if change > 0 else MovementType.STOCK_OUT,
            quantity_before=before,
            quantity_change=change,
            quantity_after=before + change,
            reference_type="adjustment",
            reference_id=str(adjustment.id),
            reason=f"Stock Adjustment Approved: {adjustment.reason or 'Manual Adjustment'}",
            performed_by=user_id,
            using_db=conn,
        )

    product.stock_quantity = product_after
    product.stock_status = stock_status_for(product_after, product.low_stock_threshold)
    await product.save(update_fields=["stock_quantity", "stock_status", "updated_at"], using_db=conn)


async def process_adjustment(
    user: CurrentUser,
    adjustment_id: UUID,
    status: AdjustmentStatus,
    reason: Optional[str] = None,
) -> StockAdjustment:
    """Approves (applies) or rejects a pending adjustment document atomically."""
    if not user.is_admin:
        raise ForbiddenError("Access denied. Admin only.")
    if status not in (AdjustmentStatus.APPROVED, AdjustmentStatus.REJECTED):
        raise ValidationError("Invalid status")
    dealer_id = user.require_dealer()

    touched = []
    async with in_transaction() as conn:
        adjustment = await StockAdjustment.filter(id=adjustment_id, dealer_id=dealer_id).using_db(conn).select_for_update().first()
        if not adjustment:
            raise NotFoundError("Adjustment not found")
        if adjustment.status != AdjustmentStatus.PENDING:
            raise ConflictError(f"Adjustment is already {getattr(adjustment.status, 'value', adjustment.status)}")

        adjustment.approved_by = user.user_id
        adjustment.approved_at = timezone.now()

        if status == AdjustmentStatus.REJECTED:
            adjustment.status = AdjustmentStatus.REJECTED
            adjustment.rejection_reason = reason
        else:
            items = await StockAdjustmentItem.filter(adjustment_id=adjustment.id).using_db(conn)
            for item in items:
                await _apply_adjustment_item(item, adjustment, dealer_id, user.user_id, conn)
                touched.append(item.product_id)
            adjustment.status = AdjustmentStatus.APPROVED

        await adjustment.save(using_db=conn)

    log.info(f"Stock adjustment {adjustment.adjustment_number} {adjustment.status.value} by {user.user_id}")
    for product_id in dict.fromkeys(touched):
        await _notify_inventory_change(dealer_id, product_id, user.user_id, "adjustment")
    return adjustment
