import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from workshop_inventory.core.auth import CurrentUser, get_current_user
from workshop_inventory.core.errors import WorkshopError
from workshop_inventory.schemas.inventory import (
    AdjustmentCreateRequest,
    AdjustmentDecisionRequest,
    AdjustmentItemResponse,
    AdjustmentResponse,
    BatchResponse,
    MovementResponse,
    ProductStockResponse,
    StockAdjustRequest,
)
from workshop_inventory.schemas.response import SuccessResponse
from workshop_inventory.services import inventory_service

log = logging.getLogger("uvicorn")
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

router = APIRouter()


def _movement_data(movement) -> dict:
    return MovementResponse(
        id=movement.id,
        product_id=movement.product_id,
        product_name=getattr(movement.product, "name", None),
        batch_id=movement.batch_id,
        movement_type=getattr(movement.movement_type, "value", movement.movement_type),
        quantity_before=movement.quantity_before,
        quantity_change=movement.quantity_change,
        quantity_after=movement.quantity_after,
        reference_type=movement.reference_type,
        reference_id=movement.reference_id,
        reason=movement.reason,
        performed_by=movement.performed_by,
        created_at=movement.created_at,
    ).model_dump(mode="json")


def _adjustment_data(adjustment, items=()) -> dict:
    return AdjustmentResponse(
        id=adjustment.id,
        adjustment_number=adjustment.adjustment_number,
        reason=adjustment.reason,
        notes=adjustment.notes,
        status=getattr(adjustment.status, "value", adjustment.status),
        total_items=adjustment.total_items,
        performed_by=adjustment.performed_by,
        approved_by=adjustment.approved_by,
        approved_at=adjustment.approved_at,
        rejection_reason=adjustment.rejection_reason,
        created_at=adjustment.created_at,
        items=[
            AdjustmentItemResponse(
                id=item.id,
                product_id=item.product_id,
                product_name=getattr(item.product, "name", None),
                batch_id=item.batch_id,
                system_quantity=item.system_quantity,
                actual_quantity=item.actual_quantity,
                difference=item.difference,
                reason=item.reason,
            )
            for item in items
        ],
    ).model_dump(mode="json")


@router.get("", response_model=SuccessResponse)
async def list_inventory(movements: bool = False, user: CurrentUser = Depends(get_current_user)):
    """
    Lists the dealer's products with their stock bucket, or with
    ``?movements=true`` the most recent stock movements.
    """
    if movements:
        rows = await inventory_service.list_movements(user)
        return SuccessResponse(data=[_movement_data(m) for m in rows])

    products = await inventory_service.list_products(user)
    return SuccessResponse(data=products)


@router.post("/adjust", response_model=SuccessResponse)
async def adjust_stock_endpoint(payload: StockAdjustRequest, user: CurrentUser = Depends(get_current_user)):
    """Manual stock correction on a product total (no batch logic)."""
    try:
        product = await inventory_service.adjust_stock(
            user, payload.product_id, payload.quantity, payload.type, payload.reason
        )
        data = ProductStockResponse(
            id=product.id,
            name=product.name,
            stock_quantity=product.stock_quantity,
            stock_status=getattr(product.stock_status, "value", product.stock_status),
        ).model_dump(mode="json")
        return SuccessResponse(data=data)
    except WorkshopError as e:
        log.error(f"Stock adjustment for {payload.product_id} rejected: {e.message}")
        raise


@router.get("/batches", response_model=SuccessResponse)
async def list_batches_endpoint(
    product_id: UUID = Query(..., alias="productId"),
    strategy: str = "FIFO",
    user: CurrentUser = Depends(get_current_user),
):
    """Batches still holding stock, in FIFO (default) or LIFO order."""
    batches = await inventory_service.list_batches(user, product_id, strategy)
    data = [
        BatchResponse(
            id=b.id,
            product_id=b.product_id,
            batch_number=b.batch_number,
            received_date=b.received_date,
            initial_quantity=b.initial_quantity,
            current_quantity=b.current_quantity,
            sold_quantity=b.sold_quantity,
            unit_cost_price=b.unit_cost_price,
            status=getattr(b.status, "value", b.status),
        ).model_dump(mode="json")
        for b in batches
    ]
    return SuccessResponse(data=data)


@router.get("/adjustments", response_model=SuccessResponse)
async def list_adjustments_endpoint(user: CurrentUser = Depends(get_current_user)):
    adjustments = await inventory_service.list_adjustments(user)
    return SuccessResponse(data=[_adjustment_data(a, a.items) for a in adjustments])


@router.post("/adjustments", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_adjustment_endpoint(payload: AdjustmentCreateRequest, user: CurrentUser = Depends(get_current_user)):
    """Records a stock count; inventory only changes once an admin approves it."""
    try:
        items = [item.model_dump() for item in payload.items]
        adjustment = await inventory_service.create_adjustment(user, payload.reason, payload.notes, items)
        return SuccessResponse(data=_adjustment_data(adjustment))
    except WorkshopError as e:
        log.error(f"Stock adjustment creation rejected: {e.message}")
        raise


@router.post("/adjustments/approve", response_model=SuccessResponse)
async def process_adjustment_endpoint(payload: AdjustmentDecisionRequest, user: CurrentUser = Depends(get_current_user)):
    try:
        adjustment = await inventory_service.process_adjustment(
            user, payload.adjustment_id, payload.status, payload.reason
        )
        return SuccessResponse(data=_adjustment_data(adjustment))
    except WorkshopError as e:
        log.error(f"Stock adjustment {payload.adjustment_id} decision rejected: {e.message}")
        raise
