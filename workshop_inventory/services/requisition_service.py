import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from tortoise import timezone
from tortoise.transactions import in_transaction

from workshop_inventory.core.auth import CurrentUser
from workshop_inventory.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from workshop_inventory.events.outbox_utility import notify
from workshop_inventory.models.inventory import BatchStatus, InventoryBatch, InventoryMovement, MovementType, Product
from workshop_inventory.models.requisition import RequisitionStatus, ServiceRequisition
from workshop_inventory.models.workshop import JobCard
from workshop_inventory.services.stock_rules import plan_fifo_deduction, stock_status_for

log = logging.getLogger("workshop_inventory.requisitions")

DECISIONS = (RequisitionStatus.APPROVED, RequisitionStatus.REJECTED)


def _value(status) -> str:
    return getattr(status, "value", status)


def _append_note(notes: Optional[str], line: str) -> str:
    return f"{notes}\n{line}" if notes else line


async def _lock_dealer_requisition(requisition_id: UUID, dealer_id: str, conn: Any) -> ServiceRequisition:
    """Loads and row-locks a requisition, hiding ones owned by other dealers."""
    requisition = await ServiceRequisition.filter(id=requisition_id).using_db(conn).select_for_update().first()
    if requisition is not None:
        job_card = await JobCard.get_or_none(id=requisition.job_card_id).using_db(conn)
        if job_card is not None and job_card.dealer_id == dealer_id:
            return requisition
    raise NotFoundError("Requisition not found")


async def _lock_dealer_product(product_id: UUID, dealer_id: str, conn: Any) -> Product:
    product = await Product.filter(id=product_id).using_db(conn).select_for_update().first()
    if not product or product.dealer_id != dealer_id:
        raise NotFoundError("Product not found")
    return product


async def _draw_stock_fifo(requisition: ServiceRequisition, dealer_id: str, user_id: str, conn: Any) -> List[InventoryMovement]:
    """
    Deducts the requisition quantity from the product's active batches, oldest
    received first, and writes one stock_out movement per batch touched.
    Runs inside the caller's transaction; any exception rolls the whole
    approval back.
    """
    product = await _lock_dealer_product(requisition.product_id, dealer_id, conn)

    batches = await (
        InventoryBatch.filter(
            product_id=product.id,
            dealer_id=dealer_id,
            status=BatchStatus.ACTIVE,
            current_quantity__gt=0,
        )
        .order_by("received_date", "created_at")
        .using_db(conn)
        .select_for_update()
    )

    # Raises before anything is written when the batches cannot cover the request
    allocations = plan_fifo_deduction(batches, requisition.quantity, product.name)

    movements = []
    for allocation in allocations:
        batch = allocation.batch
        batch.current_quantity = allocation.quantity_after
        batch.sold_quantity = (batch.sold_quantity or 0) + allocation.take
        if batch.current_quantity == 0:
            batch.status = BatchStatus.DEPLETED
        await batch.save(update_fields=["current_quantity", "sold_quantity", "status", "updated_at"], using_db=conn)

        movement = await InventoryMovement.create(
            dealer_id=dealer_id,
            product_id=product.id,
            batch_id=batch.id,
            movement_type=MovementType.STOCK_OUT,
            quantity_before=allocation.quantity_before,
            quantity_change=-allocation.take,
            quantity_after=allocation.quantity_after,
            reference_type="requisition",
            reference_id=str(requisition.id),
            reason="Service Requisition Approved",
            notes=f"Job Card ID: {requisition.job_card_id}",
            performed_by=user_id,
            using_db=conn,
        )
        movements.append(movement)

    new_stock = max((product.stock_quantity or 0) - requisition.quantity, 0)
    product.stock_quantity = new_stock
    product.stock_status = stock_status_for(new_stock, product.low_stock_threshold)
    await product.save(update_fields=["stock_quantity", "stock_status", "updated_at"], using_db=conn)

    return movements


async def update_requisition_status(
    user: CurrentUser,
    requisition_id: UUID,
    status: RequisitionStatus,
    reason: Optional[str] = None,
) -> ServiceRequisition:
    """
    Approves or rejects a pending requisition.

    Approval draws stock FIFO from batches. The status change, batch updates,
    movements and product aggregate commit together or not at all. Realtime
    notifications go out only after the commit and cannot undo it.
    """
    if not user.is_admin:
        raise ForbiddenError("Access denied. Admin only.")
    if status not in DECISIONS:
        raise ValidationError("Invalid status")
    dealer_id = user.require_dealer()

    async with in_transaction() as conn:
        requisition = await _lock_dealer_requisition(requisition_id, dealer_id, conn)

        if requisition.status != RequisitionStatus.PENDING:
            raise ConflictError(f"Requisition is already {_value(requisition.status)}")

        requisition.status = status
        requisition.approved_by = user.user_id
        requisition.approved_at = timezone.now()
        if reason:
            requisition.notes = _append_note(requisition.notes, f"Reason: {reason}")
        await requisition.save(using_db=conn)

        if status == RequisitionStatus.APPROVED:
            await _draw_stock_fifo(requisition, dealer_id, user.user_id, conn)

    log.info(f"Requisition {requisition.id} {_value(status)} by {user.user_id}")
    await _broadcast_status_change(requisition, dealer_id)
    return requisition


async def _broadcast_status_change(requisition: ServiceRequisition, dealer_id: str) -> None:
    """Post-commit notifications; nothing here may fail the request."""
    job_no = "N/A"
    try:
        job_card = await JobCard.get_or_none(id=requisition.job_card_id)
        if job_card and job_card.service_number:
            job_no = job_card.service_number
    except Exception as e:
        log.warning(f"Could not load job context for requisition {requisition.id}: {e}")

    group_id = str(requisition.requisition_group_id) if requisition.requisition_group_id else None
    status = _value(requisition.status)
    data = {
        "id": str(requisition.id),
        "status": status,
        "jobId": str(requisition.job_card_id),
        "jobNo": job_no,
        "groupId": group_id,
        "requisitionGroupId": group_id,
        "technicianId": requisition.staff_id,
        "dealerId": dealer_id,
    }

    event_type = "requisition:approved" if status == RequisitionStatus.APPROVED.value else "requisition:rejected"
    await notify(event_type, data, dealer_id=dealer_id, aggregate_type="requisition", aggregate_id=str(requisition.id))
    await notify("requisition:status_changed", data, dealer_id=dealer_id, aggregate_type="requisition", aggregate_id=str(requisition.id))
    if status == RequisitionStatus.APPROVED.value:
        await notify(
            "inventory:changed",
            {"productId": str(requisition.product_id), "triggeredBy": requisition.approved_by, "dealerId": dealer_id},
            dealer_id=dealer_id,
            aggregate_type="product",
            aggregate_id=str(requisition.product_id),
        )


async def create_requisitions(
    user: CurrentUser,
    job_card_id: UUID,
    items: List[Dict[str, Any]],
) -> Tuple[UUID, List[ServiceRequisition]]:
    """
    Submits a technician's parts cart. Every line becomes a pending requisition
    sharing one requisition_group_id; either all lines are created or none.
    """
    if not user.is_technician:
        raise ForbiddenError("Access denied. Workshop staff only.")
    dealer_id = user.require_dealer()
    if not items:
        raise ValidationError("Requisition must contain items.")

    staff_id = user.staff_id or user.user_id
    group_id = uuid.uuid4()
    created = []

    async with in_transaction() as conn:
        job_card = await JobCard.get_or_none(id=job_card_id).using_db(conn)
        if not job_card or job_card.dealer_id != dealer_id:
            raise NotFoundError("Job card not found")

        for item in items:
            quantity = item.get("quantity")
            quantity = 1 if quantity is None else int(quantity)
            if quantity <= 0:
                raise ValidationError("Quantity must be a positive integer")

            product = await Product.get_or_none(id=item["product_id"]).using_db(conn)
            if not product or product.dealer_id != dealer_id:
                raise NotFoundError(f"Product {item['product_id']} not found")

            price = product.sale_price or product.base_price or 0
            requisition = await ServiceRequisition.create(
                job_card_id=job_card.id,
                product_id=product.id,
                staff_id=staff_id,
                requisition_group_id=group_id,
                quantity=quantity,
                unit_price=price,
                total_price=price * quantity,
                notes=item.get("notes") or "",
                status=RequisitionStatus.PENDING,
                using_db=conn,
            )
            created.append(requisition)

    log.info(f"Requisition group {group_id} created with {len(created)} item(s) for job {job_card_id}")
    await notify(
        "requisition:created",
        {
            "groupId": str(group_id),
            "requisitionGroupId": str(group_id),
            "jobId": str(job_card.id),
            "jobNo": job_card.service_number or "N/A",
            "technicianId": staff_id,
            "itemCount": len(created),
            "dealerId": dealer_id,
        },
        dealer_id=dealer_id,
        aggregate_type="requisition",
        aggregate_id=str(group_id),
    )
    return group_id, created


async def list_requisitions(
    user: CurrentUser,
    status: Optional[RequisitionStatus] = None,
    job_card_id: Optional[UUID] = None,
) -> List[ServiceRequisition]:
    """Admins see the dealer's requisitions, technicians only their own."""
    dealer_id = user.require_dealer()
    query = ServiceRequisition.filter(job_card__dealer_id=dealer_id)

    if user.is_admin:
        if status:
            query = query.filter(status=status)
        if job_card_id:
            query = query.filter(job_card_id=job_card_id)
    elif user.is_technician:
        query = query.filter(staff_id=user.staff_id or user.user_id)
    else:
        raise ForbiddenError("Access denied. Workshop staff only.")

    return await query.order_by("-created_at").prefetch_related("product", "job_card")


async def return_requisition(user: CurrentUser, requisition_id: UUID) -> ServiceRequisition:
    """
    Puts the parts of an approved requisition back on the shelf.

    Each batch drawn by the approval is restored by the amount recorded in the
    movement ledger, with a matching stock_in movement; the product aggregate
    gets the full requisition quantity back.
    """
    if not user.is_admin:
        raise ForbiddenError("Access denied. Admin only.")
    dealer_id = user.require_dealer()

    async with in_transaction() as conn:
        requisition = await _lock_dealer_requisition(requisition_id, dealer_id, conn)
        if requisition.status != RequisitionStatus.APPROVED:
            raise ConflictError(f"Cannot return requisition in {_value(requisition.status)} status")

        product = await _lock_dealer_product(requisition.product_id, dealer_id, conn)
        drawn = await InventoryMovement.filter(
            reference_type="requisition",
            reference_id=str(requisition.id),
            movement_type=MovementType.STOCK_OUT,
        ).order_by("created_at").using_db(conn)

        restored = 0
        for movement in drawn:
            if movement.batch_id is None:
                continue
            batch = await InventoryBatch.filter(id=movement.batch_id).using_db(conn).select_for_update().first()
            if batch is None:
                continue
            quantity = -movement.quantity_change
            before = batch.current_quantity
            batch.current_quantity = before + quantity
            batch.sold_quantity = max((batch.sold_quantity or 0) - quantity, 0)
            if batch.status == BatchStatus.DEPLETED:
                batch.status = BatchStatus.ACTIVE
            await batch.save(update_fields=["current_quantity", "sold_quantity", "status", "updated_at"], using_db=conn)

            await InventoryMovement.create(
                dealer_id=dealer_id,
                product_id=product.id,
                batch_id=batch.id,
                movement_type=MovementType.STOCK_IN,
                quantity_before=before,
                quantity_change=quantity,
                quantity_after=batch.current_quantity,
                reference_type="requisition_return",
                reference_id=str(requisition.id),
                reason="Requisition Return",
                notes=f"Job Card ID: {requisition.job_card_id}",
                performed_by=user.user_id,
                using_db=conn,
            )
            restored += quantity

        old_stock = product.stock_quantity or 0
        new_stock = old_stock + requisition.quantity
        if restored < requisition.quantity:
            # Stock whose batch no longer exists goes back on the product total only
            await InventoryMovement.create(
                dealer_id=dealer_id,
                product_id=product.id,
                movement_type=MovementType.STOCK_IN,
                quantity_before=old_stock + restored,
                quantity_change=requisition.quantity - restored,
                quantity_after=new_stock,
                reference_type="requisition_return",
                reference_id=str(requisition.id),
                reason="Requisition Return",
                notes=f"Job Card ID: {requisition.job_card_id}",
                performed_by=user.user_id,
                using_db=conn,
            )

        product.stock_quantity = new_stock
        product.stock_status = stock_status_for(new_stock, product.low_stock_threshold)
        await product.save(update_fields=["stock_quantity", "stock_status", "updated_at"], using_db=conn)

        requisition.status = RequisitionStatus.RETURNED
        requisition.notes = _append_note(requisition.notes, "Returned to stock.")
        await requisition.save(using_db=conn)

    log.info(f"Requisition {requisition.id} returned by {user.user_id}")
    broadcast = {"productId": str(product.id), "triggeredBy": user.user_id, "dealerId": dealer_id}
    await notify("inventory:changed", broadcast, dealer_id=dealer_id, aggregate_type="product", aggregate_id=str(product.id))
    await notify("inventory:adjusted", broadcast, dealer_id=dealer_id, aggregate_type="product", aggregate_id=str(product.id))
    await notify(
        "requisition:status_changed",
        {"id": str(requisition.id), "status": RequisitionStatus.RETURNED.value, "dealerId": dealer_id},
        dealer_id=dealer_id,
        aggregate_type="requisition",
        aggregate_id=str(requisition.id),
    )
    return requisition
