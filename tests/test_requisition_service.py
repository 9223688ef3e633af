import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from conftest import DEALER, OTHER_DEALER, make_product, make_requisition
from workshop_inventory.core.errors import (
    ConflictError,
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from workshop_inventory.models.inventory import BatchStatus, InventoryBatch, InventoryMovement, MovementType, Product, StockStatus
from workshop_inventory.models.outbox import OutboxEvent
from workshop_inventory.models.requisition import RequisitionStatus, ServiceRequisition
from workshop_inventory.models.workshop import JobCard
from workshop_inventory.services.requisition_service import (
    create_requisitions,
    list_requisitions,
    return_requisition,
    update_requisition_status,
)


async def _snapshot(product, batches):
    """Current product total and batch quantities straight from the database."""
    fresh = await Product.get(id=product.id)
    quantities = [(await InventoryBatch.get(id=b.id)).current_quantity for b in batches]
    return fresh.stock_quantity, quantities


class TestApproval:
    @pytest.mark.asyncio
    async def test_approval_draws_oldest_batches_first(self, db, admin):
        product, (b1, b2) = await make_product(lots=[(0, 5), (1, 10)])
        requisition = await make_requisition(product, 8)

        result = await update_requisition_status(admin, requisition.id, RequisitionStatus.APPROVED)

        assert result.status == RequisitionStatus.APPROVED
        b1 = await InventoryBatch.get(id=b1.id)
        b2 = await InventoryBatch.get(id=b2.id)
        assert (b1.current_quantity, b1.sold_quantity, b1.status) == (0, 5, BatchStatus.DEPLETED)
        assert (b2.current_quantity, b2.sold_quantity, b2.status) == (7, 3, BatchStatus.ACTIVE)

        movements = await InventoryMovement.filter(reference_type="requisition", reference_id=str(requisition.id))
        assert {m.batch_id: m.quantity_change for m in movements} == {b1.id: -5, b2.id: -3}
        assert all(m.movement_type == MovementType.STOCK_OUT for m in movements)
        assert all(m.performed_by == "admin-1" for m in movements)
        by_batch = {m.batch_id: m for m in movements}
        assert (by_batch[b2.id].quantity_before, by_batch[b2.id].quantity_after) == (10, 7)

        product = await Product.get(id=product.id)
        assert product.stock_quantity == 7
        assert product.stock_status == StockStatus.IN_STOCK

        stored = await ServiceRequisition.get(id=requisition.id)
        assert stored.status == RequisitionStatus.APPROVED
        assert stored.approved_by == "admin-1"
        assert stored.approved_at is not None

    @pytest.mark.asyncio
    async def test_insufficient_stock_rolls_everything_back(self, db, admin):
        product, batches = await make_product(lots=[(0, 2), (1, 3)])
        requisition = await make_requisition(product, 6)

        with pytest.raises(InsufficientStockError) as excinfo:
            await update_requisition_status(admin, requisition.id, RequisitionStatus.APPROVED)

        assert excinfo.value.available == 5
        assert await _snapshot(product, batches) == (5, [2, 3])
        stored = await ServiceRequisition.get(id=requisition.id)
        assert stored.status == RequisitionStatus.PENDING
        assert stored.approved_by is None
        assert await InventoryMovement.all().count() == 0
        assert await OutboxEvent.all().count() == 0

    @pytest.mark.asyncio
    async def test_inactive_batches_are_not_consumed(self, db, admin):
        product, (old, new) = await make_product(lots=[(0, 10), (1, 2)])
        old.status = BatchStatus.INACTIVE
        await old.save()
        requisition = await make_requisition(product, 3)

        with pytest.raises(InsufficientStockError):
            await update_requisition_status(admin, requisition.id, RequisitionStatus.APPROVED)

        assert (await InventoryBatch.get(id=old.id)).current_quantity == 10

    @pytest.mark.asyncio
    async def test_stock_status_follows_threshold(self, db, admin):
        product, _ = await make_product(lots=[(0, 10)], threshold=5)
        first = await make_requisition(product, 6)
        await update_requisition_status(admin, first.id, RequisitionStatus.APPROVED)
        assert (await Product.get(id=product.id)).stock_status == StockStatus.LOW_STOCK

        second = await make_requisition(product, 4)
        await update_requisition_status(admin, second.id, RequisitionStatus.APPROVED)
        product = await Product.get(id=product.id)
        assert product.stock_quantity == 0
        assert product.stock_status == StockStatus.OUT_OF_STOCK

    @pytest.mark.asyncio
    async def test_second_decision_is_a_conflict(self, db, admin):
        product, batches = await make_product(lots=[(0, 5), (1, 10)])
        requisition = await make_requisition(product, 8)
        await update_requisition_status(admin, requisition.id, RequisitionStatus.APPROVED)

        with pytest.raises(ConflictError) as excinfo:
            await update_requisition_status(admin, requisition.id, RequisitionStatus.APPROVED)
        assert "already approved" in excinfo.value.message

        with pytest.raises(ConflictError):
            await update_requisition_status(admin, requisition.id, RequisitionStatus.REJECTED)

        assert await _snapshot(product, batches) == (7, [0, 7])
        assert await InventoryMovement.all().count() == 2
        assert (await ServiceRequisition.get(id=requisition.id)).status == RequisitionStatus.APPROVED

    @pytest.mark.asyncio
    async def test_rejection_moves_no_stock(self, db, admin):
        product, batches = await make_product(lots=[(0, 5)])
        requisition = await make_requisition(product, 2)

        result = await update_requisition_status(admin, requisition.id, RequisitionStatus.REJECTED, "Wrong part")

        assert result.status == RequisitionStatus.REJECTED
        stored = await ServiceRequisition.get(id=requisition.id)
        assert stored.status == RequisitionStatus.REJECTED
        assert stored.notes == "Reason: Wrong part"
        assert await InventoryMovement.all().count() == 0
        assert await _snapshot(product, batches) == (5, [5])

    @pytest.mark.asyncio
    async def test_other_dealer_requisition_is_not_found(self, db, other_admin):
        product, batches = await make_product(lots=[(0, 5)])
        requisition = await make_requisition(product, 2)

        with pytest.raises(NotFoundError):
            await update_requisition_status(other_admin, requisition.id, RequisitionStatus.APPROVED)

        assert (await ServiceRequisition.get(id=requisition.id)).status == RequisitionStatus.PENDING
        assert await _snapshot(product, batches) == (5, [5])

    @pytest.mark.asyncio
    async def test_product_of_other_dealer_fails_approval(self, db, admin):
        product, _ = await make_product(dealer_id=OTHER_DEALER, lots=[(0, 5)])
        requisition = await make_requisition(product, 2, dealer_id=DEALER)

        with pytest.raises(NotFoundError):
            await update_requisition_status(admin, requisition.id, RequisitionStatus.APPROVED)

        assert (await ServiceRequisition.get(id=requisition.id)).status == RequisitionStatus.PENDING

    @pytest.mark.asyncio
    async def test_only_admins_decide(self, db, technician):
        product, _ = await make_product(lots=[(0, 5)])
        requisition = await make_requisition(product, 2)

        with pytest.raises(ForbiddenError):
            await update_requisition_status(technician, requisition.id, RequisitionStatus.APPROVED)

    @pytest.mark.asyncio
    async def test_returned_is_not_a_decision(self, db, admin):
        product, _ = await make_product(lots=[(0, 5)])
        requisition = await make_requisition(product, 2)

        with pytest.raises(ValidationError):
            await update_requisition_status(admin, requisition.id, RequisitionStatus.RETURNED)


class TestNotifications:
    @pytest.mark.asyncio
    async def test_events_recorded_after_approval(self, db, admin):
        product, _ = await make_product(lots=[(0, 5)])
        requisition = await make_requisition(product, 2)

        await update_requisition_status(admin, requisition.id, RequisitionStatus.APPROVED)

        events = await OutboxEvent.all()
        by_type = {e.event_type: e for e in events}
        assert set(by_type) == {"requisition:approved", "requisition:status_changed", "inventory:changed"}
        payload = by_type["requisition:approved"].payload
        assert payload["id"] == str(requisition.id)
        assert payload["jobNo"] == "SRV-1001"
        assert payload["technicianId"] == "tech-7"
        assert payload["dealerId"] == DEALER
        assert all(e.dealer_id == DEALER for e in events)

    @pytest.mark.asyncio
    async def test_rejection_emits_rejected_event(self, db, admin):
        product, _ = await make_product(lots=[(0, 5)])
        requisition = await make_requisition(product, 2)

        await update_requisition_status(admin, requisition.id, RequisitionStatus.REJECTED)

        types = sorted(e.event_type for e in await OutboxEvent.all())
        assert types == ["requisition:rejected", "requisition:status_changed"]

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_committed_approval(self, db, admin):
        product, batches = await make_product(lots=[(0, 5)])
        requisition = await make_requisition(product, 2)

        with patch(
            "workshop_inventory.events.outbox_utility.create_outbox_event",
            new_callable=AsyncMock,
            side_effect=RuntimeError("broker down"),
        ):
            result = await update_requisition_status(admin, requisition.id, RequisitionStatus.APPROVED)

        assert result.status == RequisitionStatus.APPROVED
        assert (await ServiceRequisition.get(id=requisition.id)).status == RequisitionStatus.APPROVED
        assert await _snapshot(product, batches) == (3, [3])


class TestRequisitionLifecycle:
    @pytest.mark.asyncio
    async def test_cart_shares_one_group(self, db, technician):
        pads, _ = await make_product(lots=[(0, 5)])
        oil, _ = await make_product(name="Engine Oil", lots=[(0, 20)])
        job = await JobCard.create(dealer_id=DEALER, service_number="SRV-2002")

        group_id, created = await create_requisitions(technician, job.id, [
            {"product_id": pads.id, "quantity": 2, "notes": "front"},
            {"product_id": oil.id, "quantity": 1},
        ])

        assert len(created) == 2
        stored = await ServiceRequisition.filter(requisition_group_id=group_id)
        assert len(stored) == 2
        assert all(r.status == RequisitionStatus.PENDING and r.staff_id == "tech-7" for r in stored)
        pads_line = next(r for r in stored if r.product_id == pads.id)
        assert pads_line.total_price == pads.base_price * 2

        event = await OutboxEvent.get(event_type="requisition:created")
        assert event.payload["itemCount"] == 2
        assert event.payload["jobNo"] == "SRV-2002"

    @pytest.mark.asyncio
    async def test_cart_quantity_defaults_to_one_but_zero_is_rejected(self, db, technician):
        product, _ = await make_product(lots=[(0, 5)])
        job = await JobCard.create(dealer_id=DEALER, service_number="SRV-2004")

        _, created = await create_requisitions(technician, job.id, [{"product_id": product.id}])
        assert created[0].quantity == 1

        with pytest.raises(ValidationError):
            await create_requisitions(technician, job.id, [{"product_id": product.id, "quantity": 0}])
        assert await ServiceRequisition.all().count() == 1

    @pytest.mark.asyncio
    async def test_cart_prices_at_sale_price_when_set(self, db, technician):
        product, _ = await make_product(lots=[(0, 5)], price=Decimal("450.00"))
        product.sale_price = Decimal("400.00")
        await product.save()
        job = await JobCard.create(dealer_id=DEALER, service_number="SRV-2005")

        _, (line,) = await create_requisitions(technician, job.id, [{"product_id": product.id, "quantity": 2}])

        stored = await ServiceRequisition.get(id=line.id)
        assert stored.unit_price == Decimal("400.00")
        assert stored.total_price == Decimal("800.00")

    @pytest.mark.asyncio
    async def test_cart_with_foreign_product_creates_nothing(self, db, technician):
        ours, _ = await make_product(lots=[(0, 5)])
        theirs, _ = await make_product(dealer_id=OTHER_DEALER, name="Chain Kit", lots=[(0, 5)])
        job = await JobCard.create(dealer_id=DEALER, service_number="SRV-2003")

        with pytest.raises(NotFoundError):
            await create_requisitions(technician, job.id, [
                {"product_id": ours.id, "quantity": 1},
                {"product_id": theirs.id, "quantity": 1},
            ])

        assert await ServiceRequisition.all().count() == 0

    @pytest.mark.asyncio
    async def test_cart_for_foreign_job_card_is_not_found(self, db, technician):
        product, _ = await make_product(lots=[(0, 5)])
        job = await JobCard.create(dealer_id=OTHER_DEALER, service_number="SRV-9")

        with pytest.raises(NotFoundError):
            await create_requisitions(technician, job.id, [{"product_id": product.id, "quantity": 1}])

    @pytest.mark.asyncio
    async def test_listing_scopes_by_role(self, db, admin, technician):
        product, _ = await make_product(lots=[(0, 50)])
        mine = await make_requisition(product, 1)
        someone_else = await make_requisition(product, 1)
        someone_else.staff_id = "tech-99"
        await someone_else.save()
        await make_requisition(product, 1, dealer_id=OTHER_DEALER)

        tech_view = await list_requisitions(technician)
        assert [r.id for r in tech_view] == [mine.id]

        admin_view = await list_requisitions(admin)
        assert {r.id for r in admin_view} == {mine.id, someone_else.id}

        await update_requisition_status(admin, mine.id, RequisitionStatus.APPROVED)
        pending = await list_requisitions(admin, status=RequisitionStatus.PENDING)
        assert [r.id for r in pending] == [someone_else.id]
        assert pending[0].product.name == product.name

    @pytest.mark.asyncio
    async def test_return_restores_the_batches_drawn(self, db, admin):
        product, (b1, b2) = await make_product(lots=[(0, 5), (1, 10)])
        requisition = await make_requisition(product, 8)
        await update_requisition_status(admin, requisition.id, RequisitionStatus.APPROVED)

        result = await return_requisition(admin, requisition.id)

        assert result.status == RequisitionStatus.RETURNED
        b1 = await InventoryBatch.get(id=b1.id)
        assert (b1.current_quantity, b1.sold_quantity, b1.status) == (5, 0, BatchStatus.ACTIVE)
        assert (await InventoryBatch.get(id=b2.id)).current_quantity == 10
        product = await Product.get(id=product.id)
        assert product.stock_quantity == 15
        returns = await InventoryMovement.filter(reference_type="requisition_return")
        assert sorted(m.quantity_change for m in returns) == [3, 5]
        assert all(m.movement_type == MovementType.STOCK_IN for m in returns)

    @pytest.mark.asyncio
    async def test_return_of_untraceable_stock_goes_to_product_total(self, db, admin):
        product, (b1, b2) = await make_product(lots=[(0, 5), (1, 10)])
        requisition = await make_requisition(product, 8)
        await update_requisition_status(admin, requisition.id, RequisitionStatus.APPROVED)
        # The ledger row for the first batch lost its batch link
        await InventoryMovement.filter(reference_id=str(requisition.id), batch_id=b1.id).update(batch_id=None)

        await return_requisition(admin, requisition.id)

        assert (await Product.get(id=product.id)).stock_quantity == 15
        assert (await InventoryBatch.get(id=b1.id)).current_quantity == 0
        assert (await InventoryBatch.get(id=b2.id)).current_quantity == 10
        returns = await InventoryMovement.filter(reference_type="requisition_return")
        assert sorted((m.batch_id is None, m.batch_id, m.quantity_change) for m in returns) == [
            (False, b2.id, 3),
            (True, None, 5),
        ]

    @pytest.mark.asyncio
    async def test_only_approved_requisitions_can_be_returned(self, db, admin):
        product, _ = await make_product(lots=[(0, 5)])
        requisition = await make_requisition(product, 2)

        with pytest.raises(ConflictError):
            await return_requisition(admin, requisition.id)
