from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from tortoise import Tortoise

from workshop_inventory.core.auth import CurrentUser
from workshop_inventory.core.db import MODELS_MODULES
from workshop_inventory.models.inventory import InventoryBatch, Product
from workshop_inventory.models.requisition import RequisitionStatus, ServiceRequisition
from workshop_inventory.models.workshop import JobCard
from workshop_inventory.services.stock_rules import stock_status_for

DEALER = "dealer-a"
OTHER_DEALER = "dealer-b"
DAY_ONE = datetime(2024, 1, 1, 9, 0, 0)


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory SQLite schema per test."""
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": MODELS_MODULES})
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def admin():
    return CurrentUser(user_id="admin-1", role="service_admin", dealer_id=DEALER)


@pytest.fixture
def technician():
    return CurrentUser(user_id="user-7", role="service_technician", dealer_id=DEALER, staff_id="tech-7")


@pytest.fixture
def other_admin():
    return CurrentUser(user_id="admin-2", role="service_admin", dealer_id=OTHER_DEALER)


async def make_product(dealer_id=DEALER, name="Brake Pad Set", lots=(), threshold=5, price=Decimal("450.00")):
    """Creates a product plus one batch per (day offset, quantity) lot."""
    total = sum(qty for _, qty in lots)
    product = await Product.create(
        dealer_id=dealer_id,
        name=name,
        sku=name.upper().replace(" ", "-"),
        base_price=price,
        stock_quantity=total,
        low_stock_threshold=threshold,
        stock_status=stock_status_for(total, threshold),
    )
    batches = []
    for index, (day, qty) in enumerate(lots):
        batches.append(await InventoryBatch.create(
            dealer_id=dealer_id,
            product=product,
            batch_number=f"B{index + 1}",
            received_date=DAY_ONE + timedelta(days=day),
            initial_quantity=qty,
            current_quantity=qty,
        ))
    return product, batches


async def make_requisition(product, quantity, dealer_id=DEALER, status=RequisitionStatus.PENDING):
    job_card = await JobCard.create(dealer_id=dealer_id, service_number="SRV-1001", technician_id="tech-7")
    return await ServiceRequisition.create(
        job_card=job_card,
        product=product,
        staff_id="tech-7",
        quantity=quantity,
        unit_price=product.base_price,
        total_price=product.base_price * quantity,
        status=status,
    )
