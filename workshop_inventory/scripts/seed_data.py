# workshop_inventory/scripts/seed_data.py
import asyncio
from datetime import datetime, timedelta
from tortoise import Tortoise
from workshop_inventory.core.auth import create_access_token
from workshop_inventory.core.db import init_db
from workshop_inventory.models.workshop import JobCard
from workshop_inventory.models.inventory import Product, InventoryBatch
from workshop_inventory.services.stock_rules import stock_status_for

DEALER_ID = "demo-dealer"

async def seed():
    job, _ = await JobCard.get_or_create(
        dealer_id=DEALER_ID, service_number="SRV-0001", defaults={"technician_id": "tech-1"}
    )
    print("Job card:", job.id)

    # Products with their received lots, oldest first
    catalogue = [
        ("Brake Pad Set", "BRK-001", "450.00", 5, [12, 8]),
        ("Engine Oil 1L", "OIL-10W40", "620.00", 10, [24, 24, 6]),
        ("Spark Plug", "SPK-CR7", "180.00", 5, [4]),
    ]
    received = datetime.now() - timedelta(days=30)

    for name, sku, price, threshold, lots in catalogue:
        product, created = await Product.get_or_create(
            dealer_id=DEALER_ID,
            sku=sku,
            defaults={"name": name, "base_price": price, "low_stock_threshold": threshold},
        )
        if created:
            for index, qty in enumerate(lots):
                await InventoryBatch.create(
                    dealer_id=DEALER_ID,
                    product=product,
                    batch_number=f"{sku}-B{index + 1}",
                    received_date=received + timedelta(days=index * 7),
                    initial_quantity=qty,
                    current_quantity=qty,
                )
            # Aggregate mirrors the batches it was seeded from
            product.stock_quantity = sum(lots)
            product.stock_status = stock_status_for(product.stock_quantity, threshold)
            await product.save()
        print(f"Product {name}: {product.id} (stock {product.stock_quantity})")

    print("Admin token:", create_access_token("admin-1", "service_admin", dealer_id=DEALER_ID, expires_minutes=24 * 60))
    print("Technician token:", create_access_token("tech-1", "service_technician", dealer_id=DEALER_ID, staff_id="tech-1", expires_minutes=24 * 60))

async def main():
    await init_db()
    await seed()
    await Tortoise.close_connections()

if __name__ == "__main__":
    asyncio.run(main())
