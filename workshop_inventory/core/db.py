from tortoise import Tortoise
from workshop_inventory.core.config import DB_URL
import logging
from logging import INFO

# Set logging level for Tortoise ORM
logging.getLogger('tortoise').setLevel(INFO)
log = logging.getLogger("workshop_inventory.db")

# Define all models modules for the ORM
MODELS_MODULES = [
    "workshop_inventory.models.workshop",
    "workshop_inventory.models.inventory",
    "workshop_inventory.models.requisition",
    "workshop_inventory.models.adjustment",
    "workshop_inventory.models.outbox",
]

async def init_db(db_url: str = DB_URL, generate_schemas: bool = True):
    """Initializes the Tortoise ORM connection and generates schemas."""
    try:
        await Tortoise.init(
            db_url=db_url,
            modules={"models": MODELS_MODULES},
        )
        if generate_schemas:
            # Create missing tables only, existing data is left alone
            await Tortoise.generate_schemas(safe=True)
        log.info("Database connection established and schemas generated.")
    except Exception as e:
        log.critical(f"Could not connect to database at {db_url}. Error: {e}")
        # Re-raise to prevent the application from starting without a database
        raise

async def close_db():
    """Closes all database connections."""
    await Tortoise.close_connections()
    log.info("Database connections closed.")
