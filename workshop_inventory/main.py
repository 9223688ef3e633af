import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, status
from workshop_inventory.core.db import init_db, close_db
from workshop_inventory.api.v1.requisitions import router as requisitions_router
from workshop_inventory.api.v1.inventory import router as inventory_router
from workshop_inventory.api.v1.events import router as events_router
from workshop_inventory.core.config import PROJECT_NAME, VERSION, OUTBOX_RELAY_ENABLED
from workshop_inventory.core.exception_handlers import setup_exception_handlers
from workshop_inventory.events.outbox_relay import run_outbox_relay

log = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db() # Connect to DB and generate schemas
    relay = asyncio.create_task(run_outbox_relay()) if OUTBOX_RELAY_ENABLED else None
    yield
    if relay is not None:
        relay.cancel()
        with suppress(asyncio.CancelledError):
            await relay
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")

app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    # Configure API documentation and paths
    docs_url="/docs",
    redoc_url="/redoc"
)

# Include routers for modular API structure
app.include_router(requisitions_router, prefix="/api/v1/workshop/requisitions", tags=["Workshop Requisitions"])
app.include_router(inventory_router, prefix="/api/v1/workshop/inventory", tags=["Workshop Inventory"])
app.include_router(events_router, prefix="/api/v1/events", tags=["Realtime Events"])


setup_exception_handlers(app)

@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
