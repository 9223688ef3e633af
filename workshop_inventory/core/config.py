import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/workshop_db")

# Application Metadata
PROJECT_NAME = os.getenv("PROJECT_NAME", "Dealer Workshop Inventory Service")
VERSION = os.getenv("VERSION", "1.0.0")

# Auth (access tokens are issued by the portal login flow, verified here)
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 15))
ACCESS_TOKEN_COOKIE = os.getenv("ACCESS_TOKEN_COOKIE", "access_token")

# Stock rules
DEFAULT_LOW_STOCK_THRESHOLD = int(os.getenv("DEFAULT_LOW_STOCK_THRESHOLD", 5))
MOVEMENT_HISTORY_LIMIT = int(os.getenv("MOVEMENT_HISTORY_LIMIT", 50))

# Outbox Relay Configuration (pushes persisted events to realtime subscribers)
OUTBOX_RELAY_ENABLED = os.getenv("OUTBOX_RELAY_ENABLED", "true").lower() in ("1", "true", "yes")
POLLING_INTERVAL = float(os.getenv("POLLING_INTERVAL", 0.5)) # Relay checks for new events every N seconds
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", 5)) # Max retries for an event
BATCH_SIZE = int(os.getenv("BATCH_SIZE", 50)) # How many events to fetch per poll
