import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class EventResponse(BaseModel):
    """A persisted realtime notification, as replayed to clients."""
    id: uuid.UUID
    event: str
    data: Dict[str, Any]
    aggregate_type: str
    aggregate_id: Optional[str] = None
    created_at: datetime
