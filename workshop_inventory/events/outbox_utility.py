import logging
from datetime import datetime
from typing import Dict, Any, List, Optional
from workshop_inventory.models.outbox import OutboxEvent

log = logging.getLogger("workshop_inventory.events")


async def create_outbox_event(
    aggregate_type: str,
    aggregate_id: Optional[str],
    event_type: str,
    payload: Dict[str, Any],
    dealer_id: Optional[str] = None,
    conn: Any = None
) -> OutboxEvent:
    """
    Creates a new Outbox event record, on the given connection when one is passed.
    """
    return await OutboxEvent.create(
        dealer_id=dealer_id,
        aggregate_type=aggregate_type,
        aggregate_id=str(aggregate_id) if aggregate_id is not None else None,
        event_type=event_type,
        payload=payload,
        published=False,
        attempts=0,
        using_db=conn
    )


async def notify(
    event_type: str,
    payload: Dict[str, Any],
    dealer_id: Optional[str] = None,
    aggregate_type: str = "workshop",
    aggregate_id: Optional[str] = None,
) -> bool:
    """
    Best-effort realtime notification, called after the business transaction
    has committed. A failure here is logged and reported as False; it never
    undoes the committed work.
    """
    try:
        await create_outbox_event(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=payload,
            dealer_id=dealer_id,
        )
        return True
    except Exception as e:
        log.warning(f"Notification {event_type} for dealer {dealer_id} was not recorded: {e}")
        return False


async def list_events_since(dealer_id: str, after: Optional[datetime] = None, limit: int = 100) -> List[OutboxEvent]:
    """
    Persisted notifications for a dealer, oldest first, so a client that
    reconnects can catch up on what it missed.
    """
    query = OutboxEvent.filter(dealer_id=dealer_id)
    if after is not None:
        query = query.filter(created_at__gt=after)
    return await query.order_by("created_at").limit(limit)
