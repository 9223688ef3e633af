import asyncio
import logging
from workshop_inventory.models.outbox import OutboxEvent
from workshop_inventory.events.realtime import RealtimeHub, hub as default_hub
from workshop_inventory.core.config import POLLING_INTERVAL, MAX_ATTEMPTS, BATCH_SIZE

log = logging.getLogger("workshop_inventory.outbox_relay")


async def dispatch_event(event: OutboxEvent, hub: RealtimeHub = default_hub) -> int:
    """
    Pushes one OutboxEvent to the realtime subscribers of its dealer.
    """
    delivered = hub.publish(event.event_type, event.payload, dealer_id=event.dealer_id)
    log.debug(f"Relayed {event.event_type} (ID: {event.id.hex[:8]}...) to {delivered} subscriber(s)")
    return delivered


async def poll_outbox_for_new_events(hub: RealtimeHub = default_hub) -> int:
    """
    Queries the Outbox table for unpublished events and relays them oldest first.
    Returns how many events were marked published.
    """
    # Select events that haven't been published and haven't exceeded max attempts
    events = await OutboxEvent.filter(published=False, attempts__lt=MAX_ATTEMPTS).order_by('created_at').limit(BATCH_SIZE)

    published = 0
    for event in events:
        try:
            await dispatch_event(event, hub)

            event.published = True
            await event.save(update_fields=['published'])
            published += 1
        except Exception:
            # Increment attempts on failure; the event is retried on the next poll
            event.attempts += 1
            await event.save(update_fields=['attempts'])
            log.exception(f"Failed to relay {event.event_type} (attempt {event.attempts}/{MAX_ATTEMPTS})")
    return published


async def run_outbox_relay(hub: RealtimeHub = default_hub, interval: float = POLLING_INTERVAL):
    """Main loop of the relay, runs until cancelled by the app lifespan."""
    log.info("Outbox relay started")
    try:
        while True:
            try:
                await poll_outbox_for_new_events(hub)
            except Exception as e:
                log.error(f"Outbox relay encountered a DB error: {e}.")

            await asyncio.sleep(interval)
    finally:
        log.info("Outbox relay stopped")
