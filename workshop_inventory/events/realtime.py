import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Set

log = logging.getLogger("workshop_inventory.realtime")


class RealtimeHub:
    """
    In-process publish/subscribe channel feeding the dashboard websockets.

    Subscribers are grouped by dealer; events without a dealer go to every
    subscriber. Publishing never waits on a slow subscriber: when its queue is
    full the message is dropped for that subscriber only (it can replay from
    the events endpoint).
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: Dict[Optional[str], Set[asyncio.Queue]] = {}

    @asynccontextmanager
    async def subscribe(self, dealer_id: Optional[str]):
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.setdefault(dealer_id, set()).add(queue)
        try:
            yield queue
        finally:
            group = self._subscribers.get(dealer_id)
            if group is not None:
                group.discard(queue)
                if not group:
                    del self._subscribers[dealer_id]

    def subscriber_count(self, dealer_id: Optional[str] = None) -> int:
        if dealer_id is None:
            return sum(len(group) for group in self._subscribers.values())
        return len(self._subscribers.get(dealer_id, ()))

    def publish(self, event_type: str, data: Dict[str, Any], dealer_id: Optional[str] = None) -> int:
        """Returns the number of subscribers the message was queued for."""
        if dealer_id is None:
            targets = [q for group in self._subscribers.values() for q in group]
        else:
            targets = list(self._subscribers.get(dealer_id, ()))

        message = {"event": event_type, "data": data}
        delivered = 0
        for queue in targets:
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                log.warning(f"Subscriber queue full, dropping {event_type} for dealer {dealer_id}")
        return delivered


hub = RealtimeHub()
