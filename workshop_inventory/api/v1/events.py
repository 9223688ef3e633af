import asyncio
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from workshop_inventory.core.auth import CurrentUser, decode_access_token, extract_token, get_current_user
from workshop_inventory.core.errors import AuthenticationError, ValidationError
from workshop_inventory.events.outbox_utility import list_events_since
from workshop_inventory.events.realtime import hub
from workshop_inventory.schemas.events import EventResponse
from workshop_inventory.schemas.response import SuccessResponse

router = APIRouter()
log = logging.getLogger("uvicorn")

# Application-defined close code for a rejected token or missing dealer (4000-4999 range)
WS_UNAUTHORIZED = 4401


@router.get("", response_model=SuccessResponse)
async def replay_events(
    after: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=500),
    user: CurrentUser = Depends(get_current_user),
):
    """Replays the dealer's notifications created after ``after``, oldest first."""
    events = await list_events_since(user.require_dealer(), after, limit)
    data = [
        EventResponse(
            id=e.id,
            event=e.event_type,
            data=e.payload,
            aggregate_type=e.aggregate_type,
            aggregate_id=e.aggregate_id,
            created_at=e.created_at,
        ).model_dump(mode="json")
        for e in events
    ]
    return SuccessResponse(data=data)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Clients only listen; anything they send is ignored
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/ws")
async def events_websocket(websocket: WebSocket, token: Optional[str] = None):
    """Streams the dealer's realtime events as ``{"event", "data"}`` messages."""
    raw_token = token or extract_token(websocket.headers.get("authorization"), websocket.cookies)
    try:
        if not raw_token:
            raise AuthenticationError("Unauthorized")
        user = decode_access_token(raw_token)
        dealer_id = user.require_dealer()
    except (AuthenticationError, ValidationError) as e:
        log.warning(f"Rejected realtime subscriber: {e.message}")
        await websocket.close(code=WS_UNAUTHORIZED)
        return

    await websocket.accept()
    async with hub.subscribe(dealer_id) as queue:
        disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            while not disconnected.done():
                next_message = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({next_message, disconnected}, return_when=asyncio.FIRST_COMPLETED)
                if next_message in done:
                    await websocket.send_json(next_message.result())
                else:
                    next_message.cancel()
        finally:
            disconnected.cancel()
