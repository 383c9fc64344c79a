# shelter/api/v1/endpoints/realtime.py
"""
Live bed board over a WebSocket.

Each connection is one mounted OccupancyView: the snapshot is sent on
connect and again after every change or change-feed reconnect. Clients may
send {"type": "search", "term": "..."} for debounced client-name search and
{"type": "refresh"} to force a reload. Anything else gets an
{"type": "error"} reply and the connection stays open.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from shelter.core.store import InventoryStore
from shelter.services.client_service import search_clients
from shelter.services.subscription_service import OccupancyView
from shelter.utils.debounce import Debouncer

router = APIRouter()
logger = logging.getLogger(__name__)


async def _receive_message(websocket: WebSocket) -> Any:
    """Next frame decoded as JSON; text and binary frames are both accepted."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
    raw = message.get("text")
    if raw is None:
        raw = (message.get("bytes") or b"").decode("utf-8", errors="replace")
    return json.loads(raw)


@router.websocket("/beds")
async def bed_board_feed(websocket: WebSocket) -> None:
    store: InventoryStore = websocket.app.state.store
    await websocket.accept()

    async def send_error(detail: str) -> None:
        await websocket.send_json({"type": "error", "detail": detail})

    async def send_snapshot(view: OccupancyView) -> None:
        if view.data is None:
            # first load failed before any data arrived
            await websocket.send_json({"type": "snapshot", "data": None, "error": view.error})
            return
        await websocket.send_json({"type": "snapshot", "data": view.data.model_dump(mode="json")})

    async def send_search_results(term: str) -> None:
        results = await search_clients(store, term)
        await websocket.send_json(
            {
                "type": "search_results",
                "term": term,
                "results": [r.model_dump(mode="json") for r in results],
            }
        )

    debouncer = Debouncer(send_search_results, delay=store.settings.client_search_debounce_ms / 1000)
    view = OccupancyView(store, on_update=send_snapshot)
    try:
        await view.open()
        while True:
            try:
                message = await _receive_message(websocket)
            except ValueError:
                await send_error("Messages must be JSON objects")
                continue
            if not isinstance(message, dict):
                await send_error("Messages must be JSON objects")
                continue

            message_type = message.get("type")
            if message_type == "search":
                debouncer.call(str(message.get("term", "")))
            elif message_type == "refresh":
                await view.refresh()
            else:
                await send_error(f"Unknown message type: {message_type}")
    except WebSocketDisconnect:
        logger.debug("Bed board client disconnected")
    finally:
        debouncer.cancel()
        view.close()
