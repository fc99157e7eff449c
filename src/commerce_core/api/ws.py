"""
WebSocket endpoint for catalog progress.

Clients send ``{"action": "join", "room_id": ...}`` (``roomId`` is accepted
too) and receive ``room-joined`` or ``room-join-failed``. A joined client
first gets the room's latest event, if any, then every later
``catalog-progress``, ``catalog-complete`` and ``catalog-error`` event of that
room. ``{"action": "leave", ...}`` leaves the room.
"""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from commerce_core.shared.dependencies import AppServices

logger = logging.getLogger(__name__)

router = APIRouter()

JOINED_EVENT = "room-joined"
JOIN_FAILED_EVENT = "room-join-failed"
LEFT_EVENT = "room-left"
INVALID_MESSAGE_EVENT = "invalid-message"


def _room_id(message: dict[str, Any]) -> str | None:
    room_id = message.get("room_id") or message.get("roomId")
    return room_id if isinstance(room_id, str) and room_id else None


@router.websocket("/ws/catalog")
async def catalog_progress(websocket: WebSocket):
    services: AppServices = websocket.app.state.services
    broadcaster = services.broadcaster
    rooms = services.rooms

    await websocket.accept()
    connection_id = uuid.uuid4().hex
    broadcaster.register(connection_id, websocket)
    logger.info(f"Progress connection opened: {connection_id}")

    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict):
                await broadcaster.send(
                    connection_id,
                    INVALID_MESSAGE_EVENT,
                    {"message": "Messages must be JSON objects"},
                )
                continue

            action = message.get("action")
            room_id = _room_id(message)

            if action == "join":
                if room_id is not None and rooms.join_room(connection_id, room_id):
                    await broadcaster.send(
                        connection_id, JOINED_EVENT, {"room_id": room_id}
                    )
                    await broadcaster.replay(connection_id, room_id)
                else:
                    await broadcaster.send(
                        connection_id,
                        JOIN_FAILED_EVENT,
                        {"room_id": room_id, "message": "Could not join room"},
                    )
            elif action == "leave":
                left = rooms.leave_room(connection_id, room_id)
                await broadcaster.send(connection_id, LEFT_EVENT, {"rooms": left})
            else:
                await broadcaster.send(
                    connection_id,
                    INVALID_MESSAGE_EVENT,
                    {"message": f"Unknown action: {action!r}"},
                )
    except WebSocketDisconnect:
        logger.info(f"Progress connection closed: {connection_id}")
    except ValueError as e:
        # receive_json raises on malformed JSON
        logger.warning(f"Closing progress connection {connection_id}: {e}")
        await websocket.close(code=1003)
    finally:
        broadcaster.unregister(connection_id)
