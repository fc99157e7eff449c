"""
Progress event delivery.

Jobs report progress through a ``ProgressReporter`` bound to their room. The
reporter hands events to a ``ProgressNotifier`` transport and swallows any
delivery failure: losing a progress event must never fail the job.
"""

import logging
from typing import Any, Protocol

from fastapi import WebSocket

from commerce_core.progress.rooms import ProgressRoomManager
from commerce_core.shared import metrics

logger = logging.getLogger(__name__)

PROGRESS_EVENT = "catalog-progress"
COMPLETE_EVENT = "catalog-complete"
ERROR_EVENT = "catalog-error"


class ProgressNotifier(Protocol):
    async def emit(self, room_id: str, event: str, payload: dict[str, Any]) -> None: ...


class NullNotifier:
    """Discards every event."""

    async def emit(self, room_id: str, event: str, payload: dict[str, Any]) -> None:
        return None


class RecordingNotifier:
    """Keeps every event in memory, in emission order."""

    def __init__(self):
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    async def emit(self, room_id: str, event: str, payload: dict[str, Any]) -> None:
        self.events.append((room_id, event, payload))

    def steps(self, room_id: str | None = None) -> list[str]:
        return [
            payload["step"]
            for rid, _, payload in self.events
            if room_id is None or rid == room_id
        ]


class WebSocketBroadcaster:
    """Sends room events to the WebSocket connections joined to the room."""

    def __init__(self, rooms: ProgressRoomManager):
        self.rooms = rooms
        self._connections: dict[str, WebSocket] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def register(self, connection_id: str, websocket: WebSocket) -> None:
        self._connections[connection_id] = websocket

    def unregister(self, connection_id: str) -> None:
        """Forget a connection and take it out of every room."""
        self._connections.pop(connection_id, None)
        self.rooms.leave_room(connection_id)

    async def send(
        self, connection_id: str, event: str, payload: dict[str, Any]
    ) -> None:
        websocket = self._connections.get(connection_id)
        if websocket is None:
            return
        await websocket.send_json({"event": event, **payload})

    async def replay(self, connection_id: str, room_id: str) -> bool:
        """Send a room's latest event to one connection; False if it has none."""
        last = self.rooms.last_event(room_id)
        if last is None:
            return False
        event, payload = last
        await self.send(connection_id, event, payload)
        return True

    async def emit(self, room_id: str, event: str, payload: dict[str, Any]) -> None:
        self.rooms.record_event(room_id, event, payload)
        for connection_id in self.rooms.members(room_id):
            try:
                await self.send(connection_id, event, payload)
            except Exception as e:
                metrics.progress_emit_failures_total.inc()
                logger.warning(
                    f"Failed to send {event} to {connection_id} in room {room_id}: {e}"
                )


class ProgressReporter:
    """
    Emits staged progress for one job to its room.

    Reported progress never moves backwards; a lower value is raised to the
    last one sent. Errors are reported at 0.
    """

    def __init__(self, notifier: ProgressNotifier, room_id: str):
        self.notifier = notifier
        self.room_id = room_id
        self._last_progress = 0

    async def _emit(self, event: str, payload: dict[str, Any]) -> None:
        try:
            await self.notifier.emit(self.room_id, event, payload)
        except Exception as e:
            metrics.progress_emit_failures_total.inc()
            logger.warning(f"Progress event {event} for room {self.room_id} lost: {e}")

    async def emit_progress(
        self, step: str, progress: int, data: dict[str, Any] | None = None
    ) -> None:
        progress = max(self._last_progress, min(100, progress))
        self._last_progress = progress

        payload: dict[str, Any] = {"step": step, "progress": progress}
        if data is not None:
            payload["data"] = data
        event = COMPLETE_EVENT if step == "completed" else PROGRESS_EVENT
        await self._emit(event, payload)

    async def emit_complete(self, data: dict[str, Any]) -> None:
        await self.emit_progress("completed", 100, data)

    async def emit_error(self, message: str) -> None:
        await self._emit(
            ERROR_EVENT, {"step": "error", "progress": 0, "data": {"message": message}}
        )
