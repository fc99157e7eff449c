"""
Job progress rooms.

A room is created when a background job starts; clients join it with the room
id the job's HTTP call returned and receive that job's progress events. Rooms
are capped in size and expire after a fixed lifetime. A room outlives its
members while its job runs, so a client whose connection drops can rejoin;
once the job has ended, the room is deleted when its last member leaves.
Each room keeps its latest event so a client that joins late still learns
where the job is, or how it ended.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from cachetools import TTLCache
from pydantic import BaseModel

from commerce_core.shared import metrics
from commerce_core.shared.clock import Clock
from commerce_core.shared.logging_utils import get_structured_logger

logger = get_structured_logger(__name__)
_log = logging.getLogger(__name__)


@dataclass
class ProgressRoom:
    room_id: str
    created_at: datetime
    expires_at: datetime
    members: set[str] = field(default_factory=set)
    job_active: bool = False
    last_event: tuple[str, dict[str, Any]] | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class RoomSummary(BaseModel):
    room_id: str
    member_count: int
    expires_at: datetime


class RoomMetrics(BaseModel):
    active_rooms: int
    total_members: int
    rooms: list[RoomSummary]


class ProgressRoomManager:
    """
    In-memory registry of progress rooms and their member connections.

    One instance is owned by the application and shared by the WebSocket
    endpoint and the job runners. All methods run on the event loop thread.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        max_members: int = 5,
        ttl_seconds: int = 1800,
        join_rate_limit: int = 10,
        join_rate_window_seconds: int = 60,
        rate_limit_maxsize: int = 10000,
    ):
        self.clock = clock or Clock()
        self.max_members = max_members
        self.ttl = timedelta(seconds=ttl_seconds)
        self.join_rate_limit = join_rate_limit
        self.join_rate_window_seconds = join_rate_window_seconds
        self._rooms: dict[str, ProgressRoom] = {}
        # Attempt timestamps per connection; entries drop out one window
        # after their first attempt
        self._join_attempts: TTLCache[str, list[float]] = TTLCache(
            maxsize=rate_limit_maxsize,
            ttl=join_rate_window_seconds,
            timer=self.clock.monotonic,
        )
        self._sweeper: asyncio.Task | None = None

    # ================================
    # ROOM LIFECYCLE
    # ================================

    def create_room(self, job_active: bool = False) -> str:
        """
        Create an empty room and return its id.

        ``job_active`` keeps the room alive while it has no members, until
        ``finish_job`` is called or the room expires.
        """
        now = self.clock.now()
        room_id = str(uuid.uuid4())
        self._rooms[room_id] = ProgressRoom(
            room_id=room_id,
            created_at=now,
            expires_at=now + self.ttl,
            job_active=job_active,
        )
        self._update_gauges()
        logger.debug("Created progress room", room_id=room_id)
        return room_id

    def _live_room(self, room_id: str) -> ProgressRoom | None:
        room = self._rooms.get(room_id)
        if room is None or room.is_expired(self.clock.now()):
            return None
        return room

    def has_room(self, room_id: str) -> bool:
        return self._live_room(room_id) is not None

    def finish_job(self, room_id: str) -> None:
        """Mark a room's job as ended; the room stays until it empties or expires."""
        room = self._rooms.get(room_id)
        if room is not None:
            room.job_active = False

    def record_event(self, room_id: str, event: str, payload: dict[str, Any]) -> None:
        room = self._rooms.get(room_id)
        if room is not None:
            room.last_event = (event, payload)

    def last_event(self, room_id: str) -> tuple[str, dict[str, Any]] | None:
        room = self._live_room(room_id)
        return room.last_event if room is not None else None

    def members(self, room_id: str) -> frozenset[str]:
        room = self._live_room(room_id)
        return frozenset(room.members) if room is not None else frozenset()

    def rooms_for(self, connection_id: str) -> list[str]:
        return [
            room.room_id
            for room in self._rooms.values()
            if connection_id in room.members
        ]

    # ================================
    # MEMBERSHIP
    # ================================

    def _is_rate_limited(self, connection_id: str) -> bool:
        now = self.clock.monotonic()
        attempts = self._join_attempts.setdefault(connection_id, [])

        cutoff = now - self.join_rate_window_seconds
        attempts[:] = [t for t in attempts if t > cutoff]

        if len(attempts) >= self.join_rate_limit:
            return True

        attempts.append(now)
        return False

    def _reject(self, connection_id: str, room_id: str, reason: str) -> bool:
        metrics.progress_room_join_rejections_total.labels(reason=reason).inc()
        logger.warning(
            "Rejected room join",
            connection_id=connection_id,
            room_id=room_id,
            reason=reason,
        )
        return False

    def join_room(self, connection_id: str, room_id: str) -> bool:
        """
        Add a connection to a room.

        Never raises. Returns False when the connection is rate limited, the
        room does not exist or has expired, or the room is full. Joining a
        room the connection is already in succeeds without a second slot.
        """
        if self._is_rate_limited(connection_id):
            return self._reject(connection_id, room_id, "rate_limited")

        room = self._live_room(room_id)
        if room is None:
            return self._reject(connection_id, room_id, "unknown_room")

        if connection_id in room.members:
            return True

        if len(room.members) >= self.max_members:
            return self._reject(connection_id, room_id, "room_full")

        room.members.add(connection_id)
        self._update_gauges()
        logger.info(
            "Connection joined room",
            connection_id=connection_id,
            room_id=room_id,
            members=len(room.members),
        )
        return True

    def leave_room(self, connection_id: str, room_id: str | None = None) -> list[str]:
        """
        Remove a connection from one room, or from every room when
        ``room_id`` is None. Rooms left empty are deleted unless their job is
        still running.

        Returns:
            Ids of the rooms the connection actually left
        """
        room_ids = [room_id] if room_id is not None else self.rooms_for(connection_id)
        left = []

        for rid in room_ids:
            room = self._rooms.get(rid)
            if room is None or connection_id not in room.members:
                continue
            room.members.discard(connection_id)
            left.append(rid)
            if not room.members and not room.job_active:
                del self._rooms[rid]
                logger.debug("Deleted empty progress room", room_id=rid)

        if left:
            self._update_gauges()
        return left

    # ================================
    # EXPIRY AND METRICS
    # ================================

    def cleanup_expired_rooms(self) -> int:
        """Delete every expired room; returns how many were deleted."""
        now = self.clock.now()
        expired = [rid for rid, room in self._rooms.items() if room.is_expired(now)]
        for rid in expired:
            del self._rooms[rid]
        self._join_attempts.expire()

        if expired:
            self._update_gauges()
            logger.info("Cleaned up expired progress rooms", count=len(expired))
        return len(expired)

    def get_metrics(self) -> RoomMetrics:
        rooms = [
            RoomSummary(
                room_id=room.room_id,
                member_count=len(room.members),
                expires_at=room.expires_at,
            )
            for room in self._rooms.values()
        ]
        return RoomMetrics(
            active_rooms=len(rooms),
            total_members=sum(room.member_count for room in rooms),
            rooms=rooms,
        )

    def _update_gauges(self) -> None:
        metrics.progress_rooms_active.set(len(self._rooms))
        metrics.progress_room_members.set(
            sum(len(room.members) for room in self._rooms.values())
        )

    # ================================
    # SWEEPER
    # ================================

    async def run_sweeper(self, interval_seconds: float = 300) -> None:
        """Delete expired rooms every ``interval_seconds`` until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                self.cleanup_expired_rooms()
            except Exception as e:
                _log.error(f"Progress room sweep failed: {e}", exc_info=True)

    def start_sweeper(self, interval_seconds: float = 300) -> asyncio.Task:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self.run_sweeper(interval_seconds))
        return self._sweeper

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
