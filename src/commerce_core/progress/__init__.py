"""Job progress rooms and progress event delivery."""

from commerce_core.progress.notifier import (
    NullNotifier,
    ProgressNotifier,
    ProgressReporter,
    RecordingNotifier,
    WebSocketBroadcaster,
)
from commerce_core.progress.rooms import ProgressRoomManager, RoomMetrics

__all__ = [
    "NullNotifier",
    "ProgressNotifier",
    "ProgressReporter",
    "ProgressRoomManager",
    "RecordingNotifier",
    "RoomMetrics",
    "WebSocketBroadcaster",
]
