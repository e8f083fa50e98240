"""Rolling day window, its notifications, and the retained publisher."""

from dayahead.window.events import EventChannel, WindowEvent, WindowEventType
from dayahead.window.publisher import (
    PublishAction,
    PublishTransport,
    RolloverPublishController,
    WindowSnapshot,
    snapshot_from_cache,
)
from dayahead.window.store import DayWindowStore

__all__ = [
    "DayWindowStore",
    "EventChannel",
    "WindowEvent",
    "WindowEventType",
    "PublishAction",
    "PublishTransport",
    "RolloverPublishController",
    "WindowSnapshot",
    "snapshot_from_cache",
]
