"""Debounced synchronization between the canvas graph and the quest document."""

from questcanvas.sync.controller import (
    DEFAULT_SETTLE_DELAY,
    FlushEvent,
    SyncController,
    SyncState,
)
from questcanvas.sync.history import DEFAULT_HISTORY_LIMIT, EditHistory
from questcanvas.sync.scheduler import FlushScheduler

__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "DEFAULT_SETTLE_DELAY",
    "EditHistory",
    "FlushEvent",
    "FlushScheduler",
    "SyncController",
    "SyncState",
]
