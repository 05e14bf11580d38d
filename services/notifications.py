"""Sync status snapshot and user-facing sync notifications."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Set


logger = logging.getLogger("liftfire.sync")


class SyncEvent(str, Enum):
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


@dataclass(frozen=True)
class QueueStatus:
    pending: int
    failed: int
    syncing: int
    is_online: bool

    def as_dict(self) -> dict:
        return {
            "pending": self.pending,
            "failed": self.failed,
            "syncing": self.syncing,
            "isOnline": self.is_online,
        }


Listener = Callable[[SyncEvent, Optional[int]], None]


class SyncNotifier:
    """Fan-out of sync notifications to presentation code."""

    def __init__(self) -> None:
        self._listeners: Set[Listener] = set()

    def subscribe(self, callback: Listener) -> None:
        self._listeners.add(callback)

    def unsubscribe(self, callback: Listener) -> None:
        self._listeners.discard(callback)

    def emit(self, event: SyncEvent, count: Optional[int] = None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, count)
            except Exception as exc:
                logger.error("Sync listener crashed on %s: %s", event.value, exc)


__all__ = ["QueueStatus", "SyncEvent", "SyncNotifier"]
