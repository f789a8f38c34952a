"""Bounded in-memory record of inbound requests and outbound protocol events."""

from __future__ import annotations

from collections import deque

from .models import ActivityLogEntry

MAX_LOG_ENTRIES = 200


class ActivityLog:
    def __init__(self, max_entries: int = MAX_LOG_ENTRIES) -> None:
        self._entries: deque[ActivityLogEntry] = deque(maxlen=max_entries)

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen or MAX_LOG_ENTRIES

    def append(self, entry: ActivityLogEntry) -> None:
        self._entries.append(entry)

    def entries(self) -> list[ActivityLogEntry]:
        """Return a copy of the retained entries, oldest first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
