"""Bounded per-tab event buffers."""

from __future__ import annotations

from collections import deque
from typing import Any

CONSOLE_BUFFER_SIZE = 500
NETWORK_BUFFER_SIZE = 200


class EventBuffer:
    """Most recent *maxlen* entries, oldest evicted first."""

    def __init__(self, maxlen: int) -> None:
        self._entries: deque[dict[str, Any]] = deque(maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: dict[str, Any]) -> None:
        self._entries.append(entry)

    def read(self, limit: int | None = None, clear: bool = False) -> list[dict[str, Any]]:
        """Return the newest *limit* entries, oldest first.

        With *clear*, the buffer is emptied in the same step; nothing can be
        appended between the read and the clear since neither suspends.
        """
        entries = list(self._entries)
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        if clear:
            self._entries.clear()
        return entries

    def clear(self) -> None:
        self._entries.clear()


def console_buffer() -> EventBuffer:
    return EventBuffer(CONSOLE_BUFFER_SIZE)


def network_buffer() -> EventBuffer:
    return EventBuffer(NETWORK_BUFFER_SIZE)
