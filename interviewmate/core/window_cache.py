"""Process-local TTL cache for the parsed recent-message window.

Repeated reads for the same conversation within a short burst would
otherwise each hit the transcript store. Entries expire after a fixed TTL
and are invalidated as soon as a new AI turn is written. Simultaneous misses
may recompute the same window; that only costs an extra store read.
"""

from collections import OrderedDict
from collections.abc import Callable
from time import monotonic
from typing import NamedTuple

from interviewmate.core.conversation import ChatTurn

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_ENTRIES = 1024


class WindowCacheKey(NamedTuple):
    conversation_id: str
    user_id: str


class WindowCache:
    """Bounded LRU cache of chat-turn windows with per-entry TTL."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[WindowCacheKey, tuple[float, list[ChatTurn]]] = OrderedDict()

    def get(self, key: WindowCacheKey) -> list[ChatTurn] | None:
        """Return the cached window, or None on miss or expiry."""
        cached = self._entries.get(key)
        if cached is None:
            return None

        timestamp, turns = cached
        if self._clock() - timestamp >= self.ttl_seconds:
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return list(turns)

    def put(self, key: WindowCacheKey, turns: list[ChatTurn]) -> None:
        """Store a window stamped with the current time."""
        self._entries[key] = (self._clock(), list(turns))
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, key: WindowCacheKey) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
