"""
In-memory response cache. Keyed by "<query>|<conversation_id>".

Entries expire `ttl_ms` after their timestamp and are evicted on the next read.
When full, the entry inserted earliest is dropped; reads do not refresh an
entry's position, so eviction is by insertion order rather than recency.
"""

import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from agent_relay.core.clock import now_ms

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    data: Any
    timestamp: int


def cache_key(query: str, conversation_id: str) -> str:
    return f"{query}|{conversation_id}"


class ResponseCache:
    def __init__(
        self,
        ttl_ms: int,
        max_size: int,
        enabled: bool = True,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.ttl_ms = ttl_ms
        self.max_size = max_size
        self.enabled = enabled
        self._clock = clock
        # dicts keep insertion order; the first key is the oldest insert
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for key, or None on miss. Stale entries are evicted."""
        if not self.enabled:
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        age = self._clock() - entry.timestamp
        if age > self.ttl_ms:
            del self._entries[key]
            logger.debug("[cache:get] expired key=%r age_ms=%d", key[:100], age)
            return None
        # copy so a caller cannot mutate the stored data
        return CacheEntry(data=copy.deepcopy(entry.data), timestamp=entry.timestamp)

    def set(self, key: str, data: Any, timestamp: int | None = None) -> None:
        """Store data under key. No-op when caching is disabled."""
        if not self.enabled:
            return
        if key in self._entries:
            # re-insert so an overwritten key counts as the newest
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug("[cache:set] evicted oldest key=%r", oldest[:100])
        self._entries[key] = CacheEntry(
            data=copy.deepcopy(data),
            timestamp=self._clock() if timestamp is None else timestamp,
        )

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def stats(self) -> dict[str, int]:
        return {"size": len(self._entries), "max_size": self.max_size, "ttl": self.ttl_ms}
