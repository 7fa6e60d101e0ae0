"""
In-memory caches with per-key expiry.
"""

import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from .config.constants import SUMMARY_CACHE_TTL
from .models.summary import SummaryDocument

logger = logging.getLogger(__name__)


class TTLStore:
    """Keyed store whose entries expire after a time-to-live.

    Expired entries are dropped on access and by ``purge_expired``. When
    ``max_size`` is reached the oldest entry is evicted.
    """

    def __init__(self,
                 default_ttl: float = 3600,
                 max_size: int = 1000,
                 clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[Any, float]]" = OrderedDict()

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + (self.default_ttl if ttl is None else ttl)
        self._entries.pop(key, None)
        self._entries[key] = (value, expires_at)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return default
        return value

    def contains(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def ttl_remaining(self, key: Hashable) -> float:
        """Seconds until ``key`` expires, 0 if absent."""
        entry = self._entries.get(key)
        if entry is None:
            return 0.0
        return max(0.0, entry[1] - self._clock())

    def delete(self, key: Hashable) -> bool:
        return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def keys(self) -> list:
        self.purge_expired()
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        return {"size": len(self), "max_size": self.max_size, "default_ttl": self.default_ttl}


_MISSING = object()


class SummaryResultCache:
    """Caches finished summaries by (chat, requested count, newest message time)."""

    def __init__(self, store: Optional[TTLStore] = None, ttl: float = SUMMARY_CACHE_TTL):
        self.ttl = ttl
        self._store = store or TTLStore(default_ttl=ttl, max_size=500)
        self.hits = 0
        self.misses = 0

    async def get_cached_summary(self, fingerprint: Tuple) -> Optional[SummaryDocument]:
        document = self._store.get(("summary",) + tuple(fingerprint))
        if document is not None:
            self.hits += 1
            logger.debug(f"Summary cache hit for {fingerprint}")
        else:
            self.misses += 1
        return document

    async def cache_summary(self, fingerprint: Tuple, document: SummaryDocument) -> None:
        self._store.set(("summary",) + tuple(fingerprint), document, ttl=self.ttl)
        logger.debug(f"Cached summary for {fingerprint} (ttl={self.ttl}s)")

    async def invalidate_chat(self, chat_id: int) -> int:
        """Drop every cached summary for a chat."""
        keys = [key for key in self._store.keys() if key[:2] == ("summary", chat_id)]
        for key in keys:
            self._store.delete(key)
        return len(keys)

    async def clear(self) -> int:
        count = len(self._store)
        self._store.clear()
        logger.info(f"Cleared {count} cached summaries")
        return count

    def stats(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            **self._store.stats(),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups, 3) if lookups else 0.0,
        }
