"""Time- and capacity-bounded result cache with stale reads."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class CacheStatistics:
    size: int
    max_entries: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return round(self.hits / lookups, 4) if lookups else 0.0

    @property
    def memory_usage(self) -> str:
        return f"{round(self.size * 100 / self.max_entries)}% of limit"


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class ResultCache(Generic[V]):
    """LRU cache whose entries expire after ``ttl_seconds``.

    With ``allow_stale`` an expired entry is returned by the next
    :meth:`get` and dropped in the same call, so the read after that is a
    miss and the caller recomputes. Expired entries nobody reads stay in LRU
    order until capacity pushes them out or :meth:`purge_stale` runs.
    Values are replaced wholesale by :meth:`set`, never patched.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int,
        allow_stale: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive.")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.allow_stale = allow_stale
        self._clock = clock
        self._entries: OrderedDict[str, _Entry[V]] = OrderedDict()
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.expires_at > self._clock():
                self._entries.move_to_end(key)
                self._hits += 1
                return entry.value

            # Expired entries are served at most once, then dropped.
            del self._entries[key]
            if not self.allow_stale:
                self._misses += 1
                return None

            self._hits += 1
            logger.debug("Serving stale cache entry", extra={"cache_key": key})
            return entry.value

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + self.ttl_seconds)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry", extra={"cache_key": evicted})

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def purge_stale(self) -> int:
        """Remove expired entries and return how many were dropped."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStatistics:
        with self._lock:
            return CacheStatistics(
                size=len(self._entries),
                max_entries=self.max_entries,
                hits=self._hits,
                misses=self._misses,
            )


def signature_key(prefix: str, payload: Any) -> str:
    """Deterministic key from a JSON-serializable payload."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{prefix}:{digest}"
