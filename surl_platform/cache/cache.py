"""
Result cache for the redirect read path.

Keys are external id strings as received in requests. Values are either a
destination URL (confirmed hit) or None (confirmed miss, "negative" entry),
each with an absolute expiry time. A missing key means "unknown, resolve it".

Rules:
    - An entry is never served at or after its expiry time.
    - Hits on expiring entries live for min(default TTL, time left until expire_at).
    - Misses live for the default TTL; this absorbs repeated-miss storms (scans).
    - `flush()` drops everything and bumps `generation`; it is what invalidation
      sources call. Results looked up before a flush are not stored after it.
    - The store is bounded; when full, expired entries go first, then the oldest insertions.

All operations take one lock, so many reader threads and one invalidation
listener can use the cache concurrently.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

log = logging.getLogger("surl.cache")


@dataclass(frozen=True)
class CachedResult:
    url: Optional[str]
    expires_at: float

    @property
    def found(self) -> bool:
        return self.url is not None


class ResultCache:
    """
    Thread-safe TTL cache of resolution results.

    Args:
        default_ttl (float): seconds a result is kept when nothing shorter applies.
        max_entries (int): upper bound on cached keys.
        clock (Callable[[], float]): unix-seconds clock, injectable for tests.
    """

    def __init__(self, default_ttl: float = 300, max_entries: int = 100_000,
                 clock: Callable[[], float] = time.time):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self.default_ttl = float(default_ttl)
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._lock = threading.Lock()
        self._store: "OrderedDict[str, CachedResult]" = OrderedDict()
        self._generation = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def ttl_for(self, expire_at: Optional[int], now: Optional[float] = None) -> float:
        """TTL for a result; `expire_at` is the entry's expiration (None for misses or non-expiring hits)."""
        if expire_at is None:
            return self.default_ttl
        now = self._clock() if now is None else now
        return min(self.default_ttl, expire_at - now)

    @property
    def generation(self) -> int:
        """Number of flushes so far; read it before a lookup and pass it to `set`."""
        with self._lock:
            return self._generation

    def get(self, key: str, now: Optional[float] = None) -> Optional[CachedResult]:
        now = self._clock() if now is None else now
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if now >= entry.expires_at:
                del self._store[key]
                return None
            return entry

    def set(self, key: str, url: Optional[str], ttl: float, now: Optional[float] = None,
            generation: Optional[int] = None) -> bool:
        """
        Store a result for `ttl` seconds. A non-positive ttl stores nothing.

        Args:
            generation (int, optional): value of `generation` taken before the
                result was looked up. If a flush happened since, the result may
                predate the change that caused it and is not stored.

        Returns:
            bool: True if the result was cached.
        """
        if ttl <= 0:
            return False
        now = self._clock() if now is None else now
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            self._store[key] = CachedResult(url=url, expires_at=now + ttl)
            self._store.move_to_end(key)
            if len(self._store) > self.max_entries:
                self._drop_expired(now)
            while len(self._store) > self.max_entries:
                self._store.popitem(last=False)
        return True

    def flush(self) -> None:
        with self._lock:
            dropped = len(self._store)
            self._store = OrderedDict()
            self._generation += 1
        log.info("cache flushed (%d entries dropped)", dropped)

    def _drop_expired(self, now: float) -> None:
        # caller holds the lock
        stale = [k for k, e in self._store.items() if now >= e.expires_at]
        for k in stale:
            del self._store[k]

    def subscribe(self, source) -> None:
        """Flush whenever `source` (an InvalidationSource) signals a data change."""
        source.subscribe(self.flush)
