"""
Read path for SURL Platform: external id -> redirect target.

Order of work for `Resolver.resolve(external_id, now)`:
    1. cache (when configured) answers hits and confirmed misses
    2. the external id is decoded; a malformed id is NOT_FOUND, never an error
    3. the shard router picks the backend and filters expired entries
    4. the outcome is cached: hits with min(default TTL, time to expire_at),
       misses with the default TTL
       unless the cache was flushed while the lookup ran

Every kind of miss (malformed id, unknown shard, absent row, expired row)
collapses to the same NOT_FOUND outcome so callers learn nothing about which ids exist.
StorageError from a backend propagates and nothing is cached for that request.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..cache.cache import ResultCache
from ..manager.idgen import decode_id
from .shard_router import ShardRouter

log = logging.getLogger("surl.resolver")


@dataclass(frozen=True)
class Outcome:
    url: Optional[str] = None
    expire_at: Optional[int] = None

    @property
    def found(self) -> bool:
        return self.url is not None


NOT_FOUND = Outcome()


class Resolver:
    def __init__(self, router: ShardRouter, cache: Optional[ResultCache] = None):
        self.router = router
        self.cache = cache

    def resolve(self, external_id: str, now: Optional[int] = None) -> Outcome:
        """
        Resolve an external id to its destination.

        Args:
            external_id (str): final path segment of the short link.
            now (int, optional): unix seconds; defaults to the current time.

        Returns:
            Outcome: `Outcome(url, expire_at)` or NOT_FOUND.

        Raises:
            StorageError: the owning backend failed.
        """
        now = int(time.time()) if now is None else now
        generation = self.cache.generation if self.cache is not None else None

        if self.cache is not None:
            cached = self.cache.get(external_id, now)
            if cached is not None:
                return Outcome(url=cached.url) if cached.found else NOT_FOUND

        try:
            entry_id = decode_id(external_id)
        except ValueError:
            return NOT_FOUND

        entry = self.router.lookup(entry_id, now)
        if entry is None:
            if self.cache is not None:
                self.cache.set(external_id, None, self.cache.default_ttl, now, generation)
            return NOT_FOUND

        if self.cache is not None:
            self.cache.set(external_id, entry.url, self.cache.ttl_for(entry.expire_at, now), now, generation)
        return Outcome(url=entry.url, expire_at=entry.expire_at)
