"""
Unit tests for Resolver (cache -> router -> backend).

Covers:
    - Found / NotFound outcomes for live, absent, expired, malformed and foreign ids
    - Negative caching shields the backend from repeated misses
    - Invalidation lets a cached miss be re-resolved
    - Expiring hits are never served from cache past their expiration
    - Storage failures propagate and are never cached
    - Results looked up across a cache flush are not cached
"""

import pytest

from surl_platform.cache.cache import ResultCache
from surl_platform.cache.invalidation import LocalInvalidationSource
from surl_platform.errors import StorageError
from surl_platform.manager.idgen import SHARD_SHIFT, TIMESTAMP_SHIFT, encode_id
from surl_platform.manager.url_manager import UrlManager
from surl_platform.router.resolver import NOT_FOUND, Outcome, Resolver
from surl_platform.router.shard_router import ShardRouter
from surl_platform.storage.base import UrlEntry
from surl_platform.storage.storage import MemoryBackend

from conftest import NOW


class CountingBackend(MemoryBackend):
    def __init__(self, shard_number=0):
        super().__init__(shard_number)
        self.id_queries = 0

    def query_by_id(self, entry_id, now=None):
        self.id_queries += 1
        return super().query_by_id(entry_id, now)


class BrokenBackend(MemoryBackend):
    def query_by_id(self, entry_id, now=None):
        raise StorageError("database is locked")


@pytest.fixture
def counting():
    return CountingBackend(0)


@pytest.fixture
def cache(clock):
    return ResultCache(default_ttl=300, clock=clock)


@pytest.fixture
def resolver(counting, cache):
    return Resolver(ShardRouter([counting]), cache=cache)


@pytest.fixture
def mgr(counting, clock):
    return UrlManager(counting, clock=clock)


def test_found(resolver, mgr):
    entry_id = mgr.insert_or_reuse("https://a.example/x")
    outcome = resolver.resolve(encode_id(entry_id), NOW)
    assert outcome == Outcome(url="https://a.example/x")
    assert outcome.found


def test_found_without_cache(counting, mgr):
    entry_id = mgr.insert_or_reuse("https://a.example/x", NOW + 60)
    outcome = Resolver(ShardRouter([counting])).resolve(encode_id(entry_id), NOW)
    assert outcome == Outcome(url="https://a.example/x", expire_at=NOW + 60)


@pytest.mark.parametrize("external_id", ["", "0", "not-base58!", "Z" * 12])
def test_malformed_ids_are_not_found_and_not_cached(resolver, cache, counting, external_id):
    assert resolver.resolve(external_id, NOW) is NOT_FOUND
    assert counting.id_queries == 0
    assert len(cache) == 0


def test_unknown_shard_is_not_found(resolver, counting):
    foreign = encode_id((1 << TIMESTAMP_SHIFT) | (9 << SHARD_SHIFT))
    assert resolver.resolve(foreign, NOW) is NOT_FOUND
    assert counting.id_queries == 0


def test_negative_caching(resolver, counting, mgr):
    missing = encode_id(mgr.generator.generate())
    assert resolver.resolve(missing, NOW) is NOT_FOUND
    assert resolver.resolve(missing, NOW + 1) is NOT_FOUND
    assert counting.id_queries == 1


def test_negative_entry_expires_after_ttl(resolver, counting, mgr):
    missing = encode_id(mgr.generator.generate())
    resolver.resolve(missing, NOW)
    resolver.resolve(missing, NOW + 300)
    assert counting.id_queries == 2


def test_invalidation_reresolves_cached_miss(counting, cache, mgr):
    source = LocalInvalidationSource()
    cache.subscribe(source)
    resolver = Resolver(ShardRouter([counting]), cache=cache)

    entry_id = mgr.generator.generate()
    code = encode_id(entry_id)
    assert resolver.resolve(code, NOW) is NOT_FOUND

    # out-of-band write, invisible until the change signal arrives
    counting.insert_url(UrlEntry(entry_id, "https://late.example"))
    assert resolver.resolve(code, NOW) is NOT_FOUND

    source.notify()
    assert resolver.resolve(code, NOW).url == "https://late.example"


def test_expiring_hit_is_not_served_past_expiration(resolver, counting, mgr):
    code = encode_id(mgr.insert_or_reuse("https://soon.example", NOW + 2))
    assert resolver.resolve(code, NOW).url == "https://soon.example"
    assert resolver.resolve(code, NOW + 1).url == "https://soon.example"
    assert counting.id_queries == 1
    assert resolver.resolve(code, NOW + 2) is NOT_FOUND
    assert counting.id_queries == 2


def test_deleted_entry_is_not_found_after_flush(resolver, cache, mgr):
    entry_id = mgr.insert_or_reuse("https://a.example/x")
    code = encode_id(entry_id)
    assert resolver.resolve(code, NOW).found
    mgr.delete(code)
    cache.flush()
    assert resolver.resolve(code, NOW) is NOT_FOUND


def test_storage_error_propagates_and_is_not_cached(cache, clock):
    broken = BrokenBackend(0)
    resolver = Resolver(ShardRouter([broken]), cache=cache)
    code = encode_id(UrlManager(MemoryBackend(0), clock=clock).generator.generate())
    with pytest.raises(StorageError):
        resolver.resolve(code, NOW)
    assert len(cache) == 0


class WriteDuringLookupBackend(MemoryBackend):
    """Reads its snapshot, then lets a concurrent writer land before returning."""

    def __init__(self, shard_number=0, on_change=None):
        super().__init__(shard_number, on_change=on_change)
        self.pending = None

    def query_by_id(self, entry_id, now=None):
        result = super().query_by_id(entry_id, now)
        if self.pending is not None:
            entry, self.pending = self.pending, None
            self.insert_url(entry)
        return result


def test_flush_during_lookup_does_not_cache_stale_miss(cache, clock):
    bk = WriteDuringLookupBackend(0, on_change=cache.flush)
    resolver = Resolver(ShardRouter([bk]), cache=cache)
    entry_id = UrlManager(bk, clock=clock).generator.generate()
    code = encode_id(entry_id)

    bk.pending = UrlEntry(entry_id, "https://raced.example")
    assert resolver.resolve(code, NOW) is NOT_FOUND
    assert len(cache) == 0
    assert resolver.resolve(code, NOW + 1).url == "https://raced.example"


def test_flush_during_lookup_does_not_cache_stale_hit(cache, clock):
    bk = WriteDuringLookupBackend(0, on_change=cache.flush)
    resolver = Resolver(ShardRouter([bk]), cache=cache)
    mgr = UrlManager(bk, clock=clock)
    code = encode_id(mgr.insert_or_reuse("https://a.example/x"))

    # an unrelated write flushes the cache while the hit is being looked up
    bk.pending = UrlEntry(mgr.generator.generate(), "https://other.example")
    assert resolver.resolve(code, NOW).found
    assert len(cache) == 0
