"""
Unit tests for the in-memory shard backend (MemoryBackend).

Covers:
    - Insert and lookups with expiration filtering
    - Duplicate ids rejected as StorageError
    - Cleanup removes exactly the expired rows and publishes a new snapshot
    - Change hook and data version move on every mutation
"""

import pytest

from surl_platform.errors import ConfigurationError, StorageError
from surl_platform.storage.base import UrlEntry
from surl_platform.storage.storage import MemoryBackend

NOW = 1_700_000_000


@pytest.fixture
def backend():
    bk = MemoryBackend(shard_number=3)
    bk.insert_url(UrlEntry(1, "https://a.example"))
    bk.insert_url(UrlEntry(2, "https://a.example", NOW + 10))
    bk.insert_url(UrlEntry(3, "https://b.example", NOW - 1))
    return bk


def test_shard_number(backend):
    assert backend.shard_number() == 3


@pytest.mark.parametrize("shard", [-1, 1024])
def test_invalid_shard_rejected(shard):
    with pytest.raises(ConfigurationError):
        MemoryBackend(shard)


def test_query_by_id_honours_expiration(backend):
    assert backend.query_by_id(1, NOW).url == "https://a.example"
    assert backend.query_by_id(2, NOW + 9) is not None
    assert backend.query_by_id(2, NOW + 10) is None
    assert backend.query_by_id(3, NOW) is None
    assert backend.query_by_id(99, NOW) is None


def test_query_by_url_returns_visible_entries_only(backend):
    assert {e.id for e in backend.query_by_url("https://a.example", NOW)} == {1, 2}
    assert {e.id for e in backend.query_by_url("https://a.example", NOW + 10)} == {1}
    assert backend.query_by_url("https://b.example", NOW) == []


def test_duplicate_id_is_a_storage_error(backend):
    with pytest.raises(StorageError):
        backend.insert_url(UrlEntry(1, "https://other.example"))
    assert backend.query_by_id(1, NOW).url == "https://a.example"


def test_clear_expired_keeps_live_rows(backend):
    assert backend.count() == 3
    assert backend.clear_expired(NOW) == 1
    assert backend.count() == 2
    assert backend.clear_expired(NOW + 10) == 1
    assert backend.count() == 1
    assert backend.query_by_id(1, NOW + 10_000) is not None


def test_clear_expired_leaves_previous_snapshot_intact(backend):
    snapshot = backend._rows
    backend.clear_expired(NOW + 10)
    # a reader holding the old snapshot still sees every row
    assert set(snapshot) == {1, 2, 3}
    assert set(backend._rows) == {1}


def test_delete(backend):
    assert backend.delete_url(1) is True
    assert backend.delete_url(1) is False
    assert backend.count() == 2


def test_on_change_fires_on_mutations():
    calls = []
    bk = MemoryBackend(0, on_change=lambda: calls.append(1))
    bk.insert_url(UrlEntry(1, "https://a.example", NOW))
    bk.delete_url(42)            # no-op, no signal
    bk.clear_expired(NOW - 1)    # nothing expired, no signal
    bk.clear_expired(NOW)
    assert len(calls) == 2


def test_data_version_changes_on_every_write(backend):
    before = backend.data_version()
    backend.delete_url(1)
    backend.insert_url(UrlEntry(99, "https://swap.example"))
    after = backend.data_version()
    assert backend.count() == 3
    assert after != before
    backend.delete_url(12345)    # no-op
    assert backend.data_version() == after
