"""
Storage module for SURL Platform (in-memory implementation).

Responsibilities:
    - Store url entries of one shard
    - Provide lookups by id and by destination URL, honouring expiration
    - Remove expired entries atomically

Design:
    - Copy-on-write snapshot: writers take a lock, build a new dict and publish
      it with a single reference assignment. Readers never lock; they grab the
      current dict once and work on it, so they can never observe a half-applied
      write or a partially cleared table.
    - `on_change` is called after every successful mutation; wire it to
      `LocalInvalidationSource.notify` to flush redirect caches in-process.
    - Intended for tests and single-process demos. Inserts are O(n).
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

from ..errors import ConfigurationError, StorageError
from ..manager.idgen import MAX_SHARD
from .base import BaseBackend, UrlEntry, is_visible, unix_now

log = logging.getLogger("surl.storage")


class MemoryBackend(BaseBackend):
    def __init__(self, shard_number: int = 0, on_change: Optional[Callable[[], None]] = None):
        """
        Initialize an empty shard.

        Internal schema:
            self._rows = { id: UrlEntry(id, url, expire_at) }
        """
        if not 0 <= shard_number <= MAX_SHARD:
            raise ConfigurationError(f"{shard_number} is not a valid shard number")
        self._shard = shard_number
        self._rows: Dict[int, UrlEntry] = {}
        self._write_lock = threading.Lock()
        self._version = 0
        self.on_change = on_change

    def _publish(self, rows: Dict[int, UrlEntry]) -> None:
        self._rows = rows
        self._version += 1
        if self.on_change is not None:
            self.on_change()

    def insert_url(self, entry: UrlEntry) -> None:
        with self._write_lock:
            if entry.id in self._rows:
                raise StorageError(f"duplicate id {entry.id}")
            rows = dict(self._rows)
            rows[entry.id] = entry
            self._publish(rows)

    def query_by_url(self, url: str, now: Optional[int] = None) -> List[UrlEntry]:
        now = unix_now() if now is None else now
        rows = self._rows
        return [e for e in rows.values() if e.url == url and is_visible(e, now)]

    def query_by_id(self, entry_id: int, now: Optional[int] = None) -> Optional[UrlEntry]:
        now = unix_now() if now is None else now
        entry = self._rows.get(entry_id)
        if entry is None or not is_visible(entry, now):
            return None
        return entry

    def clear_expired(self, now: Optional[int] = None) -> int:
        now = unix_now() if now is None else now
        with self._write_lock:
            current = self._rows
            kept = {k: e for k, e in current.items() if is_visible(e, now)}
            removed = len(current) - len(kept)
            if removed:
                self._publish(kept)
        log.info("shard %d: cleared %d expired entries", self._shard, removed)
        return removed

    def delete_url(self, entry_id: int) -> bool:
        with self._write_lock:
            if entry_id not in self._rows:
                return False
            rows = dict(self._rows)
            del rows[entry_id]
            self._publish(rows)
            return True

    def count(self) -> int:
        return len(self._rows)

    def data_version(self) -> int:
        return self._version

    def shard_number(self) -> int:
        return self._shard
