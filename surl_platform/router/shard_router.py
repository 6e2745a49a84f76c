"""
Shard routing for SURL Platform.

Responsibilities:
    - Build the shard number -> backend table once, at startup
    - Reject ambiguous configurations (two backends claiming one shard)
    - Dispatch id lookups to the backend that owns the id's shard

The table is immutable for the router's lifetime; there are no live shard changes.
"""

import logging
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from ..errors import ConfigurationError
from ..manager.idgen import shard_of
from ..storage.base import BaseBackend, UrlEntry, is_visible, unix_now

log = logging.getLogger("surl.router")


class ShardRouter:
    def __init__(self, backends: Iterable[BaseBackend]):
        """
        Args:
            backends: one backend per shard.

        Raises:
            ConfigurationError: two backends report the same shard number.
        """
        table = {}
        for bk in backends:
            shard = bk.shard_number()
            if shard in table:
                raise ConfigurationError(f"duplicated shard number {shard} in the backends provided")
            table[shard] = bk
        self._table = MappingProxyType(table)
        log.info("shard router ready for shards %s", sorted(table))

    @property
    def shards(self) -> Mapping[int, BaseBackend]:
        return self._table

    def backend_for(self, entry_id: int) -> Optional[BaseBackend]:
        return self._table.get(shard_of(entry_id))

    def lookup(self, entry_id: int, now: Optional[int] = None) -> Optional[UrlEntry]:
        """
        Return the visible entry for `entry_id`, or None when the shard is unknown,
        the entry is absent or it has expired.

        Raises:
            StorageError: propagated from the backend.
        """
        bk = self.backend_for(entry_id)
        if bk is None:
            return None
        now = unix_now() if now is None else now
        entry = bk.query_by_id(entry_id, now)
        if entry is None or not is_visible(entry, now):
            return None
        return entry

    def close(self) -> None:
        for bk in self._table.values():
            bk.close()
