"""
Storage factory – build shard backends from config (lazy env version)
=====================================================================

This module centralizes selection of the storage backend (in-memory vs DB)
so the rest of the app can stay ignorant of where data lives.

- Reads environment **at call time** to avoid stale values in tests.
- Imports the DB backend **only if** the selected backend is "postgres".

Environment variables
---------------------
- SURL_STORAGE_BACKEND: "memory" (default) or "postgres"
- SURL_DB_DSNS:         comma-separated DSNs, one per shard (postgres)
- SURL_DB_TABLE:        entry table name (postgres)
- SURL_MEMORY_SHARDS:   comma-separated shard numbers (memory)
- SURL_NOTIFY_CHANNEL:  channel passed to DB backends for change notification
"""

import logging
from typing import List, Optional

from surl_platform.config import load_settings
from surl_platform.errors import ConfigurationError
from surl_platform.storage.base import BaseBackend
from surl_platform.storage.storage import MemoryBackend

log = logging.getLogger("surl.storage")


def get_backend(
    backend: Optional[str] = None,
    shard: Optional[int] = None,
    dsn: Optional[str] = None,
    create: bool = False,
    **kwargs,
) -> BaseBackend:
    """
    Return one shard backend.

    Parameters
    ----------
    backend : str, optional
        "memory" or "postgres". If omitted, reads SURL_STORAGE_BACKEND.
    shard : int, optional
        Shard number. Required for memory backends and for `create=True`.
    dsn : str, optional
        Postgres DSN; defaults to the first entry of SURL_DB_DSNS.
    create : bool
        Postgres only: create tables and bind the database to `shard` (writer side).
    kwargs : dict
        Extra args for the backend constructor (e.g. table=..., notify_channel=...).
    """
    cfg = load_settings()
    be = (backend or cfg.STORAGE_BACKEND).lower()
    log.debug("selected storage backend: %r", be)

    if be == "memory":
        return MemoryBackend(shard_number=cfg.SHARD if shard is None else shard)

    if be == "postgres":
        dsn = dsn or (cfg.DB_DSNS[0] if cfg.DB_DSNS else "")
        if not dsn:
            raise ConfigurationError("a DSN is required for the postgres backend (env SURL_DB_DSNS)")
        # Local import to avoid hard dependency when not using postgres
        from surl_platform.storage.db_storage import DBBackend

        kwargs.setdefault("table", cfg.DB_TABLE)
        bk = DBBackend(dsn=dsn, **kwargs)
        if create:
            bk.initialize(cfg.SHARD if shard is None else shard)
        return bk

    raise ConfigurationError(f"Unknown storage backend: {be!r}")


def get_backends(backend: Optional[str] = None, **kwargs) -> List[BaseBackend]:
    """
    Return the read-side backend set, one per configured shard.

    Memory mode builds one empty backend per SURL_MEMORY_SHARDS entry; postgres
    mode opens one backend per SURL_DB_DSNS entry (shard numbers come from the
    databases themselves).
    """
    cfg = load_settings()
    be = (backend or cfg.STORAGE_BACKEND).lower()
    if be == "memory":
        return [get_backend("memory", shard=s) for s in cfg.MEMORY_SHARDS]
    if be == "postgres":
        if not cfg.DB_DSNS:
            raise ConfigurationError("a DSN is required for the postgres backend (env SURL_DB_DSNS)")
        return [get_backend("postgres", dsn=d, **kwargs) for d in cfg.DB_DSNS]
    raise ConfigurationError(f"Unknown storage backend: {be!r}")
