"""
Runtime configuration for SURL Platform
=======================================

Simple settings module that reads from environment variables (only here),
and exposes a stable `settings` object for the rest of the codebase.
Avoid reading env vars anywhere else; import from this module instead.
`load_settings()` re-reads the environment (used by tests and entry points).

Storage
-------
- SURL_STORAGE_BACKEND  : "memory" (default) or "postgres"
- SURL_DB_DSNS          : comma-separated DSNs, one database per shard
- SURL_DB_TABLE         : table holding url entries (default "surl_url")
- SURL_MEMORY_SHARDS    : comma-separated shard numbers for memory mode (default "0")

Identifiers
-----------
- SURL_SHARD            : shard number used by the admin CLI (default 1)
- SURL_EPOCH_MS         : id epoch in ms (default 1657436936000, 2022-07-10T07:08:56Z)

Redirect server
---------------
- SURL_BASE_URL         : base URL short links live under (default "http://localhost:8080/")
- SURL_STRICT_HOST      : "1"/"true" rejects requests for other hosts

Cache
-----
- SURL_CACHE_ENABLED    : "1"/"true" (default) enables the result cache
- SURL_CACHE_TTL        : default TTL seconds (default 300)
- SURL_CACHE_MAX_ENTRIES: upper bound on cached keys (default 100000)
- SURL_INVALIDATION     : "none" (default), "postgres" (LISTEN/NOTIFY) or "poll"
- SURL_NOTIFY_CHANNEL   : LISTEN/NOTIFY channel (default "surl_changes")
- SURL_POLL_INTERVAL    : seconds between polls for "poll" (default 5)

Logging
-------
- SURL_LOG_LEVEL        : default "INFO"
"""

import os
from typing import List

DEFAULT_EPOCH_MS = 1657436936000


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class _Settings:
    def __init__(self) -> None:
        # -------- Storage --------
        self.STORAGE_BACKEND: str = os.getenv("SURL_STORAGE_BACKEND", "memory").strip().lower()
        self.DB_DSNS: List[str] = _get_list("SURL_DB_DSNS")
        self.DB_TABLE: str = os.getenv("SURL_DB_TABLE", "surl_url").strip() or "surl_url"
        self.MEMORY_SHARDS: List[int] = [
            int(s) for s in _get_list("SURL_MEMORY_SHARDS", "0") if s.lstrip("-").isdigit()
        ]

        # -------- Identifiers --------
        self.SHARD: int = _get_int("SURL_SHARD", 1)
        self.EPOCH_MS: int = _get_int("SURL_EPOCH_MS", DEFAULT_EPOCH_MS)

        # -------- Redirect server --------
        self.BASE_URL: str = os.getenv("SURL_BASE_URL", "http://localhost:8080/")
        self.STRICT_HOST: bool = _get_bool("SURL_STRICT_HOST", False)

        # -------- Cache --------
        self.CACHE_ENABLED: bool = _get_bool("SURL_CACHE_ENABLED", True)
        self.CACHE_TTL: int = max(1, _get_int("SURL_CACHE_TTL", 300))
        self.CACHE_MAX_ENTRIES: int = max(1, _get_int("SURL_CACHE_MAX_ENTRIES", 100_000))
        self.INVALIDATION: str = os.getenv("SURL_INVALIDATION", "none").strip().lower()
        self.NOTIFY_CHANNEL: str = os.getenv("SURL_NOTIFY_CHANNEL", "surl_changes").strip()
        self.POLL_INTERVAL: int = max(1, _get_int("SURL_POLL_INTERVAL", 5))

        # -------- Logging --------
        self.LOG_LEVEL: str = os.getenv("SURL_LOG_LEVEL", "INFO").strip().upper()


def load_settings() -> _Settings:
    """Build a fresh settings object from the current environment."""
    return _Settings()


settings = load_settings()
