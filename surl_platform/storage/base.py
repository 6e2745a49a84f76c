"""
Base storage interface for SURL Platform.

Purpose:
    Define a small, stable contract that every shard backend
    (in-memory, PostgreSQL, ...) implements, so the manager, router and
    resolver never depend on where entries live.

Contract highlights:
    - Reads only return entries visible at the given time: `expire_at` is None
      or strictly later than `now` (unix seconds).
    - `clear_expired` is atomic with respect to readers: a replacement dataset
      is built first and published in one step, never row-by-row.
    - Any engine failure is raised as `surl_platform.errors.StorageError`.

Testing & Coverage:
    These are abstract methods and are not executed directly in tests.
    We annotate them with `# pragma: no cover` so coverage tools don't
    penalize the project for un-runnable abstract declarations.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Hashable, List, Optional

__all__ = ["UrlEntry", "BaseBackend", "is_visible", "unix_now"]


@dataclass(frozen=True)
class UrlEntry:
    """One stored mapping. Immutable once stored."""
    id: int
    url: str
    expire_at: Optional[int] = None


def unix_now() -> int:
    return int(time.time())


def is_visible(entry: UrlEntry, now: int) -> bool:
    """True while the entry has not expired as of `now`."""
    return entry.expire_at is None or now < entry.expire_at


class BaseBackend(ABC):
    """Abstract base class for shard backends."""

    @abstractmethod  # pragma: no cover
    def insert_url(self, entry: UrlEntry) -> None:
        """
        Persist a new entry.

        Raises:
            StorageError: on engine failure, including a duplicate id.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def query_by_url(self, url: str, now: Optional[int] = None) -> List[UrlEntry]:
        """Return all visible entries pointing at `url`."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def query_by_id(self, entry_id: int, now: Optional[int] = None) -> Optional[UrlEntry]:
        """Return the visible entry with this id, or None."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def clear_expired(self, now: Optional[int] = None) -> int:
        """
        Atomically drop every entry with `expire_at <= now`.

        Returns:
            int: number of removed entries.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def delete_url(self, entry_id: int) -> bool:
        """Remove one entry. Returns False if it did not exist."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def count(self) -> int:
        """Number of stored rows, expired-but-not-cleaned ones included."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def data_version(self) -> Hashable:
        """Opaque value that changes on every successful write (used for change polling)."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def shard_number(self) -> int:
        """Shard this backend stores; every stored id decodes to it."""
        raise NotImplementedError

    def close(self) -> None:
        """Release engine resources. No-op by default."""
