"""
UrlManager module for SURL Platform (write path).

Responsibilities:
    - Validate destination URLs and requested expirations
    - Deduplicate inserts by (url, expiration) within the bound shard
    - Allocate new ids via the shard's snowflake generator
    - Expose cleanup of expired entries and administrative deletion

Design notes:
    - A manager is bound to exactly one backend; dedupe never looks at other shards.
    - Reuse rules: a request without expiration reuses an existing entry without
      expiration; a request with expiration t reuses an entry whose expiration is
      exactly t. Nearby but different expirations create distinct entries.
    - The generator's shard must equal the backend's shard, so every stored id
      decodes back to the shard that stores it.
"""

import logging
import time
from typing import Callable, Optional
from urllib.parse import urlparse

from ..config import DEFAULT_EPOCH_MS
from ..errors import AlreadyExpired, ConfigurationError, ValidationError
from ..storage.base import BaseBackend, UrlEntry
from .idgen import SnowflakeGenerator, decode_id, encode_id, shard_of

log = logging.getLogger("surl.manager")


class UrlManager:
    """
    Coordinates creation and cleanup of entries on one shard.

    Args:
        backend (BaseBackend): shard the manager writes to.
        generator (SnowflakeGenerator, optional): id source; built from the
            backend's shard number and `epoch_ms` when omitted.
        epoch_ms (int): id epoch used when building the generator.
        clock (Callable[[], float]): unix-seconds clock, injectable for tests.
    """

    def __init__(
        self,
        backend: BaseBackend,
        generator: Optional[SnowflakeGenerator] = None,
        epoch_ms: int = DEFAULT_EPOCH_MS,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        shard = backend.shard_number()
        if generator is None:
            generator = SnowflakeGenerator(shard, epoch_ms)
        elif generator.shard_number != shard:
            raise ConfigurationError(
                f"generator shard {generator.shard_number} does not match backend shard {shard}"
            )
        self.generator = generator
        self._clock = clock

    # ---------------------------------------------------------------------
    # Encoding / Validation Helpers
    # ---------------------------------------------------------------------
    @staticmethod
    def get_url(entry_id: int) -> str:
        """External (Base58) form of an id, used as the short link's last path segment."""
        return encode_id(entry_id)

    def _validate_url(self, url: str) -> None:
        """
        Validate that a URL is absolute: a scheme and a network location.

        Raises:
            ValidationError: If the URL is malformed.
        """
        try:
            parsed = urlparse(url)
        except ValueError as exc:
            raise ValidationError("Invalid URL format") from exc
        if not parsed.scheme or not parsed.netloc:
            raise ValidationError("Invalid URL format")

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    def insert_or_reuse(self, url: str, expire_at: Optional[int] = None) -> int:
        """
        Return an id pointing at `url`, reusing an existing one when allowed.

        Rules:
            - `expire_at` None or <= 0 means "never expires".
            - A positive `expire_at` that is not in the future is rejected.
            - Reuse an entry with the same url and the same expiration class
              (both none, or exactly equal); otherwise insert a new entry.

        Args:
            url (str): destination URL.
            expire_at (Optional[int]): unix seconds after which the link stops resolving.

        Returns:
            int: the new or reused id.

        Raises:
            ValidationError: malformed URL.
            AlreadyExpired: expiration already passed; nothing stored.
            StorageError: backend failure.
        """
        self._validate_url(url)
        if expire_at is not None and expire_at <= 0:
            expire_at = None

        now = int(self._clock())
        if expire_at is not None and expire_at <= now:
            raise AlreadyExpired("already expired")

        for entry in self.backend.query_by_url(url, now):
            if entry.expire_at == expire_at:
                return entry.id

        entry_id = self.generator.generate()
        self.backend.insert_url(UrlEntry(id=entry_id, url=url, expire_at=expire_at))
        log.info("stored %s -> %s (expire_at=%s)", encode_id(entry_id), url, expire_at)
        return entry_id

    def clean(self, now: Optional[int] = None) -> int:
        """Remove every entry expired as of `now` (captured once); returns removed count."""
        now = int(self._clock()) if now is None else now
        return self.backend.clear_expired(now)

    def delete(self, external_id: str) -> bool:
        """
        Delete one entry by its external id.

        Returns:
            bool: False when the id is malformed, belongs to another shard or is absent.
        """
        try:
            entry_id = decode_id(external_id)
        except ValueError:
            return False
        if shard_of(entry_id) != self.generator.shard_number:
            log.warning("refusing to delete %s: owned by shard %d", external_id, shard_of(entry_id))
            return False
        return self.backend.delete_url(entry_id)
