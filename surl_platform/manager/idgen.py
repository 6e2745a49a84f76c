"""
Identifier generation for surl_platform.

Provided pieces:
- SnowflakeGenerator: per-shard, monotonically increasing 64-bit ids
- encode_id / decode_id: external Base58 (Flickr alphabet) representation of an id
- shard_of: recover the shard number embedded in an id

Id layout (most significant bit first):

    | 1 bit | 41 bits                   | 10 bits | 12 bits  |
    | 0     | ms since configured epoch | shard   | sequence |

Notes:
- The epoch is passed in explicitly (see `surl_platform.config.settings.EPOCH_MS`);
  there is no module-level mutable epoch.
- Generation is serialized through one lock per generator. When the 12-bit
  sequence is exhausted within a millisecond, the caller spins until the next one.
- A clock that moves backwards raises ClockRegression instead of risking a duplicate.
"""

import threading
import time
from typing import Callable, Optional

from ..errors import ClockRegression, ConfigurationError

SHARD_BITS = 10
SEQUENCE_BITS = 12
TIMESTAMP_BITS = 41

MAX_SHARD = (1 << SHARD_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1
MAX_TIMESTAMP = (1 << TIMESTAMP_BITS) - 1
SHARD_SHIFT = SEQUENCE_BITS
TIMESTAMP_SHIFT = SHARD_BITS + SEQUENCE_BITS

MAX_ID = (1 << 63) - 1

_BASE58_ALPHABET = "123456789abcdefghijkmnopqrstuvwxyzABCDEFGHJKLMNPQRSTUVWXYZ"
_BASE58_BASE = len(_BASE58_ALPHABET)
_BASE58_INDEX = {ch: i for i, ch in enumerate(_BASE58_ALPHABET)}


def encode_id(num: int) -> str:
    """
    Convert a non-negative id to its external Base58 form.
    0 -> "1", 57 -> "Z", 58 -> "21"
    """
    if num < 0:
        raise ValueError("id must be non-negative")
    if num == 0:
        return _BASE58_ALPHABET[0]
    out = []
    while num > 0:
        num, rem = divmod(num, _BASE58_BASE)
        out.append(_BASE58_ALPHABET[rem])
    return "".join(reversed(out))


def decode_id(text: str) -> int:
    """
    Parse an external Base58 id.

    Raises:
        ValueError: empty input, a character outside the alphabet, or a value
            that does not fit a positive signed 64-bit integer.
    """
    if not text:
        raise ValueError("empty id")
    num = 0
    for ch in text:
        digit = _BASE58_INDEX.get(ch)
        if digit is None:
            raise ValueError(f"invalid character {ch!r} in id")
        num = num * _BASE58_BASE + digit
        if num > MAX_ID:
            raise ValueError("id out of range")
    return num


def shard_of(num: int) -> int:
    """Shard number embedded in an id."""
    return (num >> SHARD_SHIFT) & MAX_SHARD


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class SnowflakeGenerator:
    """
    Thread-safe snowflake id generator bound to one shard.

    Args:
        shard_number (int): 0..1023, must equal the owning backend's shard number.
        epoch_ms (int): custom epoch in unix milliseconds.
        clock (Callable[[], int], optional): millisecond clock, injectable for tests.
    """

    def __init__(self, shard_number: int, epoch_ms: int, clock: Optional[Callable[[], int]] = None):
        if not 0 <= shard_number <= MAX_SHARD:
            raise ConfigurationError(f"{shard_number} is not a valid shard number (0..{MAX_SHARD})")
        self.shard_number = shard_number
        self.epoch_ms = epoch_ms
        self._clock = clock or _now_ms
        self._lock = threading.Lock()
        self._last = -1
        self._sequence = 0

    def _elapsed(self) -> int:
        elapsed = self._clock() - self.epoch_ms
        if elapsed < 0:
            raise ConfigurationError("id epoch lies in the future")
        if elapsed > MAX_TIMESTAMP:
            raise ConfigurationError("id timestamp space exhausted for this epoch")
        return elapsed

    def generate(self) -> int:
        """
        Return the next id for this shard.

        Raises:
            ClockRegression: the clock reads earlier than the last generated id.
        """
        with self._lock:
            now = self._elapsed()
            if now < self._last:
                raise ClockRegression(
                    f"clock moved backwards by {self._last - now} ms; refusing to generate id"
                )
            if now == self._last:
                self._sequence = (self._sequence + 1) & MAX_SEQUENCE
                if self._sequence == 0:
                    # Sequence exhausted for this millisecond.
                    while now <= self._last:
                        now = self._elapsed()
            else:
                self._sequence = 0
            self._last = now
            return (now << TIMESTAMP_SHIFT) | (self.shard_number << SHARD_SHIFT) | self._sequence
