"""
Invalidation event sources for the result cache.

A source tells its subscribers "the underlying data changed out-of-band".
The cache reacts with a whole-cache flush. Transports are interchangeable:

- LocalInvalidationSource: in-process signal (memory backends, tests)
- PollingInvalidationSource: polls a probe (e.g. backend data versions) and
  signals when its value changes
- PostgresNotifySource: LISTENs on a channel fed by `DBBackend(notify_channel=...)`

If a source is down the cache still works; staleness is then bounded by its TTL.
"""

import logging
import re
import threading
from typing import Any, Callable, List, Optional

import psycopg

log = logging.getLogger("surl.invalidation")

Listener = Callable[[], None]

_CHANNEL = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class InvalidationSource:
    """Base source: subscriber registry plus start/stop hooks."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Listener) -> None:
        with self._lock:
            self._listeners.append(callback)

    def notify(self) -> None:
        """Call every subscriber. A failing subscriber does not stop the others."""
        with self._lock:
            listeners = list(self._listeners)
        for cb in listeners:
            try:
                cb()
            except Exception:
                log.exception("invalidation listener %r failed", cb)

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass


class LocalInvalidationSource(InvalidationSource):
    """Signalled explicitly by in-process writers via `notify()`."""


class _BackgroundSource(InvalidationSource):
    thread_name = "surl-invalidation"

    def __init__(self) -> None:
        super().__init__()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _run(self) -> None:  # pragma: no cover
        raise NotImplementedError

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.thread_name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


class PollingInvalidationSource(_BackgroundSource):
    """
    Signal when `probe()` returns a different value than on the previous poll.

    Args:
        probe: cheap callable describing the data version (e.g. every backend's `data_version()`).
        interval: seconds between polls.
    """
    thread_name = "surl-invalidation-poll"

    def __init__(self, probe: Callable[[], Any], interval: float = 5.0) -> None:
        super().__init__()
        self.probe = probe
        self.interval = interval
        self._last: Any = None
        self._primed = False

    def check(self) -> bool:
        """Poll once; returns True if a change was signalled."""
        try:
            current = self.probe()
        except Exception as exc:
            log.warning("invalidation probe failed, keeping previous state: %s", exc)
            return False
        changed = self._primed and current != self._last
        self._last, self._primed = current, True
        if changed:
            self.notify()
        return changed

    def _run(self) -> None:
        self.check()
        while not self._stop_event.wait(self.interval):
            self.check()


class PostgresNotifySource(_BackgroundSource):
    """
    LISTEN on `channel` and signal on every notification.

    The cache is also flushed after each (re)connect, since changes made while
    disconnected were never delivered. Connection failures are logged and retried
    every `retry_interval` seconds.
    """
    thread_name = "surl-invalidation-pg"

    def __init__(self, dsn: str, channel: str = "surl_changes",
                 retry_interval: float = 5.0, wait_timeout: float = 1.0) -> None:
        super().__init__()
        if not _CHANNEL.match(channel):
            raise ValueError(f"invalid notification channel: {channel!r}")
        self.dsn = dsn
        self.channel = channel
        self.retry_interval = retry_interval
        self.wait_timeout = wait_timeout

    def _listen_once(self) -> None:
        with psycopg.connect(self.dsn, autocommit=True) as con:
            con.execute(f"LISTEN {self.channel}")
            log.info("listening for changes on channel %s", self.channel)
            self.notify()
            while not self._stop_event.is_set():
                for _ in con.notifies(timeout=self.wait_timeout):
                    self.notify()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self._listen_once()
            except psycopg.Error as exc:
                log.warning("change listener on %s failed, retrying in %.0fs: %s",
                            self.channel, self.retry_interval, exc)
                self._stop_event.wait(self.retry_interval)
