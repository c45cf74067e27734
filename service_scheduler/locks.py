"""Keyed exclusive locks with bounded acquisition."""

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator

from service_scheduler.errors import LockTimeoutError
from service_scheduler.logging_context import get_request_logger

logger = get_request_logger(__name__)


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLockManager:
    """
    One ``threading.Lock`` per key, created on first use and dropped once
    no thread holds or waits on it.

    Acquisition never blocks indefinitely: after ``timeout_sec`` the caller
    gets a retryable ``LockTimeoutError``.
    """

    def __init__(self, timeout_sec: float) -> None:
        self._timeout_sec = timeout_sec
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _checkout(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, key: Hashable, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        entry = self._checkout(key)
        try:
            if not entry.lock.acquire(timeout=self._timeout_sec):
                logger.warning("Lock timeout on %s after %.1fs", key, self._timeout_sec)
                raise LockTimeoutError(str(key), self._timeout_sec)
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(key, entry)
