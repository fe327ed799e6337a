"""Database locking helpers and connection error checks."""

from __future__ import annotations

import threading
from typing import Any


class NoopLocker:
    """A lock that never blocks."""

    def acquire(self) -> bool:
        return True

    def release(self) -> None:
        return None

    def __enter__(self) -> "NoopLocker":
        self.acquire()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.release()


def new_locker(driver: str):
    """Return a real mutex for sqlite3, and a no-op lock for other drivers."""
    if driver == "sqlite3":
        return threading.Lock()
    return NoopLocker()


def is_conn_reset(err: BaseException | None) -> bool:
    """Return True if the error says the connection was reset by the peer."""
    if err is None:
        return False
    return "connection reset by peer" in str(err)