"""Per-key mutual exclusion for session writes and user reconciliation."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class KeyedLock:
    """One logical writer per key; different keys proceed concurrently.

    Locks are reference counted and dropped once no caller holds or waits on
    them, so the table does not grow with the number of sessions ever seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._refs: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            self._refs[key] = self._refs.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    del self._locks[key]

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)


def session_key(user_id: str, session_id: str) -> str:
    return f"session:{user_id}:{session_id}"


def user_key(user_id: str) -> str:
    return f"user:{user_id}"


__all__ = ["KeyedLock", "session_key", "user_key"]
