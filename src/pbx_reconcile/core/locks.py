"""Per-key mutexes for serialising work on the same file or identifier."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLock:
    """Registry of re-entrant locks, one per key.

    Operations on the same key (a file path, an extension number) run one
    at a time; operations on different keys never block each other.
    Locks are re-entrant so a caller holding a path lock for a
    read-modify-write cycle can call ``ConfigStore.write()``, which takes
    the same lock again.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def get(self, key: str) -> threading.RLock:
        """Return the lock for *key*, creating it on first use."""
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Context manager holding the lock for *key*."""
        lock = self.get(key)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
