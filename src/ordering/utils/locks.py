"""Per-key in-process locks.

Serialise read-modify-write sequences on a single cart or a single order
within one process. Cross-process writers are caught by the event store's
expected-version check instead.
"""

import threading
from contextlib import contextmanager


class KeyedLocks:
    """A lock per key, dropped again once nobody holds or waits for it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._waiters: dict[str, int] = {}

    @contextmanager
    def hold(self, key):
        key = str(key)
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


cart_locks = KeyedLocks()
order_locks = KeyedLocks()
