import threading
from contextlib import contextmanager


class KeyedLock:
    """
    One re-entrant lock per key.

    The configuration session takes the lock of the current user id around every
    read-modify-write of that user's configuration, so two mutations for the same
    user never interleave while different users proceed independently. Locks are
    re-entrant because a save can chain into a catalog sync that writes again.
    """

    def __init__(self):
        self._locks = {}
        self._guard = threading.Lock()

    def _lock_for(self, key) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key):
        """Context manager holding the lock for ``key``."""
        lock = self._lock_for(key)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()

    def __len__(self):
        with self._guard:
            return len(self._locks)
