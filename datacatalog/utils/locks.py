import logging
import threading
from contextlib import contextmanager
from typing import Dict, Tuple

logger = logging.getLogger(__name__)

LockKey = Tuple[str, int]


class DataSetLockManager:
    """
    Process-local locks that serialize imports into the same data set.

    An import deletes and rewrites every fact of its data set, so two imports
    into one data set must never interleave. A lock lives only while some
    import holds or waits for it.
    """
    _locks: Dict[LockKey, threading.Lock] = {}
    _users: Dict[LockKey, int] = {}
    _registry_lock = threading.Lock()

    @classmethod
    def _checkout(cls, key: LockKey) -> threading.Lock:
        with cls._registry_lock:
            lock = cls._locks.setdefault(key, threading.Lock())
            cls._users[key] = cls._users.get(key, 0) + 1
            return lock

    @classmethod
    def _checkin(cls, key: LockKey) -> None:
        with cls._registry_lock:
            cls._users[key] -= 1
            if not cls._users[key]:
                del cls._users[key]
                del cls._locks[key]

    @classmethod
    def active_keys(cls):
        with cls._registry_lock:
            return sorted(cls._locks)

    @classmethod
    @contextmanager
    def acquire(cls, catalog: str, data_set_id: int):
        """Hold the import lock of one data set for the duration of the block."""
        key = (catalog, data_set_id)
        lock = cls._checkout(key)
        try:
            if not lock.acquire(blocking=False):
                logger.info("Waiting for running import into data set %s of catalog '%s'", data_set_id, catalog)
                lock.acquire()
            try:
                yield
            finally:
                lock.release()
        finally:
            cls._checkin(key)
