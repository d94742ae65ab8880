"""Advisory lock serializing access to the package database."""

import fcntl
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pmcache.errors import StoreLockedError

logger = logging.getLogger(__name__)


class StoreLock:
    """Exclusive ``flock(2)`` on a file next to the database.

    The package database does not support concurrent writers, and opening it
    may drop and recreate every table, so every process that opens it must hold
    this lock for as long as it uses the database.
    """

    def __init__(self, lock_path: Path):
        self.lock_path = lock_path
        self._fd = -1

    @property
    def held(self) -> bool:
        return self._fd >= 0

    def acquire(self) -> None:
        """Take the lock without waiting.

        Raises:
            StoreLockedError: if another holder has it.
        """
        if self.held:
            return
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            os.close(fd)
            raise StoreLockedError(
                f"Unable to acquire lock {self.lock_path}: the package database is in use by another process"
            ) from None
        self._fd = fd
        logger.debug(f"Acquired {self.lock_path}")

    def release(self) -> None:
        """Release the lock. Does nothing if it is not held."""
        if not self.held:
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = -1
        logger.debug(f"Released {self.lock_path}")


@contextmanager
def store_lock(lock_path: Path) -> Iterator[StoreLock]:
    lock = StoreLock(lock_path)
    lock.acquire()
    try:
        yield lock
    finally:
        lock.release()
