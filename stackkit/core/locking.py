"""
Advisory locking for the shared dependency cache.

A cache root is shared by every build that runs on the same machine, but the
supply pipeline assumes it owns the cache for the whole run: stale-version
eviction and the end-of-run sweep delete entries another run could be
copying. The lock serialises runs per cache root using the `filelock`
library, which works across processes and is released if the holder dies.

Usage:
    from stackkit.core.locking import cache_lock

    with cache_lock(cache_root, timeout=300):
        # evict, install, sweep
        pass
"""

import logging
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout as LockTimeout

from stackkit.core.exceptions import CacheLockTimeout

logger = logging.getLogger(__name__)


def lock_path_for(cache_root: Path) -> Path:
    """
    Return the lock file path for a cache root.

    The lock lives next to the root, not inside it, because the root's
    contents are wiped on format migration and in no-cache mode.
    """
    cache_root = Path(cache_root)
    return cache_root.parent / f"{cache_root.name}.lock"


class CacheLock:
    """
    Holds the advisory lock on one cache root.

    Attributes:
        lock_path: Path of the lock file
        timeout: Seconds to wait before giving up (negative waits forever)
    """

    def __init__(self, cache_root: Path, timeout: float = 300):
        self.lock_path = lock_path_for(cache_root)
        self.timeout = timeout
        self._lock = FileLock(self.lock_path, timeout=timeout)

    @property
    def is_locked(self) -> bool:
        return self._lock.is_locked

    def acquire(self):
        """
        Acquire the lock.

        Raises:
            CacheLockTimeout: If lock can't be acquired within timeout
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._lock.acquire()
        except LockTimeout as e:
            logger.error(
                f"Could not acquire cache lock after {self.timeout}s. "
                "Another supply run may be using this cache."
            )
            raise CacheLockTimeout(
                f"Could not acquire cache lock {self.lock_path} after {self.timeout}s. "
                "Another supply run may be using this cache."
            ) from e
        logger.debug(f"Acquired cache lock: {self.lock_path}")

    def release(self):
        if self._lock.is_locked:
            self._lock.release()
            logger.debug(f"Released cache lock: {self.lock_path}")


@contextmanager
def cache_lock(cache_root: Path, timeout: float = 300):
    """
    Context manager holding the cache lock for the duration of the block.

    Raises:
        CacheLockTimeout: If lock can't be acquired within timeout

    Example:
        >>> with cache_lock(Path('/cache/dependencies'), timeout=30):
        ...     session.sweep()
    """
    lock = CacheLock(cache_root, timeout=timeout)
    lock.acquire()
    try:
        yield lock
    finally:
        lock.release()


__all__ = [
    "CacheLock",
    "cache_lock",
    "lock_path_for",
    "LockTimeout",
]
