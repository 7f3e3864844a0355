"""
Persistent dependency cache shared across supply runs.

Layout:
    <cache_root>/<format_version>/<name>-<version>/...

The cache survives between builds of an application. Each run opens a
session which loads the entries left by earlier runs as UNMARKED; entries the
run installs are marked IN_USE, other versions of the same dependency are
evicted as soon as the new one is marked, and whatever is still UNMARKED at
the end of the run is swept.

Bumping the format version invalidates every entry at once: opening a cache
whose <format_version> directory does not exist wipes the cache root.
"""

import enum
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

from stackkit.core.exceptions import CacheRootUnavailable
from stackkit.core.filesystem import FilesystemError, remove_all_contents, safe_rmtree
from stackkit.core.locking import CacheLock

logger = logging.getLogger(__name__)

DEFAULT_FORMAT_VERSION = "v1"

# "<name>-<version>" where the version starts with a digit, so "logstash-6.4.0"
# belongs to "logstash" but "logstash-plugins-6.4.0" does not.
_ENTRY_RE = re.compile(r"^(?P<name>.+?)-(?P<version>\d.*)$")


class EntryState(enum.Enum):
    """Per-run state of a cache entry."""

    UNMARKED = "unmarked"
    IN_USE = "in_use"
    DELETED = "deleted"


def entry_belongs_to(entry_name: str, dependency_name: str) -> bool:
    """Return True if entry_name is a cached version of dependency_name."""
    prefix = f"{dependency_name}-"
    if not entry_name.startswith(prefix):
        return False
    rest = entry_name[len(prefix):]
    return bool(rest) and rest[0].isdigit()


def split_entry_name(entry_name: str) -> Optional[str]:
    """Return the dependency name part of '<name>-<version>', if it has one."""
    match = _ENTRY_RE.match(entry_name)
    return match.group("name") if match else None


class CacheStore:
    """
    Owns the cache root and hands out per-run sessions.

    Example:
        >>> store = CacheStore(Path("/tmp/cache/dependencies"), "v1")
        >>> with store.open(no_cache=False) as session:
        ...     installer.install(jq)
        ...     session.sweep()
    """

    def __init__(
        self,
        cache_root: Path,
        format_version: str = DEFAULT_FORMAT_VERSION,
        lock_timeout: float = 300,
    ):
        """
        Args:
            cache_root: Root directory of the dependency cache
            format_version: Tag partitioning the cache by layout version
            lock_timeout: Seconds to wait for another run's cache lock
        """
        self.cache_root = Path(cache_root).absolute()
        self.format_version = format_version
        self.lock_timeout = lock_timeout

    @property
    def format_dir(self) -> Path:
        return self.cache_root / self.format_version

    def open(self, no_cache: bool = False) -> "CacheSession":
        """
        Open a session for one supply run.

        Args:
            no_cache: Wipe the cache first and keep nothing after the run

        Returns:
            CacheSession holding the cache lock until closed

        Raises:
            CacheRootUnavailable: If the cache root cannot be inspected or created
            CacheLockTimeout: If another run holds the cache
        """
        lock = CacheLock(self.cache_root, timeout=self.lock_timeout)
        try:
            lock.acquire()
        except OSError as e:
            raise CacheRootUnavailable(
                f"Cannot create cache lock next to {self.cache_root}: {e}"
            ) from e

        try:
            self._prepare(no_cache)
            entries = self._scan()
        except BaseException:
            lock.release()
            raise

        return CacheSession(self, entries, lock, no_cache)

    def _prepare(self, no_cache: bool):
        try:
            if no_cache:
                logger.info(f"Cache disabled, clearing {self.cache_root}")
                remove_all_contents(self.cache_root)
            elif not self.format_dir.is_dir():
                logger.info(
                    f"Cache format {self.format_version} not found, clearing {self.cache_root}"
                )
                remove_all_contents(self.cache_root)

            self.format_dir.mkdir(parents=True, exist_ok=True)
        except (OSError, FilesystemError) as e:
            raise CacheRootUnavailable(
                f"Cache root {self.cache_root} is unavailable: {e}"
            ) from e

    def _scan(self) -> Dict[str, EntryState]:
        try:
            names = sorted(p.name for p in self.format_dir.iterdir())
        except OSError as e:
            raise CacheRootUnavailable(
                f"Failed reading cache directory {self.format_dir}: {e}"
            ) from e

        entries = {}
        for name in names:
            if name.startswith("."):
                # publish directory left behind by an interrupted run
                logger.debug(f"--> removing unfinished publish '{name}'")
                try:
                    safe_rmtree(self.format_dir / name, require_prefix=self.format_dir)
                except FilesystemError as e:
                    logger.warning(f"Failed to delete unfinished publish '{name}': {e}")
                continue
            entries[name] = EntryState.UNMARKED
            logger.debug(f"--> added dependency '{name}' to cache list")
        return entries


class CacheSession:
    """
    In-use bookkeeping for the cache during one supply run.

    Attributes:
        store: The CacheStore this session belongs to
        no_cache: Whether entries are discarded after staging
    """

    def __init__(
        self,
        store: CacheStore,
        entries: Dict[str, EntryState],
        lock: Optional[CacheLock] = None,
        no_cache: bool = False,
    ):
        self.store = store
        self.no_cache = no_cache
        self._entries = entries
        self._lock = lock

    def __enter__(self) -> "CacheSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def format_dir(self) -> Path:
        return self.store.format_dir

    def path(self, full_name: str) -> Path:
        """Cache location for full_name (whether or not it exists)."""
        return self.format_dir / full_name

    def has(self, full_name: str) -> bool:
        """True if full_name is a live (not deleted) entry of this session."""
        state = self._entries.get(full_name)
        return state is not None and state is not EntryState.DELETED

    def state(self, full_name: str) -> Optional[EntryState]:
        return self._entries.get(full_name)

    def entries(self) -> Dict[str, EntryState]:
        """Snapshot of entry states."""
        return dict(self._entries)

    def add(self, full_name: str):
        """Record a newly published entry as UNMARKED."""
        self._entries.setdefault(full_name, EntryState.UNMARKED)

    def forget(self, full_name: str):
        """Record that full_name was removed from disk outside the session."""
        if full_name in self._entries:
            self._entries[full_name] = EntryState.DELETED

    def mark_in_use(self, full_name: str, name: Optional[str] = None):
        """
        Mark full_name as needed by this run.

        Other cached versions of the same dependency are deleted first, so
        at most one version per dependency stays in the cache. Deletion
        failures are logged and do not stop the run.

        Args:
            full_name: Cache key "<name>-<version>"
            name: Dependency name; parsed from full_name when omitted
        """
        name = name or split_entry_name(full_name) or full_name
        self.evict_other_versions(name, keep=full_name)
        self._entries[full_name] = EntryState.IN_USE

    def evict_other_versions(self, name: str, keep: str) -> List[str]:
        """Delete cached versions of name other than keep. Returns evicted names."""
        evicted = []
        for entry, state in self._entries.items():
            if entry == keep or state is EntryState.DELETED:
                continue
            if not entry_belongs_to(entry, name):
                continue

            logger.debug(
                f"--> deleting unused dependency version '{entry}' from application cache"
            )
            self._entries[entry] = EntryState.DELETED
            evicted.append(entry)
            try:
                safe_rmtree(self.path(entry), require_prefix=self.format_dir)
            except (FilesystemError, OSError) as e:
                logger.warning(f"Failed to delete cached '{entry}': {e}")
        return evicted

    def sweep(self) -> List[str]:
        """
        Delete every entry not marked in use by this run.

        Returns:
            Names of removed entries
        """
        removed = []
        for entry, state in self._entries.items():
            if state is not EntryState.UNMARKED:
                continue

            logger.debug(f"--> deleting unused dependency '{entry}' from application cache")
            try:
                safe_rmtree(self.path(entry), require_prefix=self.format_dir)
            except (FilesystemError, OSError) as e:
                logger.warning(f"Failed to delete cached '{entry}': {e}")
                continue
            self._entries[entry] = EntryState.DELETED
            removed.append(entry)
        return removed

    def close(self):
        """Release the cache lock."""
        if self._lock is not None:
            self._lock.release()
            self._lock = None


__all__ = [
    "CacheStore",
    "CacheSession",
    "EntryState",
    "DEFAULT_FORMAT_VERSION",
    "entry_belongs_to",
    "split_entry_name",
]
