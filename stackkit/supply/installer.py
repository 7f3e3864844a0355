"""
Dependency installation pipeline.

This module takes a Dependency from version resolution to a staged copy in
the build's dependency directory, going through the persistent cache:

1. Resolve the version against the manifest
2. Reuse the cache entry if this run's cache session knows it
3. Otherwise fetch and verify the artifact
4. Extract it (or build it from source) into a hidden publish directory
5. Rename the publish directory into the cache slot
6. Copy the cache entry into staging
7. Mark the entry in use (evicting other versions of the same dependency)

A cache slot only ever appears through a rename, so an interrupted run can
leave a dot-prefixed publish directory behind but never a half-filled entry.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from stackkit.core.exceptions import CompileError, CopyToStagingError, ExtractError
from stackkit.core.filesystem import (
    FilesystemError,
    copy_tree,
    extract_archive,
    is_archive,
    move_into_place,
    normalize_root_directory,
    safe_rmtree,
)
from stackkit.core.process import CommandRunner
from stackkit.manifest.manifest import Manifest, ManifestEntry
from stackkit.manifest.versions import VersionResolver
from stackkit.supply.cache import CacheSession
from stackkit.supply.compiler import Compiler, install_prefix
from stackkit.supply.dependency import Dependency, DependencyLayout, ResolvedDependency

logger = logging.getLogger(__name__)


@dataclass
class InstallCounters:
    """Work performed by an installer, for reporting and idempotence checks."""

    fetched: int = 0
    extracted: int = 0
    compiled: int = 0
    cache_hits: int = 0


class ArtifactInstaller:
    """
    Installs dependencies into staging through the persistent cache.

    Example:
        >>> installer = ArtifactInstaller(manifest, session, layout)
        >>> jq = installer.install(Dependency("jq", "1.6", 3))
        >>> jq.staging_location
        PosixPath('/tmp/deps/0/jq-1.6.0')
    """

    def __init__(
        self,
        manifest: Manifest,
        session: CacheSession,
        layout: DependencyLayout,
        runner: Optional[CommandRunner] = None,
        resolver: Optional[VersionResolver] = None,
        no_cache: bool = False,
    ):
        """
        Args:
            manifest: Manifest listing every installable artifact
            session: Open cache session for this run
            layout: Directory roots for cache, staging and scratch space
            runner: Runs compile steps (default: quiet CommandRunner)
            resolver: Version resolver (default: one over manifest)
            no_cache: Delete each cache entry once it has been staged
        """
        self.manifest = manifest
        self.session = session
        self.layout = layout
        self.runner = runner or CommandRunner()
        self.resolver = resolver or VersionResolver(manifest)
        self.no_cache = no_cache
        self.compiler = Compiler(self.runner)
        self.counters = InstallCounters()

    def install(
        self, dependency: Dependency, env: Optional[Dict[str, str]] = None
    ) -> ResolvedDependency:
        """
        Install dependency into staging.

        Args:
            dependency: What to install
            env: Environment for compile steps

        Returns:
            ResolvedDependency with the concrete version and its locations

        Raises:
            ManifestError: If no version can be resolved
            FetchError: If the artifact cannot be fetched or verified
            ExtractError: If the artifact cannot be unpacked
            CompileError: If a build step fails
            CopyToStagingError: If the cache entry cannot be staged
        """
        version = self.resolver.select(
            dependency.name, dependency.version_spec, dependency.version_parts
        )
        resolved = self.layout.resolve(dependency, version)
        full_name = resolved.full_name

        logger.info(f"-----> Installing {full_name}")

        if self.session.has(full_name) and resolved.cache_location.exists():
            logger.info(f"--> {full_name} found in cache")
            self.counters.cache_hits += 1
        else:
            self._populate_cache(resolved, env)

        self._copy_to_staging(resolved)
        self.session.mark_in_use(full_name, dependency.name)

        if self.no_cache:
            logger.debug(f"--> removing {full_name} from cache (cache disabled)")
            try:
                safe_rmtree(resolved.cache_location, require_prefix=self.layout.cache_dir)
                self.session.forget(full_name)
            except FilesystemError as e:
                logger.warning(f"Failed to remove {full_name} from cache: {e}")

        return resolved

    # ------------------------------------------------------------------
    # Cache population
    # ------------------------------------------------------------------

    def _publish_dir(self, resolved: ResolvedDependency) -> Path:
        return resolved.cache_location.parent / f".{resolved.full_name}"

    def _populate_cache(self, resolved: ResolvedDependency, env: Optional[Dict[str, str]]):
        full_name = resolved.full_name
        logger.info(f"--> downloading {full_name}")

        publish_dir = self._publish_dir(resolved)
        try:
            entry = self.manifest.fetch(resolved.name, resolved.version, resolved.tmp_location)
            self.counters.fetched += 1

            self.manifest.warn_newer_patch(resolved.name, resolved.version)
            self.manifest.warn_end_of_life(resolved.name, resolved.version)

            self._remove(publish_dir)
            if resolved.dependency.compiles:
                installed = self._build(resolved, entry, publish_dir, env)
            else:
                self._unpack(resolved, entry, publish_dir)
                installed = publish_dir

            self._remove(resolved.cache_location)
            installed.rename(resolved.cache_location)
        except (OSError, FilesystemError) as e:
            raise ExtractError(f"Failed to publish {full_name} into cache: {e}") from e
        finally:
            self._cleanup(resolved, publish_dir)

        self.session.add(full_name)
        logger.debug(f"--> {full_name} published to {resolved.cache_location}")

    def _unpack(self, resolved: ResolvedDependency, entry: ManifestEntry, target: Path):
        """Extract an archive into target, or move a plain file inside it."""
        logger.info(f"--> extracting {resolved.full_name}")
        try:
            if is_archive(entry.file_name):
                extract_archive(resolved.tmp_location, target, archive_name=entry.file_name)
            else:
                move_into_place(resolved.tmp_location, target, entry.file_name)
        except FilesystemError as e:
            raise ExtractError(f"Failed to extract {resolved.full_name}: {e}") from e
        self.counters.extracted += 1

    def _build(
        self,
        resolved: ResolvedDependency,
        entry: ManifestEntry,
        destdir: Path,
        env: Optional[Dict[str, str]],
    ) -> Path:
        """Compile from source; returns the installed tree under destdir."""
        source_dir = resolved.tmp_extract_location
        self._remove(source_dir)
        self._unpack(resolved, entry, source_dir)

        source_root = normalize_root_directory(source_dir)
        self.compiler.compile(resolved, source_root, destdir, env=env)
        self.counters.compiled += 1

        # make install DESTDIR=... reproduces the absolute prefix under destdir
        prefix = install_prefix(resolved)
        installed = destdir.joinpath(*prefix.parts[1:])
        if not installed.is_dir():
            logger.error(f"'make install' of {resolved.full_name} produced nothing under {prefix}")
            raise CompileError(resolved.full_name, "install")
        return installed

    def _copy_to_staging(self, resolved: ResolvedDependency):
        logger.debug(
            f"--> copying {resolved.full_name} from cache to {resolved.staging_location}"
        )
        try:
            copy_tree(resolved.cache_location, resolved.staging_location)
        except FilesystemError as e:
            raise CopyToStagingError(
                f"Failed to copy {resolved.full_name} into staging: {e}"
            ) from e

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def _remove(self, path: Path):
        if path.exists() or path.is_symlink():
            safe_rmtree(path)

    def _cleanup(self, resolved: ResolvedDependency, publish_dir: Path):
        """Remove scratch files and any unfinished publish directory."""
        for path in (resolved.tmp_location, resolved.tmp_extract_location, publish_dir):
            try:
                self._remove(path)
            except FilesystemError as e:
                logger.warning(f"Failed to remove temporary path {path}: {e}")


__all__ = ["ArtifactInstaller", "InstallCounters"]
