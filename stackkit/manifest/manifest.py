"""
Dependency manifest and artifact fetching.

The manifest (manifest.yml, shipped with the buildpack) lists every artifact
StackKit can install, with its download URI and SHA256 checksum, the default
version per dependency, and end-of-life dates for version lines.

Example manifest.yml:

    default_versions:
      - name: jq
        version: 1.6.x
    dependencies:
      - name: jq
        version: 1.6.0
        uri: https://example.com/jq-1.6.0.tar.gz
        sha256: 5c1f...
    dependency_deprecation_dates:
      - name: logstash
        version_line: 5.x.x
        date: 2019-03-11
        link: https://www.elastic.co/support/eol

A buildpack packaged for offline use carries the artifacts themselves under
<manifest dir>/dependencies/<md5 of uri>/<file name>; those are preferred over
the network.
"""

import hashlib
import logging
import shutil
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse

import yaml

from stackkit.core.download import (
    ChecksumError,
    DownloadError,
    download_file,
    verify_checksum,
)
from stackkit.core.exceptions import (
    FetchError,
    ManifestError,
    VersionResolutionError,
)
from stackkit.manifest.versions import matches_pattern, pad_spec, resolve_version

logger = logging.getLogger(__name__)

EOL_WARNING_WINDOW = timedelta(days=30)


@dataclass
class ManifestEntry:
    """One downloadable artifact listed in the manifest."""

    name: str
    version: str
    uri: str
    sha256: str
    cf_stacks: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.uri:
            raise ValueError(f"URI cannot be empty for {self.name} {self.version}")
        if not self.sha256:
            raise ValueError(f"SHA256 cannot be empty for {self.name} {self.version}")

    @property
    def file_name(self) -> str:
        """Last path segment of the URI (e.g. 'jq-1.6.0.tar.gz')."""
        return Path(unquote(urlparse(self.uri).path)).name


@dataclass
class DeprecationDate:
    """End-of-life date for a version line of a dependency."""

    name: str
    version_line: str
    date: date
    link: str = ""


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value), "%Y-%m-%d").date()


class Manifest:
    """
    Dependency metadata service backed by a manifest.yml file.

    Example:
        >>> manifest = Manifest(Path("buildpack/manifest.yml"))
        >>> manifest.default_version("jq")
        '1.6.x'
        >>> manifest.fetch("jq", "1.6.0", Path("/tmp/dependencies/v1/jq-1.6.0"))
    """

    def __init__(self, manifest_path: Path):
        """
        Load manifest from manifest_path.

        Raises:
            ManifestError: If the file is missing or malformed
        """
        self.manifest_path = Path(manifest_path)
        self.root_dir = self.manifest_path.parent
        self._data = self._load_manifest()

        self.entries = self._parse_entries()
        self.defaults = {
            d["name"]: str(d["version"]) for d in self._data.get("default_versions") or []
        }
        self.deprecations = self._parse_deprecations()

        logger.debug(
            f"Loaded manifest with {len(self.entries)} dependencies from {self.manifest_path}"
        )

    def _load_manifest(self) -> Dict[str, Any]:
        if not self.manifest_path.exists():
            raise ManifestError(f"Manifest file not found: {self.manifest_path}")

        try:
            with open(self.manifest_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ManifestError(
                f"Invalid YAML in manifest: {e}\nFile: {self.manifest_path}"
            ) from e

        if not isinstance(data, dict):
            raise ManifestError(f"Manifest is empty or not a mapping: {self.manifest_path}")

        return data

    def _parse_entries(self) -> List[ManifestEntry]:
        entries = []
        for raw in self._data.get("dependencies") or []:
            try:
                entries.append(
                    ManifestEntry(
                        name=raw["name"],
                        version=str(raw["version"]),
                        uri=raw["uri"],
                        sha256=raw["sha256"],
                        cf_stacks=list(raw.get("cf_stacks") or []),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ManifestError(f"Invalid dependency entry {raw!r}: {e}") from e
        return entries

    def _parse_deprecations(self) -> List[DeprecationDate]:
        deprecations = []
        for raw in self._data.get("dependency_deprecation_dates") or []:
            try:
                deprecations.append(
                    DeprecationDate(
                        name=raw["name"],
                        version_line=str(raw["version_line"]),
                        date=_parse_date(raw["date"]),
                        link=raw.get("link", ""),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ManifestError(f"Invalid deprecation entry {raw!r}: {e}") from e
        return deprecations

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def default_version(self, name: str) -> str:
        """
        Get the default version specifier for name.

        Raises:
            ManifestError: If the manifest has no default for name
        """
        if name not in self.defaults:
            raise ManifestError(f"No default version for dependency: {name}")
        return self.defaults[name]

    def all_versions(self, name: str) -> List[str]:
        """List every version of name the manifest provides, in manifest order."""
        return [e.version for e in self.entries if e.name == name]

    def entry(self, name: str, version: str) -> ManifestEntry:
        """
        Look up the manifest entry for an exact version.

        Raises:
            ManifestError: If no entry exists
        """
        for e in self.entries:
            if e.name == name and e.version == version:
                return e
        raise ManifestError(f"Dependency not found in manifest: {name} {version}")

    def offline_path(self, entry: ManifestEntry) -> Path:
        """Location of the artifact inside an offline-packaged buildpack."""
        digest = hashlib.md5(entry.uri.encode("utf-8")).hexdigest()
        return self.root_dir / "dependencies" / digest / entry.file_name

    @property
    def is_cached(self) -> bool:
        """True when the buildpack ships its artifacts (offline package)."""
        return (self.root_dir / "dependencies").is_dir()

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def fetch(self, name: str, version: str, destination: Path) -> ManifestEntry:
        """
        Fetch the artifact for name/version into destination and verify it.

        Lookup order: offline copy shipped with the buildpack, file:// URI,
        then HTTP(S) download.

        Returns:
            The manifest entry that was fetched

        Raises:
            FetchError: If the entry is unknown, the transfer fails, or the
                checksum does not match
        """
        try:
            entry = self.entry(name, version)
        except ManifestError as e:
            raise FetchError(str(e)) from e

        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        if destination.exists():
            destination.unlink()

        offline = self.offline_path(entry)
        parsed = urlparse(entry.uri)

        try:
            if offline.exists():
                logger.debug(f"Copying {name} {version} from buildpack: {offline}")
                self._copy_verified(offline, destination, entry)
            elif parsed.scheme == "file":
                self._copy_verified(Path(unquote(parsed.path)), destination, entry)
            else:
                download_file(entry.uri, destination, expected_sha256=entry.sha256)
        except (DownloadError, ChecksumError, OSError) as e:
            raise FetchError(f"Failed to fetch {name} {version}: {e}") from e

        return entry

    def _copy_verified(self, source: Path, destination: Path, entry: ManifestEntry):
        shutil.copyfile(source, destination)
        if not verify_checksum(destination, entry.sha256):
            destination.unlink()
            raise ChecksumError(
                f"Checksum mismatch for {entry.name} {entry.version} ({source})"
            )

    # ------------------------------------------------------------------
    # Advisories
    # ------------------------------------------------------------------

    def warn_newer_patch(self, name: str, version: str) -> Optional[str]:
        """
        Log a warning if a newer patch of the same minor line is available.

        Returns:
            The warning message, or None when version is the newest patch
        """
        parts = version.split(".")
        if len(parts) < 3:
            return None

        line = ".".join(parts[:2]) + ".x"
        try:
            newest = resolve_version(line, 3, self.all_versions(name), name=name)
        except VersionResolutionError:
            return None

        if newest == version:
            return None

        message = (
            f"A newer version of {name} is available in this buildpack. "
            f"Please adjust your app to use version {newest} instead of version "
            f"{version} as soon as possible. Old versions of buildpacks may be removed."
        )
        logger.warning(message)
        return message

    def warn_end_of_life(
        self, name: str, version: str, today: Optional[date] = None
    ) -> Optional[str]:
        """
        Log a warning if version's line reaches end of life within 30 days.

        Returns:
            The warning message, or None when no deprecation applies
        """
        today = today or date.today()

        for deprecation in self.deprecations:
            if deprecation.name != name:
                continue
            pattern = pad_spec(deprecation.version_line, len(version.split(".")))
            if not matches_pattern(pattern, version):
                continue
            if today < deprecation.date - EOL_WARNING_WINDOW:
                continue

            message = (
                f"{name} {deprecation.version_line} will no longer be available "
                f"in new buildpacks released after {deprecation.date.isoformat()}."
            )
            if deprecation.link:
                message += f"\nSee: {deprecation.link}"
            logger.warning(message)
            return message

        return None


__all__ = ["Manifest", "ManifestEntry", "DeprecationDate"]
