"""
Dependency manifest: version resolution and artifact metadata.
"""

from .manifest import DeprecationDate, Manifest, ManifestEntry
from .versions import VersionResolver, resolve_version

__all__ = [
    "Manifest",
    "ManifestEntry",
    "DeprecationDate",
    "VersionResolver",
    "resolve_version",
]
