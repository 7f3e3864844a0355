"""
Version resolution for manifest dependencies.

A dependency asks for a partial version such as "6" or "6.4" and the manifest
lists the concrete versions it can provide. Resolution pads the partial
specifier with wildcard segments up to the number of components the
dependency uses, then selects the highest listed version matching it.

Supports:
- Exact version: "6.4.2" → "6.4.2"
- Partial: "6" with 3 parts → "6.x.x" → highest "6.*.*"
- Explicit wildcards: "6.x", "6.4.*"
- Comparison specifiers: ">=6.2,<7" (evaluated with packaging.specifiers)

Nothing in this module touches the filesystem or the network.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from stackkit.core.exceptions import VersionResolutionError

logger = logging.getLogger(__name__)

WILDCARDS = frozenset({"x", "X", "*"})
_OPERATOR_CHARS = frozenset("<>=!~,")


def pad_spec(spec: str, version_parts: int) -> str:
    """
    Append ".x" segments until spec has version_parts components.

    Example:
        >>> pad_spec("7", 3)
        '7.x.x'
        >>> pad_spec("7.2.3", 3)
        '7.2.3'
    """
    while len(spec.split(".")) < version_parts:
        spec += ".x"
    return spec


def version_key(v: str) -> Tuple:
    """
    Sortable key for a version string.

    PEP 440 parsable versions sort by packaging semantics and above anything
    unparsable, which falls back to numeric segment comparison.
    """
    try:
        return (1, Version(v))
    except InvalidVersion:
        return (0, tuple(int(p) if p.isdigit() else 0 for p in v.split(".")))


def _segment_matches(pattern: str, candidate: Optional[str]) -> bool:
    if pattern in WILDCARDS:
        return True
    if candidate is None:
        return pattern == "0"
    if pattern.isdigit() and candidate.isdigit():
        return int(pattern) == int(candidate)
    return pattern == candidate


def matches_pattern(pattern: str, candidate: str) -> bool:
    """
    Check whether candidate satisfies a dotted wildcard pattern.

    Each pattern segment must equal the candidate's segment at the same
    position unless it is a wildcard; candidate segments past the end of the
    pattern are unconstrained.

    Example:
        >>> matches_pattern("7.x.x", "7.2.3")
        True
        >>> matches_pattern("7.1.x", "7.2.3")
        False
    """
    pattern_parts = pattern.split(".")
    candidate_parts = candidate.split(".")

    for i, part in enumerate(pattern_parts):
        value = candidate_parts[i] if i < len(candidate_parts) else None
        if not _segment_matches(part, value):
            return False
    return True


def _is_operator_spec(spec: str) -> bool:
    return any(ch in _OPERATOR_CHARS for ch in spec)


def _match_specifier_set(spec: str, candidates: Iterable[str], name: str) -> List[str]:
    try:
        specifier = SpecifierSet(spec)
    except InvalidSpecifier as e:
        raise VersionResolutionError(name, spec, candidates) from e

    matching = []
    for candidate in candidates:
        try:
            if Version(candidate) in specifier:
                matching.append(candidate)
        except InvalidVersion:
            logger.debug(f"Skipping unparsable version '{candidate}' of {name}")
    return matching


def resolve_version(
    spec: str, version_parts: int, candidates: Sequence[str], name: str = ""
) -> str:
    """
    Resolve a partial version specifier against candidate versions.

    Args:
        spec: Partial or exact version, wildcard pattern, or comparison specifier
        version_parts: Number of dot-separated components versions use
        candidates: Concrete versions available
        name: Dependency name (used in error messages)

    Returns:
        Highest candidate satisfying the specifier

    Raises:
        VersionResolutionError: If spec is empty or nothing matches

    Example:
        >>> resolve_version("7", 3, ["7.1.0", "7.2.3", "6.9.9"])
        '7.2.3'
    """
    spec = (spec or "").strip()
    if not spec:
        raise VersionResolutionError(name, spec, candidates)

    if _is_operator_spec(spec):
        matching = _match_specifier_set(spec, candidates, name)
    else:
        pattern = pad_spec(spec, version_parts)
        matching = [c for c in candidates if matches_pattern(pattern, c)]

    if not matching:
        raise VersionResolutionError(name, spec, candidates)

    return max(matching, key=version_key)


class VersionResolver:
    """
    Resolves dependency versions against a manifest.

    Example:
        >>> resolver = VersionResolver(manifest)
        >>> resolver.select("jq", "", 3)   # manifest default, expanded
        '1.6.0'
    """

    def __init__(self, manifest):
        """
        Args:
            manifest: Object providing default_version(name) and all_versions(name)
        """
        self.manifest = manifest

    def select(self, name: str, spec: str, version_parts: int) -> str:
        """
        Pick the concrete version to install for name.

        An empty spec falls back to the manifest's default version for name.

        Raises:
            ManifestError: If spec is empty and name has no default
            VersionResolutionError: If no listed version matches
        """
        if not spec:
            spec = self.manifest.default_version(name)
            logger.debug(f"Using default version '{spec}' for {name}")

        version = resolve_version(
            spec, version_parts, self.manifest.all_versions(name), name=name
        )
        logger.debug(f"Resolved {name} '{spec}' -> {version}")
        return version


__all__ = [
    "VersionResolver",
    "resolve_version",
    "pad_spec",
    "matches_pattern",
    "version_key",
]
