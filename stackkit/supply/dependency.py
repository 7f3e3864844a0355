"""
Dependency data model.

A Dependency is what the registry asks for (name, partial version, how to
install it); a ResolvedDependency is the same request pinned to a concrete
version, with every filesystem location derived from its full name.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple, Union


@dataclass(frozen=True)
class PrebuiltArtifact:
    """The fetched artifact is used as-is after extraction."""


@dataclass(frozen=True)
class CompileFromSource:
    """The fetched artifact is a source tree built with configure/make."""

    configure_args: Tuple[str, ...] = ()
    make_jobs: int = 8


InstallStrategy = Union[PrebuiltArtifact, CompileFromSource]


@dataclass(frozen=True)
class Dependency:
    """
    One installable artifact requested by a supply run.

    Attributes:
        name: Stable identifier, unique within a run (e.g. "openjdk")
        version_spec: Partial version; empty means the manifest default
        version_parts: Number of dot-separated components of its versions
        strategy: PrebuiltArtifact or CompileFromSource
    """

    name: str
    version_spec: str = ""
    version_parts: int = 3
    strategy: InstallStrategy = field(default_factory=PrebuiltArtifact)

    @property
    def compiles(self) -> bool:
        return isinstance(self.strategy, CompileFromSource)


@dataclass(frozen=True)
class DependencyLayout:
    """
    Directory roots from which dependency locations are derived.

    Attributes:
        cache_dir: Format-versioned cache directory (<cache_root>/<format>)
        deps_dir: This run's staging directory
        deps_idx: Index of deps_dir under $DEPS_DIR at runtime
        tmp_dir: Scratch directory for downloads and source trees
    """

    cache_dir: Path
    deps_dir: Path
    deps_idx: str
    tmp_dir: Path

    def __post_init__(self):
        for attr in ("cache_dir", "deps_dir", "tmp_dir"):
            object.__setattr__(self, attr, Path(getattr(self, attr)).absolute())

    def resolve(self, dependency: Dependency, version: str) -> "ResolvedDependency":
        full_name = f"{dependency.name}-{version}"
        return ResolvedDependency(
            dependency=dependency,
            version=version,
            full_name=full_name,
            cache_location=self.cache_dir / full_name,
            staging_location=self.deps_dir / full_name,
            runtime_location=f"{self.deps_idx}/{full_name}",
            tmp_location=self.tmp_dir / full_name,
            tmp_extract_location=self.tmp_dir / "extracted" / full_name,
        )


@dataclass(frozen=True)
class ResolvedDependency:
    """A dependency pinned to a concrete version, with its locations."""

    dependency: Dependency
    version: str
    full_name: str
    cache_location: Path
    staging_location: Path
    runtime_location: str
    tmp_location: Path
    tmp_extract_location: Path

    @property
    def name(self) -> str:
        return self.dependency.name


__all__ = [
    "PrebuiltArtifact",
    "CompileFromSource",
    "InstallStrategy",
    "Dependency",
    "DependencyLayout",
    "ResolvedDependency",
]
