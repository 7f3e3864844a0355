"""
Dependency supply: installation pipeline, cache and plugin resolution.
"""

from .cache import CacheSession, CacheStore, EntryState
from .dependency import (
    CompileFromSource,
    Dependency,
    DependencyLayout,
    PrebuiltArtifact,
    ResolvedDependency,
)
from .installer import ArtifactInstaller
from .plugins import PluginInstaller, PluginResolver, PluginSource, PluginTarget
from .registry import DependencyRegistry, RegistryStep, build_default_registry
from .stager import Stager
from .context import SupplyContext
from .supplier import Supplier, run_supply

__all__ = [
    "CacheStore",
    "CacheSession",
    "EntryState",
    "Dependency",
    "DependencyLayout",
    "ResolvedDependency",
    "PrebuiltArtifact",
    "CompileFromSource",
    "ArtifactInstaller",
    "PluginSource",
    "PluginTarget",
    "PluginResolver",
    "PluginInstaller",
    "DependencyRegistry",
    "RegistryStep",
    "build_default_registry",
    "Stager",
    "SupplyContext",
    "Supplier",
    "run_supply",
]
