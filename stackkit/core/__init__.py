"""
Core functionality for StackKit.

This package contains the foundational modules that other components depend on.
"""

from .exceptions import (
    StackKitError,
    ConfigError,
    ManifestError,
    VersionResolutionError,
    CacheError,
    CacheRootUnavailable,
    CacheLockTimeout,
    InstallError,
    FetchError,
    ExtractError,
    CompileError,
    CopyToStagingError,
    PluginError,
    PluginNotResolvedError,
    PluginInstallError,
    StagingError,
    CertificateMissingError,
    TemplateError,
)

from .locking import CacheLock, cache_lock

from .process import CommandResult, CommandRunner

__all__ = [
    "StackKitError",
    "ConfigError",
    "ManifestError",
    "VersionResolutionError",
    "CacheError",
    "CacheRootUnavailable",
    "CacheLockTimeout",
    "InstallError",
    "FetchError",
    "ExtractError",
    "CompileError",
    "CopyToStagingError",
    "PluginError",
    "PluginNotResolvedError",
    "PluginInstallError",
    "StagingError",
    "CertificateMissingError",
    "TemplateError",
    "CacheLock",
    "cache_lock",
    "CommandResult",
    "CommandRunner",
]
