"""
Centralized exception hierarchy for StackKit.

Every failure raised by the supply pipeline derives from StackKitError so the
command entry point can map it to a single exit code. Advisory conditions
(newer patch available, end-of-life version) are logged, never raised.
"""


# ============================================================================
# Base Exceptions
# ============================================================================


class StackKitError(Exception):
    """Base exception for all StackKit errors."""

    pass


class ConfigError(StackKitError):
    """Configuration parsing or validation error."""

    pass


# ============================================================================
# Manifest Exceptions
# ============================================================================


class ManifestError(StackKitError):
    """Base exception for manifest lookup errors."""

    pass


class VersionResolutionError(ManifestError):
    """No candidate version satisfies the requested version specifier."""

    def __init__(self, name: str, spec: str, candidates=None):
        self.name = name
        self.spec = spec
        self.candidates = list(candidates or [])
        msg = f"No version of '{name}' matches '{spec}'"
        if self.candidates:
            msg += f" (available: {', '.join(self.candidates)})"
        super().__init__(msg)


# ============================================================================
# Cache Exceptions
# ============================================================================


class CacheError(StackKitError):
    """Base exception for dependency cache errors."""

    pass


class CacheRootUnavailable(CacheError):
    """Raised when the cache root cannot be inspected or created."""

    pass


class CacheLockTimeout(CacheError):
    """Raised when the cache lock cannot be acquired within timeout."""

    pass


# ============================================================================
# Installation Exceptions
# ============================================================================


class InstallError(StackKitError):
    """Base exception for dependency installation errors."""

    pass


class FetchError(InstallError):
    """Raised when a dependency cannot be fetched or fails verification."""

    pass


class ExtractError(InstallError):
    """Raised when a fetched artifact cannot be unpacked into place."""

    pass


class CompileError(InstallError):
    """Raised when a step of the configure/make/install sequence fails."""

    def __init__(self, full_name: str, step: str, returncode: int = 1):
        self.full_name = full_name
        self.step = step
        self.returncode = returncode
        super().__init__(
            f"Compilation of {full_name} failed at step '{step}' "
            f"(exit code {returncode})"
        )


class CopyToStagingError(InstallError):
    """Raised when a cached artifact cannot be copied into staging."""

    pass


# ============================================================================
# Plugin Exceptions
# ============================================================================


class PluginError(StackKitError):
    """Base exception for runtime plugin errors."""

    pass


class PluginNotResolvedError(PluginError):
    """No offline source provides the plugin; caller falls back to online install."""

    def __init__(self, plugin_name: str):
        self.plugin_name = plugin_name
        super().__init__(f"Plugin not found in any local source: {plugin_name}")


class PluginInstallError(PluginError):
    """Raised when the runtime's plugin installer exits non-zero."""

    def __init__(self, plugin_name: str, output: str = ""):
        self.plugin_name = plugin_name
        self.output = output
        msg = f"Failed to install plugin '{plugin_name}'"
        if output:
            msg += f":\n{output}"
        super().__init__(msg)


# ============================================================================
# Staging Exceptions
# ============================================================================


class StagingError(StackKitError):
    """Raised when files cannot be written into the staging directory."""

    pass


class CertificateMissingError(StackKitError):
    """A configured certificate has no .crt file in the certificates directory."""

    def __init__(self, certificate: str, directory=None):
        self.certificate = certificate
        self.directory = directory
        msg = f"Certificate file {certificate}.crt not found"
        if directory is not None:
            msg += f" in directory '{directory}'"
        super().__init__(msg)


class TemplateError(StackKitError):
    """Raised when template selection or rendering fails."""

    pass
