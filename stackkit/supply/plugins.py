"""
Logstash plugin resolution and installation.

A requested plugin is looked up in the offline sources in priority order:

    1. x-pack bundle (staged x-pack dependency)
    2. default plugin bundle (staged logstash-plugins dependency)
    3. the application's plugins/ directory
    4. none of the above: installed online by name

Within a source the first entry (sorted by name) whose name starts with the
plugin name wins. Zip files are handed to logstash-plugin as file:// URIs.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from stackkit.core.exceptions import PluginError, PluginInstallError, PluginNotResolvedError
from stackkit.core.process import CommandRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PluginSource:
    """A directory of offline plugin packages."""

    name: str
    directory: Optional[Path]

    def entries(self) -> List[str]:
        """Entry names in the directory, sorted; empty if it does not exist."""
        if self.directory is None:
            return []
        try:
            return sorted(p.name for p in Path(self.directory).iterdir())
        except OSError:
            return []


@dataclass(frozen=True)
class PluginTarget:
    """What to pass to 'logstash-plugin install' for one plugin."""

    plugin: str
    target: str
    source: Optional[str] = None

    @property
    def offline(self) -> bool:
        return self.source is not None


def to_install_target(path: Path) -> str:
    """Local path as understood by logstash-plugin (zip files need a file:// URI)."""
    path_str = str(Path(path).absolute())
    if path_str.endswith(".zip"):
        return f"file://{path_str}"
    return path_str


class PluginResolver:
    """
    Maps plugin names to install targets.

    Example:
        >>> resolver = PluginResolver([
        ...     PluginSource("x-pack", xpack_home),
        ...     PluginSource("logstash-plugins", plugins_home),
        ...     PluginSource("app", build_dir / "plugins"),
        ... ])
        >>> resolver.resolve("logstash-output-foo").target
        'file:///deps/0/logstash-plugins-6.4.0/logstash-output-foo-1.0.zip'
    """

    def __init__(self, sources: Sequence[PluginSource]):
        self.sources = list(sources)
        self._listings: Dict[str, List[str]] = {}

    def _listing(self, source: PluginSource) -> List[str]:
        if source.name not in self._listings:
            self._listings[source.name] = source.entries()
        return self._listings[source.name]

    def resolve_local(self, plugin_name: str) -> PluginTarget:
        """
        Find plugin_name in the offline sources.

        Raises:
            PluginNotResolvedError: If no source provides it
        """
        for source in self.sources:
            for entry in self._listing(source):
                if entry.startswith(plugin_name):
                    path = Path(source.directory) / entry
                    logger.debug(f"Plugin {plugin_name} found in {source.name}: {path}")
                    return PluginTarget(plugin_name, to_install_target(path), source.name)
        raise PluginNotResolvedError(plugin_name)

    def resolve(self, plugin_name: str) -> PluginTarget:
        """Resolve plugin_name, falling back to an online install by name."""
        try:
            return self.resolve_local(plugin_name)
        except PluginNotResolvedError:
            logger.debug(f"Plugin {plugin_name} not found offline, installing online")
            return PluginTarget(plugin_name, plugin_name)

    def resolve_all(self, plugin_names: Iterable[str]) -> List[PluginTarget]:
        return [self.resolve(name) for name in plugin_names]


def resolve(plugin_name: str, sources: Sequence[PluginSource]) -> PluginTarget:
    """Resolve one plugin against sources."""
    return PluginResolver(sources).resolve(plugin_name)


class PluginInstaller:
    """Drives <logstash>/bin/logstash-plugin."""

    def __init__(
        self,
        logstash_home: Path,
        runner: Optional[CommandRunner] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        self.logstash_home = Path(logstash_home)
        self.runner = runner or CommandRunner()
        self.env = env

    @property
    def executable(self) -> Path:
        return self.logstash_home / "bin" / "logstash-plugin"

    def install(self, targets: Iterable[PluginTarget]):
        """
        Install each target in order.

        Raises:
            PluginInstallError: On the first plugin that fails to install
        """
        for target in targets:
            logger.info(f"--> installing plugin {target.plugin} ({target.target})")
            try:
                result = self.runner.capture(
                    [self.executable, "install", target.target], env=self.env
                )
            except OSError as e:
                raise PluginInstallError(target.plugin, str(e)) from e

            if not result.success:
                logger.error(result.output)
                raise PluginInstallError(target.plugin, result.output)

    def list_installed(self) -> str:
        """
        Log and return the output of 'logstash-plugin list --verbose'.

        Raises:
            PluginError: If the listing fails
        """
        logger.info("----> Listing all installed Logstash plugins ...")
        try:
            result = self.runner.capture([self.executable, "list", "--verbose"], env=self.env)
        except OSError as e:
            raise PluginError(f"Unable to list Logstash plugins: {e}") from e

        logger.info(result.output)
        if not result.success:
            raise PluginError(
                f"Listing Logstash plugins failed (exit code {result.returncode})"
            )
        return result.output


__all__ = [
    "PluginSource",
    "PluginTarget",
    "PluginResolver",
    "PluginInstaller",
    "resolve",
    "to_install_target",
]
