"""
State shared between the steps of one supply run.

Steps never communicate through the process environment. Whatever a later
step needs from an earlier one (the JDK location, the plugins requested by
templates, the heap size) is read from the SupplyContext, and child
processes receive an environment built explicitly by child_env().
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from stackkit.config.parser import ApplicationLimits, SupplyConfig
from stackkit.core.exceptions import InstallError
from stackkit.core.process import CommandRunner
from stackkit.supply.dependency import ResolvedDependency
from stackkit.supply.stager import Stager

logger = logging.getLogger(__name__)

# placeholder port for template rendering and the config check
STAGING_PORT = "8080"


def _ordered_add(target: List[str], names: Iterable[str]):
    for name in names:
        if name and name not in target:
            target.append(name)


@dataclass
class SupplyContext:
    """
    Everything known about the current supply run.

    Attributes:
        stager: Directories of this invocation
        config: Parsed Logstash file
        limits: Application resource limits
        runner: Runs child processes
        base_env: Environment child processes start from
        installed: Installed dependencies by name
        plugins: Plugins to install, in request order
        groks: Grok pattern files to render, in request order
        config_files_exist: The application ships its own conf.d files
    """

    stager: Stager
    config: SupplyConfig
    limits: ApplicationLimits = field(default_factory=ApplicationLimits)
    runner: CommandRunner = field(default_factory=CommandRunner)
    base_env: Dict[str, str] = field(default_factory=lambda: dict(os.environ))
    installed: Dict[str, ResolvedDependency] = field(default_factory=dict)
    plugins: List[str] = field(default_factory=list)
    groks: List[str] = field(default_factory=list)
    config_files_exist: bool = False

    def __post_init__(self):
        _ordered_add(self.plugins, self.config.plugins)

    def add_plugins(self, names: Iterable[str]):
        _ordered_add(self.plugins, names)

    def add_groks(self, names: Iterable[str]):
        _ordered_add(self.groks, names)

    def home(self, name: str) -> Path:
        """
        Staging location of an installed dependency.

        Raises:
            InstallError: If name has not been installed in this run
        """
        if name not in self.installed:
            raise InstallError(f"Dependency '{name}' has not been installed")
        return self.installed[name].staging_location

    def heap_megabytes(self) -> int:
        """Heap size derived from the memory limit, reserve and heap percentage."""
        usable = self.limits.mem - self.config.reserved_memory
        return usable // 100 * self.config.heap_percentage

    @property
    def java_opts(self) -> str:
        """JVM options for Logstash: the user's, or heap flags from the memory limit."""
        if self.config.java_opts:
            return self.config.java_opts
        mem = self.heap_megabytes()
        return f"-Xmx{mem}m -Xms{mem}m"

    def child_env(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Environment for child processes started after the JDK is installed."""
        env = dict(self.base_env)
        if "openjdk" in self.installed:
            java_home = self.home("openjdk")
            env["JAVA_HOME"] = str(java_home)
            path = env.get("PATH", "")
            env["PATH"] = f"{path}:{java_home / 'bin'}" if path else str(java_home / "bin")
        env["LS_JAVA_OPTS"] = self.java_opts
        env["PORT"] = STAGING_PORT
        if extra:
            env.update(extra)
        return env


__all__ = ["SupplyContext", "STAGING_PORT"]
