"""
Staging directory writer.

The stager knows the directories handed to the supply step by the platform
and writes everything the application needs at runtime into this run's
dependency directory:

- profile.d scripts exporting each dependency's home
- helper scripts executed during the build
- config.yml describing what was supplied
- the fixed set of runtime configuration directories
"""

import logging
import textwrap
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from stackkit.core.exceptions import StagingError
from stackkit.core.filesystem import atomic_write

logger = logging.getLogger(__name__)

SUPPLIER_NAME = "stackkit"

APP_DIRS = (
    "conf.d",
    "logstash.conf.d",
    "grok-patterns",
    "plugins",
    "curator.d",
    "scripts",
    "curator",
    "ofelia/scripts",
    "ofelia/config",
)


def trim_lines(text: str) -> str:
    """Dedent a script body and drop surrounding blank lines."""
    return textwrap.dedent(text).strip() + "\n"


class Stager:
    """
    Directories of one supply invocation.

    Attributes:
        build_dir: The application being staged
        cache_dir: Persistent build cache of the application
        deps_dir: This supplier's dependency directory
        deps_idx: Index of deps_dir under $DEPS_DIR at runtime
        buildpack_dir: Root of the buildpack (manifest.yml, defaults/)
    """

    def __init__(
        self,
        build_dir: Union[str, Path],
        cache_dir: Union[str, Path],
        deps_dir: Union[str, Path],
        deps_idx: str,
        buildpack_dir: Union[str, Path],
    ):
        self.build_dir = Path(build_dir).absolute()
        self.cache_dir = Path(cache_dir).absolute()
        self.deps_dir = Path(deps_dir).absolute()
        self.deps_idx = str(deps_idx)
        self.buildpack_dir = Path(buildpack_dir).absolute()

    @property
    def profile_d_dir(self) -> Path:
        return self.deps_dir / "profile.d"

    @property
    def scripts_dir(self) -> Path:
        return self.deps_dir / "scripts"

    def write_profile_d(self, name: str, content: str) -> Path:
        """
        Write <deps_dir>/profile.d/<name>.sh.

        Raises:
            StagingError: If the file cannot be written
        """
        path = self.profile_d_dir / f"{name}.sh"
        self._write(path, trim_lines(content))
        logger.debug(f"Wrote profile.d script {path}")
        return path

    def write_script(self, name: str, content: str) -> Path:
        """Write an executable helper script to <deps_dir>/scripts/<name>.sh."""
        path = self.scripts_dir / f"{name}.sh"
        self._write(path, trim_lines(content), mode=0o755)
        return path

    def write_file(self, relative_path: str, content: str, mode: int = 0o644) -> Path:
        """Write content to a file below deps_dir."""
        path = self.deps_dir / relative_path
        self._write(path, content, mode=mode)
        return path

    def write_config_yml(self, config: Dict[str, Any]) -> Path:
        """
        Write <deps_dir>/config.yml for later buildpack phases.

        Example:
            >>> stager.write_config_yml({"logstash_version": "6.4.0"})
        """
        path = self.deps_dir / "config.yml"
        content = yaml.safe_dump(
            {"name": SUPPLIER_NAME, "config": config}, default_flow_style=False
        )
        self._write(path, content)
        return path

    def prepare_app_dirs(self):
        """Create the runtime configuration directories under deps_dir."""
        for relative in APP_DIRS:
            path = self.deps_dir / relative
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StagingError(f"Unable to create directory {path}: {e}") from e

    def _write(self, path: Path, content: str, mode: Optional[int] = None):
        try:
            atomic_write(path, content, mode=mode)
        except OSError as e:
            raise StagingError(f"Unable to write {path}: {e}") from e


__all__ = ["Stager", "APP_DIRS", "SUPPLIER_NAME", "trim_lines"]
