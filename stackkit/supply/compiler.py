"""
Build-from-source for dependencies that ship as source tarballs.

Runs the autotools sequence in the extracted source tree:

    1. configure --prefix=<cache location> [extra args]
    2. make -j <jobs>
    3. make install DESTDIR=<publish dir>

The prefix is the final cache location so paths baked into the build are
correct, while DESTDIR stages the installed files outside of it; the caller
moves them into the cache only after all three steps succeed.
"""

import enum
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from stackkit.core.exceptions import CompileError
from stackkit.core.process import CommandRunner
from stackkit.supply.dependency import CompileFromSource, ResolvedDependency

logger = logging.getLogger(__name__)


class CompileStep(str, enum.Enum):
    CONFIGURE = "configure"
    MAKE = "make"
    INSTALL = "install"


_STEP_LABELS = {
    CompileStep.CONFIGURE: "configure",
    CompileStep.MAKE: "make",
    CompileStep.INSTALL: "make install",
}


def build_commands(
    source_dir: Path, prefix: Path, destdir: Path, strategy: CompileFromSource
) -> List[Tuple[CompileStep, List[str]]]:
    """Commands for each compile step, in execution order."""
    return [
        (
            CompileStep.CONFIGURE,
            ["/bin/sh", str(source_dir / "configure"), f"--prefix={prefix}"]
            + list(strategy.configure_args),
        ),
        (CompileStep.MAKE, ["make", "-j", str(strategy.make_jobs)]),
        (CompileStep.INSTALL, ["make", "install", f"DESTDIR={destdir}"]),
    ]


def install_prefix(resolved: ResolvedDependency) -> Path:
    """Absolute --prefix a dependency is configured with (its cache location)."""
    return resolved.cache_location.absolute()


class Compiler:
    """Runs the configure/make/install sequence for one dependency."""

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()

    def compile(
        self,
        resolved: ResolvedDependency,
        source_dir: Path,
        destdir: Path,
        env: Optional[Dict[str, str]] = None,
    ):
        """
        Build resolved from source_dir, installing under destdir.

        The first failing step stops the sequence; later steps never run.

        Raises:
            CompileError: Naming the step that failed
        """
        strategy = resolved.dependency.strategy
        if not isinstance(strategy, CompileFromSource):
            strategy = CompileFromSource()

        steps = build_commands(source_dir, install_prefix(resolved), destdir, strategy)

        logger.info(
            f"Starting compilation of {resolved.full_name} "
            "(compilation only needs to be done the first time)"
        )
        for index, (step, cmd) in enumerate(steps, start=1):
            logger.info(f"Step {index} of {len(steps)}: {_STEP_LABELS[step]} ...")
            try:
                result = self.runner.stream(cmd, cwd=source_dir, env=env)
            except OSError as e:
                logger.error(f"'{step.value}' of {resolved.full_name} could not start: {e}")
                raise CompileError(resolved.full_name, step.value) from e

            if not result.success:
                logger.error(f"'{step.value}' of {resolved.full_name} failed")
                raise CompileError(resolved.full_name, step.value, result.returncode)

        logger.info(f"Compilation of {resolved.full_name} done")


__all__ = ["Compiler", "CompileStep", "build_commands", "install_prefix"]
