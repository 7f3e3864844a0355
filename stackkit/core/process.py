"""
Child process execution for the supply pipeline.

Long-running children (configure, make, pip) are run with their stdout and
stderr drained by two reader threads while the caller waits for exit, so a
full pipe buffer never blocks the child. Short commands whose output only
matters on failure (plugin installs, keytool) are run with combined output
captured.

CommandRunner is the single seam through which StackKit starts processes;
tests substitute a fake runner instead of patching subprocess.
"""

import logging
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Dict, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

Command = Sequence[Union[str, Path]]


@dataclass
class CommandResult:
    """Result of a finished child process."""

    returncode: int
    output: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0


def _drain(stream: IO[str], echo: bool, level: int, sink: Optional[List[str]] = None):
    """Read stream line by line until EOF, logging lines when echo is set."""
    for line in iter(stream.readline, ""):
        line = line.rstrip("\n")
        if echo:
            logger.log(level, line)
        if sink is not None:
            sink.append(line)
    stream.close()


class CommandRunner:
    """
    Runs child processes with an explicit environment.

    Attributes:
        stream_output: Echo child stdout/stderr to the log while streaming
    """

    def __init__(self, stream_output: bool = False):
        self.stream_output = stream_output

    def stream(
        self,
        cmd: Command,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        """
        Run cmd and wait for it, draining both pipes concurrently.

        Both reader threads are joined before returning, so no output from
        this step interleaves with the next one.

        Args:
            cmd: Command and arguments
            cwd: Working directory
            env: Complete environment for the child (None inherits ours)

        Returns:
            CommandResult with the exit code (output is not retained)

        Raises:
            OSError: If the executable cannot be started
        """
        args = [str(a) for a in cmd]
        logger.debug(f"Running: {' '.join(args)} (cwd={cwd})")

        proc = subprocess.Popen(
            args,
            cwd=str(cwd) if cwd else None,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
        readers = [
            threading.Thread(
                target=_drain,
                args=(proc.stdout, self.stream_output, logging.INFO),
                daemon=True,
            ),
            threading.Thread(
                target=_drain,
                args=(proc.stderr, self.stream_output, logging.ERROR),
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        returncode = proc.wait()
        for reader in readers:
            reader.join()

        return CommandResult(returncode=returncode)

    def capture(
        self,
        cmd: Command,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        """
        Run cmd and return its combined stdout/stderr.

        Raises:
            OSError: If the executable cannot be started
        """
        args = [str(a) for a in cmd]
        logger.debug(f"Running: {' '.join(args)}")

        completed = subprocess.run(
            args,
            cwd=str(cwd) if cwd else None,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            check=False,
        )
        return CommandResult(returncode=completed.returncode, output=completed.stdout)


__all__ = ["CommandResult", "CommandRunner"]
