"""External Process Runner.

This module runs the external commands a build needs (git, patch, configure,
make, strip, ...) via subprocess.

Design:
    - Blocking calls; the build waits for every command to finish
    - No timeout, long builds are expected
    - Output is captured and logged at debug level
    - Non-zero exit raises ExternalProcessError carrying stdout/stderr
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from stackforge.errors import ExternalProcessError, ToolNotFoundError

logger = logging.getLogger(__name__)

Command = Sequence[Union[str, Path]]


def is_in_path(program: str) -> bool:
    """Return whether an executable named `program` can be found on PATH."""
    return shutil.which(program) is not None


class ProcessRunner:
    """Runs external programs and reports failures as ExternalProcessError."""

    @staticmethod
    def run(
        cmd: Command,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        """Run a command and wait for it to finish.

        Args:
            cmd: Program and arguments
            cwd: Working directory
            env: Full environment for the child process (inherits ours if None)
            check: Raise on non-zero exit status

        Returns:
            The completed process with captured text output

        Raises:
            ToolNotFoundError: If the program does not exist
            ExternalProcessError: If check is set and the command fails
        """
        args = [str(part) for part in cmd]
        logger.debug(f"Running: {' '.join(args)}" + (f" (cwd={cwd})" if cwd else ""))

        try:
            result = subprocess.run(
                args,
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env is not None else None,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(f"Program not found: {args[0]}") from e

        if result.stdout:
            logger.debug(result.stdout.rstrip())
        if result.stderr:
            logger.debug(result.stderr.rstrip())

        if check and result.returncode != 0:
            raise ExternalProcessError(args, result.returncode, result.stdout, result.stderr)
        return result
