"""Error types raised by stackforge.

Every error raised on purpose by the build engine derives from
StackforgeError so callers can catch the whole family at once. Only
validation failures raised while a component is added to a ComponentList
may be downgraded to warnings; everything else aborts a build.
"""

from typing import List, Optional, Sequence


class StackforgeError(Exception):
    """Base class for all stackforge errors."""

    pass


class ConfigurationError(StackforgeError):
    """Raised when required configuration is missing or invalid."""

    pass


class ToolNotFoundError(ConfigurationError):
    """Raised when a required external tool is not on PATH."""

    pass


class ValidationError(StackforgeError):
    """Raised when a component definition is incomplete or inconsistent."""

    pass


class ChecksumMismatchError(StackforgeError):
    """Raised when a file's sha256 digest differs from the declared one."""

    def __init__(self, path, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {path}\n"
            + f"Expected: {expected}\n"
            + f"Got: {actual}"
        )


class NotFoundError(StackforgeError):
    """Raised when a component, file or tarball cannot be found."""

    pass


class VersionMismatchError(StackforgeError):
    """Raised when a requested version differs from the recipe's version."""

    pass


class PackagingError(StackforgeError):
    """Raised when artifacts cannot be packaged."""

    pass


class DownloadError(StackforgeError):
    """Raised when a source archive cannot be downloaded."""

    pass


class ExternalProcessError(StackforgeError):
    """Raised when an external command exits with a non-zero status.

    Attributes:
        command: The command line that was executed
        returncode: Exit status of the process
        stdout: Captured standard output
        stderr: Captured standard error
    """

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
    ):
        self.command: List[str] = [str(part) for part in command]
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""

        message = f"Command failed with exit code {returncode}: {' '.join(self.command)}"
        if self.stderr.strip():
            message += f"\nstderr: {self.stderr.strip()}"
        elif self.stdout.strip():
            message += f"\nstdout: {self.stdout.strip()}"
        super().__init__(message)
