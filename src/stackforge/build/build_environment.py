"""Build Environment.

Describes the physical layout of one build: where sources are unpacked
(sandbox), where components are installed (prefix), where results and logs
go (output), the target platform and how many jobs a component's own build
may run in parallel. It owns the CompilationEnvironment shared by every
component of the build.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import psutil

from stackforge.build.compilation_env import CompilationEnvironment, EnvValue
from stackforge.build.platform import BuildTarget, Platform
from stackforge.errors import ConfigurationError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def default_parallel_jobs() -> int:
    """Number of parallel jobs used when none is configured."""
    return psutil.cpu_count(logical=True) or 1


class BuildEnvironment:
    """Layout and shared compilation state of a single build.

    Attributes:
        platform: Target platform
        target: BuildTarget wrapping the platform
        output_dir: Root for build directories and logs
        prefix_dir: Installation root shared by all components
        sandbox_dir: Directory where sources are unpacked and built
        artifacts_dir: Where artifact tarballs are written
        logs_dir: Where logs are written
        max_parallel_jobs: Upper bound for a component's own build parallelism
    """

    def __init__(
        self,
        platform: Union[Platform, Dict[str, Any], str, None] = None,
        output_dir: Optional[PathLike] = None,
        prefix_dir: Optional[PathLike] = None,
        sandbox_dir: Optional[PathLike] = None,
        artifacts_dir: Optional[PathLike] = None,
        logs_dir: Optional[PathLike] = None,
        max_parallel_jobs: Optional[int] = None,
    ):
        """Create the environment and its directories.

        Args:
            platform: Target platform (detected from the host if None)
            output_dir: Output root (required)
            prefix_dir: Installation prefix (required)
            sandbox_dir: Build sandbox (required)
            artifacts_dir: Defaults to <output_dir>/artifacts
            logs_dir: Defaults to <output_dir>/logs
            max_parallel_jobs: Defaults to the number of CPUs

        Raises:
            ConfigurationError: If a required directory is missing or the
                platform cannot be resolved
        """
        missing = [
            name
            for name, value in (
                ("output_dir", output_dir),
                ("prefix_dir", prefix_dir),
                ("sandbox_dir", sandbox_dir),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing required build directories: {', '.join(missing)}")

        self.platform = Platform.from_value(platform)
        self.target = BuildTarget(platform=self.platform, is_unix=self.platform.os != "windows")

        self.output_dir = Path(output_dir).resolve()  # type: ignore[arg-type]
        self.prefix_dir = Path(prefix_dir).resolve()  # type: ignore[arg-type]
        self.sandbox_dir = Path(sandbox_dir).resolve()  # type: ignore[arg-type]
        self.artifacts_dir = Path(artifacts_dir).resolve() if artifacts_dir else self.output_dir / "artifacts"
        self.logs_dir = Path(logs_dir).resolve() if logs_dir else self.output_dir / "logs"

        if max_parallel_jobs is not None and max_parallel_jobs < 1:
            raise ConfigurationError(f"max_parallel_jobs must be positive, got {max_parallel_jobs}")
        self.max_parallel_jobs = max_parallel_jobs or default_parallel_jobs()

        self._compilation_env = CompilationEnvironment(self.platform)

        for directory in (self.output_dir, self.prefix_dir, self.sandbox_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

        logger.debug(
            f"Build environment for {self.platform}: prefix={self.prefix_dir} "
            + f"sandbox={self.sandbox_dir} output={self.output_dir}"
        )

    def add_env_variable(self, name: str, value: EnvValue, operation: str = "auto") -> None:
        self._compilation_env.add(name, value, operation)

    def add_env_variables(self, variables: Mapping[str, EnvValue], operation: str = "auto") -> None:
        self._compilation_env.add_many(variables, operation)

    def get_env_variables(
        self, extra: Optional[Mapping[str, EnvValue]] = None, stringify: bool = True
    ) -> Dict[str, Any]:
        return self._compilation_env.get(extra, stringify=stringify)

    def reset_env_variables(self) -> None:
        self._compilation_env.reset()
