"""
Build configuration.

Reads the directories and defaults used by BuildManager from an INI file.

Example stackforge.ini:
    [paths]
    root = /opt/stackforge
    output = ${root}/output
    prefix = ${root}/prefix
    sandbox = ${root}/sandbox
    sources =
        /srv/tarballs
        /mnt/mirror
    cache = ${root}/cache

    [compilation]
    max_jobs = 8
    platform = linux-x64-debian-12

    [logging]
    level = DEBUG
    file = ${paths:root}/stackforge.log

Relative paths are resolved against the directory holding the file.
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from stackforge.errors import ConfigurationError

HOME_ENV_VARIABLE = "STACKFORGE_HOME"


def _split_list(value: str) -> List[str]:
    items = []
    for line in value.splitlines():
        items.extend(part.strip() for part in line.split(","))
    return [item for item in items if item]


@dataclass
class BuildConfig:
    """Directories and defaults of a stackforge installation.

    Attributes:
        output_dir: Root for build directories
        prefix_dir: Installation prefix shared by every component
        sandbox_dir: Where sources are unpacked and compiled
        logs_dir: Log directory (defaults to <output_dir>/logs)
        source_paths: Directories searched for source tarballs
        cache_dir: Download cache for URL sources
        max_jobs: Parallel jobs for a component's own build (None = CPU count)
        log_level: Console log level name
        log_file: Optional rotating log file
        platform: Default target platform string
    """

    output_dir: Path
    prefix_dir: Path
    sandbox_dir: Path
    logs_dir: Optional[Path] = None
    source_paths: List[Path] = field(default_factory=list)
    cache_dir: Optional[Path] = None
    max_jobs: Optional[int] = None
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    platform: Optional[str] = None

    @classmethod
    def default(cls, base_dir: Optional[Path] = None) -> "BuildConfig":
        """Configuration rooted at <base_dir>/.stackforge.

        The root can be overridden with the STACKFORGE_HOME environment
        variable.

        Args:
            base_dir: Base directory. If None, uses current directory.
        """
        home_env = os.environ.get(HOME_ENV_VARIABLE)
        if home_env:
            root = Path(home_env).resolve()
        else:
            root = Path(base_dir or Path.cwd()).resolve() / ".stackforge"

        return cls(
            output_dir=root / "output",
            prefix_dir=root / "prefix",
            sandbox_dir=root / "sandbox",
            cache_dir=root / "cache",
        )

    @classmethod
    def from_file(cls, path: Path) -> "BuildConfig":
        """
        Load a configuration file.

        Missing keys fall back to default(<directory of the file>).

        Args:
            path: Path to the INI file

        Returns:
            Parsed configuration

        Raises:
            ConfigurationError: If the file doesn't exist, cannot be parsed or
                holds invalid values
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        parser = configparser.ConfigParser(interpolation=configparser.ExtendedInterpolation())
        try:
            parser.read(path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Failed to parse {path}: {e}") from e

        base = path.resolve().parent
        defaults = cls.default(base)

        def _get(section: str, key: str) -> Optional[str]:
            try:
                value = parser.get(section, key, fallback=None)
            except configparser.Error as e:
                raise ConfigurationError(f"Invalid value for [{section}] {key} in {path}: {e}") from e
            return value.strip() if value and value.strip() else None

        def _path(section: str, key: str, fallback: Optional[Path]) -> Optional[Path]:
            value = _get(section, key)
            if value is None:
                return fallback
            return (base / Path(value).expanduser()).resolve()

        max_jobs: Optional[int] = None
        raw_jobs = _get("compilation", "max_jobs")
        if raw_jobs is not None:
            try:
                max_jobs = int(raw_jobs)
            except ValueError as e:
                raise ConfigurationError(f"[compilation] max_jobs must be an integer, got {raw_jobs!r}") from e
            if max_jobs < 1:
                raise ConfigurationError(f"[compilation] max_jobs must be positive, got {max_jobs}")

        sources = _get("paths", "sources")
        source_paths = [(base / Path(p).expanduser()).resolve() for p in _split_list(sources)] if sources else []

        return cls(
            output_dir=_path("paths", "output", defaults.output_dir),  # type: ignore[arg-type]
            prefix_dir=_path("paths", "prefix", defaults.prefix_dir),  # type: ignore[arg-type]
            sandbox_dir=_path("paths", "sandbox", defaults.sandbox_dir),  # type: ignore[arg-type]
            logs_dir=_path("paths", "logs", None),
            source_paths=source_paths,
            cache_dir=_path("paths", "cache", defaults.cache_dir),
            max_jobs=max_jobs,
            log_level=(_get("logging", "level") or "INFO").upper(),
            log_file=_path("logging", "file", None),
            platform=_get("compilation", "platform"),
        )

    @property
    def effective_logs_dir(self) -> Path:
        return self.logs_dir or self.output_dir / "logs"
