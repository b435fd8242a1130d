"""Logging configuration for stackforge.

Modules log through ``logging.getLogger(__name__)``. The CLI calls
setup_logging() once; BuildManager attaches a per-build log file for the
duration of a build so every build directory carries its own log.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT = 3


def _parse_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level name or number
        log_file: Optional rotating log file
        console: Whether to log to stderr
    """
    numeric_level = _parse_level(level)

    logger = logging.getLogger()
    logger.setLevel(numeric_level)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)


def attach_build_log(log_path: Path, level: int = logging.DEBUG) -> logging.Handler:
    """Attach a file handler collecting everything logged by stackforge.

    Args:
        log_path: Path of the build log file
        level: Minimum level written to the file

    Returns:
        The handler, to be passed to detach_build_log()
    """
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(str(log_path), encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    package_logger = logging.getLogger("stackforge")
    package_logger.addHandler(handler)
    handler.previous_level = package_logger.level  # type: ignore[attr-defined]
    if package_logger.level == logging.NOTSET or package_logger.level > level:
        package_logger.setLevel(level)
    return handler


def detach_build_log(handler: logging.Handler) -> None:
    """Remove and close a handler added by attach_build_log()."""
    package_logger = logging.getLogger("stackforge")
    package_logger.removeHandler(handler)
    package_logger.setLevel(getattr(handler, "previous_level", logging.NOTSET))
    handler.close()
