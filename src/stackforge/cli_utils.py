"""CLI utility functions for stackforge.

This module provides common utilities used across CLI commands including:
- Build data loading from JSON files and component references
- Configuration loading
- Error handling and formatting
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from stackforge.config.build_config import BuildConfig
from stackforge.errors import ConfigurationError, ExternalProcessError, StackforgeError

BuildData = Union[List[Any], Dict[str, Any]]


class BuildDataLoader:
    """Assembles build data from a JSON file and command-line references."""

    @staticmethod
    def load(build_file: Optional[Path], references: Sequence[str]) -> BuildData:
        """Load the build data of a command.

        References given on the command line are appended to the components
        of the JSON file.

        Args:
            build_file: Optional JSON file holding a list of references or a
                ``{"platform", "buildId", "components"}`` object
            references: Component references (e.g. "zlib@1.2.11:/tmp/zlib.tar.gz")

        Returns:
            A list of references, or a dict when the file holds one

        Raises:
            ConfigurationError: If the file cannot be read, is not valid JSON
                or there is nothing to build
        """
        data: BuildData = []
        if build_file is not None:
            try:
                data = json.loads(Path(build_file).read_text(encoding="utf-8"))
            except OSError as e:
                raise ConfigurationError(f"Cannot read build file {build_file}: {e}") from e
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON in {build_file}: {e}") from e
            if not isinstance(data, (list, dict)):
                raise ConfigurationError(
                    f"Build file {build_file} must hold a list of components or an object"
                )

        if isinstance(data, dict):
            data = dict(data)
            data["components"] = list(data.get("components") or []) + list(references)
            components = data["components"]
        else:
            data = list(data) + list(references)
            components = data

        if not components:
            raise ConfigurationError("Nothing to build. Pass component references or --spec FILE")
        return data


class ConfigLoader:
    """Resolves the BuildConfig used by a command."""

    @staticmethod
    def load(config_file: Optional[Path]) -> BuildConfig:
        """Load the configuration file, or the defaults when none is given.

        Raises:
            ConfigurationError: If the file is invalid
        """
        if config_file is not None:
            return BuildConfig.from_file(config_file)
        return BuildConfig.default()


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    # ANSI color codes
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "Configuration error", "Build failed")
            message: Error message details
        """
        print()
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}")
        print()
        print(message)
        print()

    @staticmethod
    def print_success(message: str) -> None:
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        print()
        print(f"{ErrorFormatter.YELLOW}✗ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def handle_configuration_error(error: ConfigurationError) -> None:
        """Report a configuration problem and exit with status 2."""
        ErrorFormatter.print_error("Configuration error", str(error))
        sys.exit(2)

    @staticmethod
    def handle_build_error(error: StackforgeError, verbose: bool = False) -> None:
        """Report a failed build and exit with status 1.

        Args:
            error: The error that aborted the build
            verbose: Whether to print the output of a failed command
        """
        ErrorFormatter.print_error("Build failed!", f"{type(error).__name__}: {error}")
        if verbose and isinstance(error, ExternalProcessError):
            if error.stdout:
                print("stdout:")
                print(error.stdout)
            if error.stderr:
                print("stderr:")
                print(error.stderr)
        sys.exit(1)

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Handle KeyboardInterrupt with standard formatting."""
        ErrorFormatter.print_warning("Build interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("Unexpected error", message)

        if verbose:
            import traceback

            print("Traceback:")
            print(traceback.format_exc())

        sys.exit(1)
