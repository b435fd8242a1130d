"""
Command-line interface for stackforge.

This module provides the `stackforge` CLI tool for building software stacks.
"""

import argparse
import json
import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from stackforge.build.build_manager import BuildManager
from stackforge.cli_utils import BuildDataLoader, ConfigLoader, ErrorFormatter
from stackforge.errors import ConfigurationError, StackforgeError
from stackforge.logging_setup import setup_logging


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    references: List[str] = field(default_factory=list)
    build_file: Optional[Path] = None
    config_file: Optional[Path] = None
    force_rebuild: bool = False
    continue_at: Optional[str] = None
    incremental_tracking: bool = False
    build_id: Optional[str] = None
    build_dir: Optional[Path] = None
    platform: Optional[str] = None
    abort_on_error: bool = True
    verbose: bool = False


@dataclass
class InspectArgs:
    """Arguments for the inspect command."""

    references: List[str] = field(default_factory=list)
    build_file: Optional[Path] = None
    config_file: Optional[Path] = None
    platform: Optional[str] = None
    verbose: bool = False


def build_command(args: BuildArgs) -> None:
    """Build a stack of components.

    Examples:
        stackforge build zlib@1.2.11:/tmp/zlib-1.2.11.tar.gz
        stackforge build --spec stack.json          # Build from a JSON file
        stackforge build --spec stack.json --continue-at openssl
        stackforge build --incremental-tracking     # Per-component tarballs
    """
    print("stackforge build system v0.1.0")
    print()

    try:
        config = ConfigLoader.load(args.config_file)
        setup_logging(level=logging.DEBUG if args.verbose else config.log_level, log_file=config.log_file)
        build_data = BuildDataLoader.load(args.build_file, args.references)

        manager = BuildManager(config)
        start_time = time.time()
        summary = manager.build(
            build_data,
            abort_on_error=args.abort_on_error,
            force_rebuild=args.force_rebuild,
            continue_at=args.continue_at,
            incremental_tracking=args.incremental_tracking,
            build_id=args.build_id,
            build_dir=args.build_dir,
            platform=args.platform,
        )
        build_time = time.time() - start_time

        ErrorFormatter.print_success("Build successful!")
        print()
        print(f"Build id: {summary.id}")
        print(f"Platform: {summary.platform}")
        print(f"Components: {', '.join(f'{a.id}@{a.version}' for a in summary.artifacts)}")
        print(f"Build time: {build_time:.2f}s")
        sys.exit(0)

    except ConfigurationError as e:
        ErrorFormatter.handle_configuration_error(e)
    except StackforgeError as e:
        ErrorFormatter.handle_build_error(e, args.verbose)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def inspect_command(args: InspectArgs) -> None:
    """Print the resolved components of a build as JSON.

    Examples:
        stackforge inspect zlib@1.2.11
        stackforge inspect --spec stack.json
    """
    try:
        config = ConfigLoader.load(args.config_file)
        setup_logging(level=logging.DEBUG if args.verbose else "WARNING")
        build_data = BuildDataLoader.load(args.build_file, args.references)

        manager = BuildManager(config)
        metadata = manager.get_components_metadata(build_data, platform=args.platform)
        print(json.dumps(metadata, indent=4))
        sys.exit(0)

    except ConfigurationError as e:
        ErrorFormatter.handle_configuration_error(e)
    except StackforgeError as e:
        ErrorFormatter.handle_build_error(e, args.verbose)
    except KeyboardInterrupt:
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "references",
        nargs="*",
        help="Component references: id[@version][:/path/to/source.tar.gz]",
    )
    parser.add_argument(
        "-s",
        "--spec",
        dest="build_file",
        type=Path,
        default=None,
        help="JSON file with the list of components (or {platform, buildId, components})",
    )
    parser.add_argument(
        "-c",
        "--config",
        dest="config_file",
        type=Path,
        default=None,
        help="INI configuration file (default: ./.stackforge or $STACKFORGE_HOME)",
    )
    parser.add_argument(
        "--platform",
        default=None,
        help="Target platform, e.g. linux-x64-debian-12 (default: detect host)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )


def main() -> None:
    """stackforge - Build orchestration for software stacks.

    Builds lists of components from source tarballs into a shared prefix and
    packages the result.
    """
    parser = argparse.ArgumentParser(
        prog="stackforge",
        description="stackforge - Build orchestration for software stacks",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="stackforge 0.1.0",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Build command
    build_parser = subparsers.add_parser(
        "build",
        help="Build a list of components",
    )
    _add_common_arguments(build_parser)
    build_parser.add_argument(
        "-f",
        "--force-rebuild",
        action="store_true",
        help="Rebuild components even if they were already built",
    )
    build_parser.add_argument(
        "--continue-at",
        default=None,
        help="Skip the components listed before this id",
    )
    build_parser.add_argument(
        "--incremental-tracking",
        action="store_true",
        help="Create a tarball per component (requires git)",
    )
    build_parser.add_argument(
        "--build-id",
        default=None,
        help="Build id (default: <lastId>-<lastVersion>-stack)",
    )
    build_parser.add_argument(
        "--build-dir",
        type=Path,
        default=None,
        help="Build directory (default: timestamped directory under the output directory)",
    )
    build_parser.add_argument(
        "--no-abort-on-error",
        dest="abort_on_error",
        action="store_false",
        help="Log component validation errors instead of aborting",
    )

    # Inspect command
    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Print the resolved components of a build as JSON",
    )
    _add_common_arguments(inspect_parser)

    # Parse arguments
    parsed_args = parser.parse_args()

    # If no command specified, show help
    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    # Execute command
    if parsed_args.command == "build":
        build_args = BuildArgs(
            references=parsed_args.references,
            build_file=parsed_args.build_file,
            config_file=parsed_args.config_file,
            force_rebuild=parsed_args.force_rebuild,
            continue_at=parsed_args.continue_at,
            incremental_tracking=parsed_args.incremental_tracking,
            build_id=parsed_args.build_id,
            build_dir=parsed_args.build_dir,
            platform=parsed_args.platform,
            abort_on_error=parsed_args.abort_on_error,
            verbose=parsed_args.verbose,
        )
        build_command(build_args)
    elif parsed_args.command == "inspect":
        inspect_args = InspectArgs(
            references=parsed_args.references,
            build_file=parsed_args.build_file,
            config_file=parsed_args.config_file,
            platform=parsed_args.platform,
            verbose=parsed_args.verbose,
        )
        inspect_command(inspect_args)


if __name__ == "__main__":
    main()
