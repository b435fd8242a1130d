"""
Build environment for stackforge.

This package provides:
- Target platform detection
- The compilation environment shared by the components of a build
- External process execution

ComponentList and BuildManager live in their own modules
(stackforge.build.component_list, stackforge.build.build_manager) since they
depend on the components and artifacts packages.
"""

from .build_environment import BuildEnvironment, default_parallel_jobs
from .compilation_env import CompilationEnvironment
from .platform import BuildTarget, Platform
from .process_runner import ProcessRunner, is_in_path

__all__ = [
    "BuildEnvironment",
    "BuildTarget",
    "CompilationEnvironment",
    "Platform",
    "ProcessRunner",
    "default_parallel_jobs",
    "is_in_path",
]
