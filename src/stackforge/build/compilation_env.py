"""Compilation Environment.

This module assembles the environment variables (CC, CFLAGS, PATH, ...)
that component builds run with. Components export variables into it as they
are added to a build, and each exported value is combined with what is
already there.

Design:
    - List variables (flags and search paths) are combined element-wise
    - Scalars are always replaced by the newest value
    - get() never mutates the accumulated state
    - Stringified output joins search paths with ':' and flags with spaces
"""

import copy
import os
from typing import Any, Dict, List, Mapping, Optional, Union

from stackforge.build.platform import Platform
from stackforge.errors import ConfigurationError

EnvValue = Union[str, List[str]]

PATH_VARIABLES = ("PATH", "LD_LIBRARY_PATH", "DYLD_LIBRARY_PATH")
FLAG_VARIABLES = ("CFLAGS", "CPPFLAGS", "CXXFLAGS", "LDFLAGS")
LIST_VARIABLES = FLAG_VARIABLES + PATH_VARIABLES

OPERATIONS = ("auto", "merge", "append", "prepend", "replace")


def _as_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


class CompilationEnvironment:
    """Accumulates compilation environment variables for a build.

    Example:
        env = CompilationEnvironment(Platform("linux", "x64"))
        env.add("PATH", ["/opt/a/bin"])
        env.get()["PATH"]   # "/opt/a/bin:/usr/bin:..."
    """

    def __init__(self, platform: Platform):
        """Initialize with the platform defaults.

        Args:
            platform: Target platform

        Raises:
            ConfigurationError: If the platform is not supported
        """
        if platform is None:
            raise ConfigurationError("You need to provide a platform to build for")
        self.platform = platform
        self._variables: Dict[str, EnvValue] = self._default_variables()

    def _default_variables(self) -> Dict[str, EnvValue]:
        if self.platform.os != "linux":
            raise ConfigurationError(f"Platform {self.platform} is not supported")

        variables: Dict[str, EnvValue] = {
            "CC": "gcc",
            "LD_LIBRARY_PATH": [],
            "DYLD_LIBRARY_PATH": [],
            "PATH": [p for p in os.environ.get("PATH", "").split(os.pathsep) if p],
        }
        cflags = ["-m64", "-fPIC"] if self.platform.arch == "x64" else []
        # Strip debug symbols
        cflags.append("-s")
        variables["CFLAGS"] = cflags
        return variables

    @staticmethod
    def combine(
        name: str,
        old_value: Optional[EnvValue],
        new_value: EnvValue,
        operation: str = "auto",
    ) -> EnvValue:
        """Combine an existing variable value with a new one.

        Args:
            name: Variable name
            old_value: Current value (None if unset)
            new_value: Value being added
            operation: One of auto, merge, append, prepend, replace

        Returns:
            The combined value

        Raises:
            ValueError: If the operation is unknown
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Don't know how to handle '{operation}' operation")
        if operation == "auto":
            operation = "prepend" if name in PATH_VARIABLES else "merge"

        is_list = (
            name in LIST_VARIABLES
            or isinstance(old_value, (list, tuple))
            or isinstance(new_value, (list, tuple))
        )
        if not is_list:
            return new_value

        old_list = _as_list(old_value)
        new_list = _as_list(new_value)

        if operation == "merge":
            combined = list(old_list)
            for element in new_list:
                if element not in combined:
                    combined.insert(0, element)
            return combined
        if operation == "append":
            if new_list and old_list[-len(new_list):] == new_list:
                return old_list
            return old_list + new_list
        if operation == "prepend":
            if new_list and old_list[: len(new_list)] == new_list:
                return old_list
            return new_list + old_list
        return new_list

    def add(self, name: str, value: EnvValue, operation: str = "auto") -> None:
        """Add a variable, combining it with any existing value."""
        self._variables[name] = self.combine(
            name, self._variables.get(name), value, operation
        )

    def add_many(self, variables: Mapping[str, EnvValue], operation: str = "auto") -> None:
        """Add several variables with the same operation."""
        for name, value in variables.items():
            self.add(name, value, operation)

    def get(
        self, extra: Optional[Mapping[str, EnvValue]] = None, stringify: bool = True
    ) -> Dict[str, Any]:
        """Return the current variables, optionally overlaid with extra ones.

        Extra variables that already exist are prepended to the current
        value. The accumulated state is left untouched.

        Args:
            extra: Additional variables for this call only
            stringify: Whether to render values as strings

        Returns:
            Dictionary of variables
        """
        values = copy.deepcopy(self._variables)
        for name, value in (extra or {}).items():
            if name in values:
                values[name] = self.combine(name, values[name], value, "prepend")
            else:
                values[name] = copy.deepcopy(value)

        if stringify:
            return {name: self.stringify(name, value) for name, value in values.items()}
        return values

    def reset(self) -> None:
        """Restore the platform defaults."""
        self._variables = self._default_variables()

    @staticmethod
    def stringify(name: str, value: Any) -> Any:
        if name in PATH_VARIABLES:
            return ":".join(_as_list(value))
        if name in FLAG_VARIABLES or isinstance(value, (list, tuple)):
            return " ".join(_as_list(value))
        return value
