"""Build platform descriptor.

A Platform identifies the target a stack is built for. Its string form,
``os-arch-distro-version`` (e.g. ``linux-x64-debian-12``, unknown parts
left out), appears in tarball names and in the build manifest.

Design:
    - Immutable once created
    - Detected from the host when not given explicitly
    - Accepts dicts and ``os-arch[-distro[-version]]`` strings from build data
"""

import platform as host_platform
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from stackforge.errors import ConfigurationError

OS_RELEASE_FILE = Path("/etc/os-release")


def normalize_arch(machine: str) -> str:
    """Normalize a machine name reported by the OS.

    Args:
        machine: Raw machine name (e.g. 'x86_64', 'i686', 'aarch64')

    Returns:
        One of 'x64', 'x86', 'arm64', 'arm' or the lowercased input
    """
    machine = machine.lower()
    if machine in ("x86_64", "amd64", "x64"):
        return "x64"
    if machine in ("i386", "i486", "i586", "i686", "x86", "ia32"):
        return "x86"
    if machine in ("aarch64", "arm64"):
        return "arm64"
    if machine.startswith("arm"):
        return "arm"
    return machine


def read_os_release(path: Path = OS_RELEASE_FILE) -> Dict[str, str]:
    """Parse an os-release file into a dictionary.

    Returns an empty dictionary when the file does not exist.
    """
    values: Dict[str, str] = {}
    if not path.exists():
        return values
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


@dataclass(frozen=True)
class Platform:
    """Target platform of a build."""

    os: str
    arch: str
    distro: Optional[str] = None
    version: Optional[str] = None

    def __str__(self) -> str:
        return "-".join(str(part) for part in (self.os, self.arch, self.distro, self.version) if part)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def detect(cls, os_release: Path = OS_RELEASE_FILE) -> "Platform":
        """Detect the platform of the running host."""
        system = host_platform.system().lower()
        if not system:
            raise ConfigurationError("Unable to detect the host operating system")
        release = read_os_release(os_release)
        return cls(
            os=system,
            arch=normalize_arch(host_platform.machine()),
            distro=release.get("ID"),
            version=release.get("VERSION_ID"),
        )

    @classmethod
    def from_value(cls, value: Union["Platform", Dict[str, Any], str, None]) -> "Platform":
        """Build a Platform from the forms accepted in build data.

        Missing fields are completed from the host platform.

        Args:
            value: A Platform, a dict with os/arch/distro/version keys, a
                string ``os-arch[-distro[-version]]`` or None

        Returns:
            The resolved Platform

        Raises:
            ConfigurationError: If the value cannot be interpreted
        """
        if isinstance(value, Platform):
            return value
        if value is None:
            return cls.detect()

        if isinstance(value, str):
            parts = value.split("-", 3)
            if len(parts) < 2 or not all(parts[:2]):
                raise ConfigurationError(
                    f"Invalid platform '{value}', expected os-arch[-distro[-version]]"
                )
            fields: Dict[str, Any] = dict(zip(("os", "arch", "distro", "version"), parts))
        elif isinstance(value, dict):
            unknown = set(value) - {"os", "arch", "distro", "version"}
            if unknown:
                raise ConfigurationError(
                    f"Unknown platform fields: {', '.join(sorted(unknown))}"
                )
            fields = dict(value)
        else:
            raise ConfigurationError(f"Unsupported platform value: {value!r}")

        if "os" not in fields or "arch" not in fields:
            detected = cls.detect()
            for key, current in detected.to_dict().items():
                fields.setdefault(key, current)

        if "arch" in fields and fields["arch"] is not None:
            fields["arch"] = normalize_arch(str(fields["arch"]))
        return cls(**fields)


@dataclass(frozen=True)
class BuildTarget:
    """Build target of a BuildEnvironment."""

    platform: Platform
    is_unix: bool = True
