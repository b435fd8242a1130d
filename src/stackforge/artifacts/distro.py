"""Linux distribution helpers.

Used to annotate build manifests with the system packages that built
binaries link against at runtime, and the packages installed on the build
host. Unknown distributions and hosts missing ``file``/``ldd`` produce empty
lists rather than errors, since the annotation is informational.
"""

import logging
import os
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from stackforge.build.process_runner import ProcessRunner, is_in_path

logger = logging.getLogger(__name__)

ELF_MAGIC = b"\x7fELF"
LDD_LIBRARY_PATTERN = re.compile(r" => (/\S*)")


def _is_elf(path: str) -> bool:
    try:
        with open(path, "rb") as f:
            return f.read(4) == ELF_MAGIC
    except OSError:
        return False


class Distro:
    """Base class for a Linux distribution's package tooling."""

    package_query_command: Sequence[str] = ()

    def __init__(self, arch: str):
        self.arch = arch

    def _package_name(self, descriptor: str) -> Optional[str]:
        raise NotImplementedError

    def list_packages(self) -> List[Dict[str, str]]:
        """Packages installed on the host as ``{"name", "version"}`` dicts."""
        raise NotImplementedError

    @staticmethod
    def _parse_package_list(raw: str) -> List[Dict[str, str]]:
        packages = []
        for entry in filter(None, (e.strip() for e in raw.split(","))):
            parts = entry.split(" ")
            if len(parts) != 2:
                raise ValueError(
                    f"Failed to parse system packages information. Expected 'name version', received: {entry}"
                )
            packages.append({"name": parts[0], "version": parts[1]})
        return packages

    def _dynamic_binaries(self, files: Iterable[str]) -> List[str]:
        bits = "64-bit" if self.arch in ("x64", "arm64") else "32-bit"
        binaries = []
        for f in files:
            if os.path.islink(f) or not os.path.isfile(f) or not _is_elf(f):
                continue
            info = ProcessRunner.run(["file", f], check=False).stdout
            if "dynamically linked" in info and bits in info:
                binaries.append(f)
        return binaries

    @staticmethod
    def _parse_libraries(ldd_output: str) -> List[str]:
        libraries: List[str] = []
        for line in ldd_output.splitlines():
            match = LDD_LIBRARY_PATTERN.search(line)
            if match and match.group(1) not in libraries:
                libraries.append(match.group(1))
        return libraries

    def get_runtime_packages(
        self, files: Iterable[str], skip_libraries_in: Sequence[str] = ()
    ) -> List[str]:
        """System packages providing the libraries the given files link to.

        Args:
            files: Candidate files (non ELF files are ignored)
            skip_libraries_in: Directories whose libraries are not resolved

        Returns:
            Package names, deduplicated
        """
        if not (is_in_path("file") and is_in_path("ldd")):
            logger.debug("Commands 'file' and 'ldd' are needed to obtain runtime packages")
            return []

        binaries = self._dynamic_binaries(files)
        if not binaries:
            return []

        result = ProcessRunner.run(["ldd", *binaries], check=False)
        libraries = [
            lib
            for lib in self._parse_libraries(result.stdout)
            if not any(lib.startswith(str(d)) for d in skip_libraries_in)
        ]
        if not libraries or not is_in_path(self.package_query_command[0]):
            return []

        query = ProcessRunner.run([*self.package_query_command, *libraries], check=False)
        packages: List[str] = []
        for descriptor in filter(None, query.stdout.splitlines()):
            name = self._package_name(descriptor)
            if name and name not in packages:
                packages.append(name)
        return packages


class Debian(Distro):
    package_query_command = ("dpkg", "-S")

    def _package_name(self, descriptor: str) -> Optional[str]:
        return descriptor.split(":")[0] or None

    def list_packages(self) -> List[Dict[str, str]]:
        if not is_in_path("dpkg-query"):
            return []
        output = ProcessRunner.run(["dpkg-query", "-W", "-f=${binary:Package} ${Version},"]).stdout
        return self._parse_package_list(output)


class Centos(Distro):
    package_query_command = ("rpm", "-qf")

    def _package_name(self, descriptor: str) -> Optional[str]:
        match = re.match(r"(.*?)-[0-9]", descriptor)
        return match.group(1) if match else None

    def list_packages(self) -> List[Dict[str, str]]:
        if not is_in_path("rpm"):
            return []
        output = ProcessRunner.run(["rpm", "-qa", "--queryformat=%{NAME} %{VERSION},"]).stdout
        return self._parse_package_list(output)


DISTROS = {
    "debian": Debian,
    "ubuntu": Debian,
    "centos": Centos,
    "rhel": Centos,
    "ol": Centos,
}


def get_distro(name: Optional[str], arch: str) -> Optional[Distro]:
    """Return the helper for a distribution id, or None if unsupported."""
    distro_class = DISTROS.get((name or "").lower())
    if distro_class is None:
        logger.debug(f"Distro type {name} is not supported, skipping package annotation")
        return None
    return distro_class(arch)


def list_files(directory: Path) -> List[str]:
    """Every regular file below `directory`."""
    files = []
    for root, dirnames, filenames in os.walk(directory):
        if ".git" in dirnames:
            dirnames.remove(".git")
        files.extend(os.path.join(root, name) for name in filenames)
    return files

