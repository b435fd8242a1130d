"""Compilable component base classes.

CompilableComponent adds the usual prefix layout (bin, lib, include), runs
commands inside the build's compilation environment and exports its
directories to the components built after it. MakeComponent implements the
``./configure && make && make install`` flow and Library installs into the
shared ``common`` prefix.
"""

import logging
import os
import re
import shutil
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

from stackforge.build.compilation_env import EnvValue
from stackforge.build.process_runner import ProcessRunner, is_in_path
from stackforge.components.component import Component
from stackforge.errors import ExternalProcessError

logger = logging.getLogger(__name__)

REMOVE_PATTERNS = [re.compile(p) for p in (r".*\.a$", r".*\.o$", r".*\.la$", r".*\.log$")]
DOC_PATTERNS = [re.compile(p) for p in (r".*/docs?/", r".*/man/")]
ELF_MAGIC = b"\x7fELF"


def _matches(path: str, patterns: Sequence["re.Pattern[str]"]) -> bool:
    return any(p.match(path) for p in patterns)


def _is_elf(path: Path) -> bool:
    try:
        with open(path, "rb") as f:
            return f.read(4) == ELF_MAGIC
    except OSError:
        return False


class CompilableComponent(Component):
    """Component compiled from source and installed under its own prefix.

    Attributes:
        no_doc: Remove documentation directories when minifying
        keep_patterns: Regular expressions of files minify() must not touch,
            matched against "/"-prefixed paths relative to the prefix
    """

    def __init__(self, metadata=None):
        super().__init__(metadata)
        self.no_doc = True
        self.keep_patterns: List[str] = []

    @property
    def lib_dir(self) -> Path:
        return self.prefix / "lib"

    @property
    def bin_dir(self) -> Path:
        return self.prefix / "bin"

    @property
    def headers_dir(self) -> Path:
        return self.prefix / "include"

    def get_own_environment_variables(self) -> Dict[str, EnvValue]:
        """Variables only used while building this component."""
        return {}

    def get_env_variables(self) -> Dict[str, str]:
        """Full process environment for this component's commands."""
        env = dict(os.environ)
        env.update(self._environment().get_env_variables(self.get_own_environment_variables()))
        return env

    def get_exportable_environment_variables(self) -> Dict[str, EnvValue]:
        flags = super().get_exportable_environment_variables()
        libraries = str(self.lib_dir)
        flags.update(
            {
                "CPPFLAGS": [f"-I{self.headers_dir}"],
                # rpath so dependent binaries find these libraries at runtime
                "LDFLAGS": [f"-L{libraries}", f"-Wl,-rpath={libraries}"],
                "PATH": [str(self.bin_dir)],
            }
        )
        if self._environment().platform.os == "darwin":
            flags["DYLD_LIBRARY_PATH"] = [libraries]
        else:
            flags["LD_LIBRARY_PATH"] = [libraries]
        return flags

    def run_program(
        self,
        cmd: Sequence[Union[str, Path]],
        cwd: Optional[Path] = None,
        extra_env: Optional[Mapping[str, str]] = None,
    ):
        """Run a command inside the component's compilation environment."""
        env = self.get_env_variables()
        if extra_env:
            env.update(extra_env)
        return ProcessRunner.run(cmd, cwd=cwd or self.working_dir, env=env)

    def _collect_files(self) -> List[Path]:
        files = []
        for root, dirnames, filenames in os.walk(self.prefix):
            if ".git" in dirnames:
                dirnames.remove(".git")
            files.extend(Path(root) / name for name in filenames)
        return files

    def minify(self) -> None:
        """Shrink the installation.

        Removes static archives, objects, libtool and log files, drops
        documentation when no_doc is set and strips ELF binaries.
        """
        if not self.prefix.exists():
            return
        logger.debug(f"Starting cleanup under {self.prefix}")
        keep = [re.compile(p) for p in self.keep_patterns]
        prefix = str(self.prefix)

        def relative(path: Path) -> str:
            return "/" + os.path.relpath(path, prefix).replace(os.sep, "/")

        if self.no_doc:
            for root, dirnames, _ in os.walk(self.prefix):
                for name in list(dirnames):
                    directory = Path(root) / name
                    if _matches(f"{relative(directory)}/", DOC_PATTERNS) and not _matches(relative(directory), keep):
                        shutil.rmtree(directory)
                        dirnames.remove(name)

        remaining = []
        for f in self._collect_files():
            if _matches(relative(f), REMOVE_PATTERNS) and not _matches(relative(f), keep):
                f.unlink()
            else:
                remaining.append(f)

        if not is_in_path("strip"):
            logger.warning("Error calling 'strip'. Maybe the command is not available.")
            return
        for f in remaining:
            if f.is_symlink() or _matches(relative(f), keep) or not _is_elf(f):
                continue
            try:
                ProcessRunner.run(["strip", str(f)])
            except ExternalProcessError as e:
                logger.debug(f"Unable to strip {f}: {e}")


class MakeComponent(CompilableComponent):
    """Component built with ``./configure``, ``make`` and ``make install``."""

    def __init__(self, metadata=None):
        super().__init__(metadata)
        self.supports_parallel_build = True

    @property
    def max_parallel_jobs(self) -> int:
        return self._environment().max_parallel_jobs

    def configure_options(self) -> List[str]:
        """Extra arguments for ./configure."""
        return []

    def configure(self, cwd: Optional[Path] = None):
        cwd = cwd or self.working_dir
        return self.run_program(
            ["./configure", f"--prefix={self.prefix}", *self.configure_options()], cwd=cwd
        )

    def make(self, *targets: str, cwd: Optional[Path] = None):
        cmd = ["make"]
        if self.supports_parallel_build and self.max_parallel_jobs > 1:
            cmd.append(f"-j{self.max_parallel_jobs}")
        cmd.extend(targets)
        return self.run_program(cmd, cwd=cwd)

    def build(self) -> None:
        self.configure()
        self.make()

    def install(self) -> None:
        self.make("install")


class Library(MakeComponent):
    """Library installed into the shared ``common`` prefix."""

    @property
    def prefix(self) -> Path:
        return self._environment().prefix_dir / "common"
