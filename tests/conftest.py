"""Shared fixtures for the stackforge tests."""

import tarfile
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

from stackforge.artifacts.archive import sha256_file
from stackforge.build.build_environment import BuildEnvironment
from stackforge.build.platform import Platform
from stackforge.components.component import Component


class ScriptedComponent(Component):
    """Component that installs `install_files` and records every hook call.

    The install step copies the files of the unpacked source tree into the
    prefix, so a source tarball is enough to produce an installation.
    """

    calls: List[Tuple[str, str]] = []

    def _record(self, hook: str) -> None:
        self.calls.append((str(self.id), hook))

    def cleanup(self):
        self._record("cleanup")
        super().cleanup()

    def extract(self):
        self._record("extract")
        super().extract()

    def copy_extra_files(self):
        self._record("copy_extra_files")
        super().copy_extra_files()

    def patch(self):
        self._record("patch")
        super().patch()

    def post_extract(self):
        self._record("post_extract")

    def build(self):
        self._record("build")

    def post_build(self):
        self._record("post_build")

    def install(self):
        self._record("install")
        for source in sorted(self.src_dir.rglob("*")):
            if source.is_file() and source.name != ".buildcomplete":
                target = self.prefix / source.relative_to(self.src_dir)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(source.read_bytes())

    def fulfill_license_requirements(self):
        self._record("fulfill_license_requirements")
        super().fulfill_license_requirements()

    def post_install(self):
        self._record("post_install")

    def minify(self):
        self._record("minify")


@pytest.fixture
def platform() -> Platform:
    """Linux x64 platform without distribution (no package annotation)."""
    return Platform("linux", "x64")


@pytest.fixture
def build_env(tmp_path, platform) -> BuildEnvironment:
    """Fresh BuildEnvironment under tmp_path."""
    return BuildEnvironment(
        platform,
        output_dir=tmp_path / "output",
        prefix_dir=tmp_path / "prefix",
        sandbox_dir=tmp_path / "sandbox",
        max_parallel_jobs=2,
    )


@pytest.fixture
def make_tarball(tmp_path):
    """Factory writing a source tarball with a single top-level directory.

    Returns a function ``(name, files) -> (tarball_path, sha256)`` where
    `files` maps relative paths to text contents.
    """

    def _make(name: str, files: Dict[str, str]) -> Tuple[Path, str]:
        source_root = tmp_path / "tarball-sources" / name
        for relative, content in files.items():
            path = source_root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)

        tarballs = tmp_path / "tarballs"
        tarballs.mkdir(parents=True, exist_ok=True)
        tarball = tarballs / f"{name}.tar.gz"
        with tarfile.open(tarball, "w:gz") as tar:
            tar.add(str(source_root), arcname=name)
        return tarball, sha256_file(tarball)

    return _make


@pytest.fixture
def scripted_component_class():
    """A ScriptedComponent subclass with its own call log."""

    class Scripted(ScriptedComponent):
        calls: List[Tuple[str, str]] = []

    return Scripted


@pytest.fixture
def custom_license():
    return {"licenses": [{"type": "CUSTOM"}]}
