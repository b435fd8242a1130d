"""
Integration tests running real ./configure && make builds.

These tests build tiny autotools-style projects from tarballs and validate the
prefix, the stack tarball and, with incremental tracking, the per-component
tarballs captured through git.
"""

import json
import shutil
import tarfile
from pathlib import Path

import pytest

from stackforge.build.build_manager import BuildManager
from stackforge.components.compilable import MakeComponent
from stackforge.components.provider import ComponentProvider
from stackforge.config.build_config import BuildConfig

CONFIGURE = """#!/bin/sh
prefix=/usr/local
for arg in "$@"; do
    case "$arg" in
        --prefix=*) prefix="${arg#--prefix=}" ;;
    esac
done
printf 'PREFIX = %s\\n' "$prefix" > config.mk
"""

MAKEFILE = """include config.mk

all: {name}

{name}: {name}.in
\tcp {name}.in {name}
\tchmod +x {name}

install: {name}
\tmkdir -p $(PREFIX)/bin $(PREFIX)/share/doc
\tcp {name} $(PREFIX)/bin/{name}
\tcp README $(PREFIX)/share/doc/README
"""

needs_toolchain = pytest.mark.skipif(
    shutil.which("make") is None or shutil.which("sh") is None,
    reason="make and sh are required",
)


def _write_project(root: Path, name: str, version: str) -> Path:
    """Write a configure/make project and return its tarball."""
    source = root / "sources" / f"{name}-{version}"
    source.mkdir(parents=True)
    (source / "configure").write_text(CONFIGURE)
    (source / "configure").chmod(0o755)
    (source / "Makefile").write_text(MAKEFILE.format(name=name))
    (source / f"{name}.in").write_text(f"#!/bin/sh\necho {name} {version}\n")
    (source / "README").write_text(f"{name} documentation\n")
    (source / "COPYING").write_text(f"{name} license\n")

    tarballs = root / "tarballs"
    tarballs.mkdir(exist_ok=True)
    tarball = tarballs / f"{name}-{version}.tar.gz"
    with tarfile.open(tarball, "w:gz") as tar:
        tar.add(str(source), arcname=source.name)
    return tarball


@pytest.fixture
def workspace(tmp_path):
    """Config, provider and tarballs for a two component stack."""
    _write_project(tmp_path, "hello", "1.0")
    _write_project(tmp_path, "greeter", "2.1")

    config = BuildConfig(
        output_dir=tmp_path / "output",
        prefix_dir=tmp_path / "prefix",
        sandbox_dir=tmp_path / "sandbox",
        source_paths=[tmp_path / "tarballs"],
        max_jobs=2,
        platform="linux-x64",
    )
    provider = ComponentProvider(source_paths=config.source_paths)
    for name in ("hello", "greeter"):
        provider.register(
            name,
            MakeComponent,
            {"licenses": [{"type": "GPL", "licenseRelativePath": "COPYING"}]},
        )
    return config, provider


@pytest.mark.integration
@needs_toolchain
class TestMakeBuild:
    """Builds with MakeComponent recipes."""

    def test_full_build(self, workspace, tmp_path):
        config, provider = workspace
        build_dir = tmp_path / "output" / "build"

        summary = BuildManager(config, provider=provider).build(
            ["hello@1.0", "greeter@2.1"], build_dir=build_dir
        )

        prefix = config.prefix_dir
        assert (prefix / "hello" / "bin" / "hello").exists()
        assert (prefix / "greeter" / "bin" / "greeter").exists()
        assert (prefix / "hello" / "licenses" / "hello-1.0.txt").read_text() == "hello license\n"
        # minify drops documentation
        assert not (prefix / "hello" / "share" / "doc").exists()

        manifest = json.loads((build_dir / "artifacts" / "greeter-2.1-stack-linux-x64-build.json").read_text())
        assert manifest["buildTimePackages"] == []
        assert [a["mainLicense"]["type"] for a in manifest["artifacts"]] == ["GPL", "GPL"]
        assert summary.artifacts[0].compiled_tarball is None

    def test_second_build_reuses_sources(self, workspace, tmp_path):
        config, provider = workspace
        manager = BuildManager(config, provider=provider)
        manager.build(["hello@1.0"], build_dir=tmp_path / "output" / "first")
        marker = config.sandbox_dir / "hello-1.0" / "config.mk"
        marker.write_text(marker.read_text() + "# kept\n")

        manager.build(["hello@1.0"], build_dir=tmp_path / "output" / "second")

        assert marker.read_text().endswith("# kept\n")


@pytest.mark.integration
@needs_toolchain
@pytest.mark.skipif(shutil.which("git") is None, reason="git is required")
class TestIncrementalBuild:
    """Builds with incremental tracking."""

    def test_per_component_tarballs(self, workspace, tmp_path):
        config, provider = workspace
        build_dir = tmp_path / "output" / "build"

        summary = BuildManager(config, provider=provider).build(
            ["hello@1.0", "greeter@2.1"], incremental_tracking=True, build_dir=build_dir
        )

        hello, greeter = summary.artifacts
        assert hello.compiled_tarball.path == "components/hello-1.0-linux-x64.tar.gz"
        with tarfile.open(build_dir / "artifacts" / greeter.compiled_tarball.path) as tar:
            names = tar.getnames()
        assert "greeter/bin/greeter" in names
        assert not any(name.startswith("hello/") for name in names)

        with tarfile.open(build_dir / "artifacts" / "greeter-2.1-stack-linux-x64.tar.gz") as tar:
            stack_names = tar.getnames()
        assert "hello/bin/hello" in stack_names
        assert "greeter/bin/greeter" in stack_names
