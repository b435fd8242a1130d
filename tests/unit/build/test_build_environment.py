"""Unit tests for Platform and BuildEnvironment."""

from unittest.mock import patch

import pytest

from stackforge.build.build_environment import BuildEnvironment, default_parallel_jobs
from stackforge.build.platform import Platform, normalize_arch, read_os_release
from stackforge.errors import ConfigurationError


class TestPlatform:
    """Test suite for Platform."""

    def test_str(self):
        assert str(Platform("linux", "x64", "debian", "12")) == "linux-x64-debian-12"

    def test_str_without_distro(self):
        assert str(Platform("linux", "x64")) == "linux-x64"

    def test_from_string(self):
        platform = Platform.from_value("linux-x86_64-ubuntu-22.04")
        assert platform == Platform("linux", "x64", "ubuntu", "22.04")

    def test_from_dict(self):
        platform = Platform.from_value({"os": "linux", "arch": "aarch64", "distro": "centos"})
        assert platform.arch == "arm64"
        assert platform.distro == "centos"
        assert platform.version is None

    def test_from_platform_is_identity(self):
        platform = Platform("linux", "x64")
        assert Platform.from_value(platform) is platform

    def test_invalid_string(self):
        with pytest.raises(ConfigurationError):
            Platform.from_value("linux")

    def test_unknown_dict_fields(self):
        with pytest.raises(ConfigurationError):
            Platform.from_value({"os": "linux", "arch": "x64", "flavor": "vanilla"})

    def test_detect_reads_os_release(self, tmp_path):
        """Test host detection including distribution information."""
        os_release = tmp_path / "os-release"
        os_release.write_text('NAME="Debian GNU/Linux"\nID=debian\nVERSION_ID="12"\n')

        with (
            patch("stackforge.build.platform.host_platform.system", return_value="Linux"),
            patch("stackforge.build.platform.host_platform.machine", return_value="x86_64"),
        ):
            platform = Platform.detect(os_release)

        assert platform == Platform("linux", "x64", "debian", "12")

    def test_read_missing_os_release(self, tmp_path):
        assert read_os_release(tmp_path / "missing") == {}

    @pytest.mark.parametrize(
        "machine,expected",
        [("x86_64", "x64"), ("AMD64", "x64"), ("i686", "x86"), ("aarch64", "arm64"), ("armv7l", "arm")],
    )
    def test_normalize_arch(self, machine, expected):
        assert normalize_arch(machine) == expected


class TestBuildEnvironment:
    """Test suite for BuildEnvironment."""

    def test_creates_directories(self, tmp_path, platform):
        """Test that the layout is created with default subdirectories."""
        be = BuildEnvironment(
            platform,
            output_dir=tmp_path / "out",
            prefix_dir=tmp_path / "prefix",
            sandbox_dir=tmp_path / "sandbox",
        )

        assert be.output_dir.is_dir()
        assert be.prefix_dir.is_dir()
        assert be.sandbox_dir.is_dir()
        assert be.logs_dir == (tmp_path / "out" / "logs").resolve()
        assert be.logs_dir.is_dir()
        assert be.artifacts_dir == (tmp_path / "out" / "artifacts").resolve()
        assert be.target.platform == platform
        assert be.target.is_unix

    @pytest.mark.parametrize("missing", ["output_dir", "prefix_dir", "sandbox_dir"])
    def test_missing_required_directory(self, tmp_path, platform, missing):
        kwargs = {
            "output_dir": tmp_path / "out",
            "prefix_dir": tmp_path / "prefix",
            "sandbox_dir": tmp_path / "sandbox",
        }
        kwargs[missing] = None

        with pytest.raises(ConfigurationError, match=missing):
            BuildEnvironment(platform, **kwargs)

    def test_platform_string(self, tmp_path):
        be = BuildEnvironment(
            "linux-x64-debian-12",
            output_dir=tmp_path / "out",
            prefix_dir=tmp_path / "prefix",
            sandbox_dir=tmp_path / "sandbox",
        )
        assert be.platform.distro == "debian"

    def test_default_parallel_jobs(self, tmp_path, platform):
        with patch("stackforge.build.build_environment.psutil.cpu_count", return_value=6):
            be = BuildEnvironment(
                platform,
                output_dir=tmp_path / "out",
                prefix_dir=tmp_path / "prefix",
                sandbox_dir=tmp_path / "sandbox",
            )
        assert be.max_parallel_jobs == 6

    def test_cpu_count_unknown(self):
        with patch("stackforge.build.build_environment.psutil.cpu_count", return_value=None):
            assert default_parallel_jobs() == 1

    def test_invalid_parallel_jobs(self, tmp_path, platform):
        with pytest.raises(ConfigurationError):
            BuildEnvironment(
                platform,
                output_dir=tmp_path / "out",
                prefix_dir=tmp_path / "prefix",
                sandbox_dir=tmp_path / "sandbox",
                max_parallel_jobs=0,
            )

    def test_env_variables_delegate(self, build_env):
        """Test that variables are combined through the compilation environment."""
        build_env.add_env_variable("CPPFLAGS", "-I/opt/a/include")
        build_env.add_env_variables({"CPPFLAGS": ["-I/opt/b/include"]})

        assert build_env.get_env_variables()["CPPFLAGS"] == "-I/opt/b/include -I/opt/a/include"

        build_env.reset_env_variables()
        assert "CPPFLAGS" not in build_env.get_env_variables()
