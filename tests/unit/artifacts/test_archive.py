"""Unit tests for archive helpers."""

import hashlib
import tarfile
import warnings

import pytest

from stackforge.artifacts.archive import (
    create_tarball,
    extract_tarball,
    matches_any,
    sha256_file,
    verify_checksum,
)
from stackforge.errors import ChecksumMismatchError, NotFoundError, PackagingError


class TestChecksums:
    """Test suite for sha256 helpers."""

    def test_sha256_file(self, tmp_path):
        path = tmp_path / "data.bin"
        path.write_bytes(b"stackforge" * 5000)
        assert sha256_file(path) == hashlib.sha256(b"stackforge" * 5000).hexdigest()

    def test_verify_checksum_case_insensitive(self, tmp_path):
        path = tmp_path / "data.bin"
        path.write_bytes(b"abc")
        assert verify_checksum(path, sha256_file(path).upper())

    def test_verify_checksum_mismatch(self, tmp_path):
        path = tmp_path / "data.bin"
        path.write_bytes(b"abc")

        with pytest.raises(ChecksumMismatchError) as exc_info:
            verify_checksum(path, "0" * 64)

        assert exc_info.value.expected == "0" * 64
        assert exc_info.value.actual == sha256_file(path)


class TestTarballs:
    """Test suite for tarball creation and extraction."""

    def test_extract_reroots_single_directory(self, make_tarball, tmp_path):
        tarball, _ = make_tarball("zlib-1.2.11", {"configure": "#!/bin/sh\n", "src/zlib.c": "int x;"})

        dest = extract_tarball(tarball, tmp_path / "sandbox" / "zlib-1.2.11")

        assert (dest / "configure").read_text() == "#!/bin/sh\n"
        assert (dest / "src" / "zlib.c").exists()
        assert not (dest / "zlib-1.2.11").exists()
        assert [p.name for p in dest.parent.iterdir()] == ["zlib-1.2.11"]

    def test_extract_keeps_modes_without_warnings(self, tmp_path):
        """Test that extraction is deterministic across Python versions."""
        source = tmp_path / "tool-1.0"
        source.mkdir()
        (source / "configure").write_text("#!/bin/sh\n")
        (source / "configure").chmod(0o755)
        tarball = tmp_path / "tool-1.0.tar.gz"
        with tarfile.open(tarball, "w:gz") as tar:
            tar.add(str(source), arcname=source.name)

        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            dest = extract_tarball(tarball, tmp_path / "sandbox" / "tool-1.0")

        assert (dest / "configure").stat().st_mode & 0o111

    def test_extract_without_reroot(self, make_tarball, tmp_path):
        tarball, _ = make_tarball("pkg", {"README": "hello"})
        dest = extract_tarball(tarball, tmp_path / "out", reroot=False)
        assert (dest / "pkg" / "README").exists()

    def test_extract_missing_archive(self, tmp_path):
        with pytest.raises(NotFoundError):
            extract_tarball(tmp_path / "missing.tar.gz", tmp_path / "out")

    def test_create_tarball_relative_members(self, tmp_path):
        root = tmp_path / "root"
        (root / "a" / "lib").mkdir(parents=True)
        (root / "a" / "lib" / "liba.so").write_text("so")
        (root / "a" / "lib" / "liba.la").write_text("la")

        tarball = create_tarball(
            ["a", root / "missing"], tmp_path / "out.tar.gz", cwd=root, exclude=[str(root / "**" / "*.la")]
        )

        with tarfile.open(tarball) as tar:
            names = sorted(tar.getnames())
        assert names == ["a", "a/lib", "a/lib/liba.so"]

    def test_create_tarball_nothing_to_archive(self, tmp_path):
        with pytest.raises(PackagingError):
            create_tarball(["missing"], tmp_path / "out.tar.gz", cwd=tmp_path)

    def test_matches_any(self):
        assert matches_any("/prefix/a/deep/.git", ["/prefix/a/**/.git"])
        assert not matches_any("/prefix/a/lib", ["/prefix/a/**/.git"])
