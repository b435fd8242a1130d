"""Archive helpers.

Checksums plus gzip tarball creation and extraction used for source
unpacking and for artifact packaging.
"""

import fnmatch
import hashlib
import os
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from stackforge.errors import ChecksumMismatchError, NotFoundError, PackagingError

CHUNK_SIZE = 8192

PathLike = Union[str, Path]


def sha256_file(file_path: PathLike, chunk_size: int = CHUNK_SIZE) -> str:
    """Compute the SHA256 hex digest of a file."""
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def verify_checksum(file_path: PathLike, expected: str) -> bool:
    """Verify the SHA256 checksum of a file.

    Raises:
        ChecksumMismatchError: If the checksum doesn't match
    """
    actual = sha256_file(file_path)
    if actual.lower() != expected.lower():
        raise ChecksumMismatchError(file_path, expected, actual)
    return True


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    """Return whether `path` matches one of the glob patterns.

    '*' also matches '/', so ``<dir>/**/name`` matches at any depth.
    """
    return any(fnmatch.fnmatchcase(path, pattern) for pattern in patterns)


def create_tarball(
    entries: Sequence[PathLike],
    dest: PathLike,
    cwd: PathLike,
    exclude: Optional[Sequence[str]] = None,
) -> Path:
    """Write a gzip tarball of `entries`, stored relative to `cwd`.

    Directories are added recursively. Anything whose absolute path matches
    an `exclude` glob is left out, along with its contents.

    Args:
        entries: Files or directories, absolute or relative to cwd
        dest: Tarball to write
        cwd: Directory member names are relative to
        exclude: Absolute glob patterns to leave out

    Returns:
        Path to the tarball

    Raises:
        PackagingError: If there is nothing to archive
    """
    cwd = Path(cwd)
    dest = Path(dest)
    patterns = list(exclude or [])

    names: List[str] = []
    for entry in entries:
        entry_path = Path(entry)
        if not entry_path.is_absolute():
            entry_path = cwd / entry_path
        if not entry_path.exists() and not entry_path.is_symlink():
            continue
        names.append(os.path.relpath(entry_path, cwd))

    if not names:
        raise PackagingError(f"Nothing to archive into {dest}")

    def _filter(tarinfo: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
        absolute = os.path.normpath(os.path.join(str(cwd), tarinfo.name))
        if matches_any(absolute, patterns):
            return None
        return tarinfo

    dest.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(dest, "w:gz") as tar:
        for name in names:
            tar.add(str(cwd / name), arcname=name, filter=_filter)
    return dest


def extract_tarball(archive_path: PathLike, dest_dir: PathLike, reroot: bool = True) -> Path:
    """Extract a tarball into `dest_dir`.

    When `reroot` is set and the archive holds a single top-level directory
    (the usual ``name-version/`` layout), its contents are moved to
    `dest_dir` directly.

    Raises:
        NotFoundError: If the archive does not exist
    """
    archive_path = Path(archive_path)
    dest_dir = Path(dest_dir)
    if not archive_path.exists():
        raise NotFoundError(f"Archive not found: {archive_path}")

    dest_dir.parent.mkdir(parents=True, exist_ok=True)
    temp_extract = Path(tempfile.mkdtemp(prefix="extract-", dir=dest_dir.parent))
    try:
        with tarfile.open(archive_path, "r:*") as tar:
            tar.extractall(temp_extract, filter="tar")

        extracted_items = list(temp_extract.iterdir())
        if reroot and len(extracted_items) == 1 and extracted_items[0].is_dir():
            source_dir = extracted_items[0]
        else:
            source_dir = temp_extract

        dest_dir.mkdir(parents=True, exist_ok=True)
        for item in source_dir.iterdir():
            target = dest_dir / item.name
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            elif target.exists() or target.is_symlink():
                target.unlink()
            shutil.move(str(item), str(target))
    finally:
        shutil.rmtree(temp_extract, ignore_errors=True)
    return dest_dir
