"""Artifact capture and packaging for stackforge builds."""

from .archive import create_tarball, extract_tarball, sha256_file, verify_checksum
from .artifact import Artifact, CompiledTarball
from .distro import Distro, get_distro
from .fs_tracker import FileSystemTracker, SnapshotTracker
from .summary import Summary

__all__ = [
    "Artifact",
    "CompiledTarball",
    "Distro",
    "FileSystemTracker",
    "SnapshotTracker",
    "Summary",
    "create_tarball",
    "extract_tarball",
    "get_distro",
    "sha256_file",
    "verify_checksum",
]
