"""Source tarball retrieval."""

from .downloader import SourceDownloader

__all__ = ["SourceDownloader"]
