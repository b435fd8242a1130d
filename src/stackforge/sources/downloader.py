"""Source archive downloader with progress tracking and checksum verification.

Components may reference their source tarball by URL. Such tarballs are
downloaded once into the source cache and verified against their sha256
when one is declared.
"""

import hashlib
import logging
import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import requests
from tqdm import tqdm

from stackforge.errors import ChecksumMismatchError, DownloadError

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".tar.gz", ".tgz", ".tar.bz2", ".tbz2", ".tar.xz", ".txz", ".tar")


def is_url(value: str) -> bool:
    """Return whether `value` is an http(s) URL."""
    return urlparse(str(value)).scheme in ("http", "https")


def strip_archive_suffix(filename: str) -> str:
    for suffix in ARCHIVE_SUFFIXES:
        if filename.endswith(suffix):
            return filename[: -len(suffix)]
    return filename


def version_from_filename(filename: str, component_id: Optional[str] = None) -> Optional[str]:
    """Extract a version string from a tarball name.

    Examples:
        >>> version_from_filename("zlib-1.2.11.tar.gz", "zlib")
        '1.2.11'
        >>> version_from_filename("openssl-1.0.2k.tar.gz")
        '1.0.2k'
    """
    name = strip_archive_suffix(Path(urlparse(str(filename)).path).name)
    if component_id and name.lower().startswith(f"{component_id.lower()}-"):
        return name[len(component_id) + 1:] or None

    version_match = re.search(r"[-_]v?(\d+(?:\.\d+)*[A-Za-z0-9.\-+~]*)$", name)
    if version_match:
        return version_match.group(1)
    return None


class SourceDownloader:
    """Downloads source archives with progress tracking."""

    def __init__(self, chunk_size: int = 8192, timeout: int = 30):
        """Initialize downloader.

        Args:
            chunk_size: Size of chunks for downloading and hashing
            timeout: Connection timeout in seconds
        """
        self.chunk_size = chunk_size
        self.timeout = timeout

    def download(
        self,
        url: str,
        dest_path: Path,
        checksum: Optional[str] = None,
        show_progress: bool = True,
    ) -> Path:
        """Download a file from a URL.

        Args:
            url: URL to download from
            dest_path: Destination file path
            checksum: Optional SHA256 checksum for verification
            show_progress: Whether to show progress bar

        Returns:
            Path to the downloaded file

        Raises:
            DownloadError: If download fails
            ChecksumMismatchError: If checksum verification fails
        """
        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        # Use temporary file during download
        temp_file = dest_path.with_suffix(dest_path.suffix + ".tmp")

        try:
            response = requests.get(url, stream=True, timeout=self.timeout)
            response.raise_for_status()

            total_size = int(response.headers.get("content-length", 0))

            progress_bar = None
            if show_progress and total_size > 0:
                progress_bar = tqdm(
                    total=total_size,
                    unit="B",
                    unit_scale=True,
                    unit_divisor=1024,
                    desc=f"Downloading {dest_path.name}",
                )

            sha256 = hashlib.sha256()
            with open(temp_file, "wb") as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if chunk:
                        f.write(chunk)
                        sha256.update(chunk)
                        if progress_bar:
                            progress_bar.update(len(chunk))

            if progress_bar:
                progress_bar.close()

            if checksum:
                actual_checksum = sha256.hexdigest()
                if actual_checksum.lower() != checksum.lower():
                    temp_file.unlink()
                    raise ChecksumMismatchError(url, checksum, actual_checksum)

            if dest_path.exists():
                dest_path.unlink()
            temp_file.rename(dest_path)
            logger.info(f"Downloaded {url} to {dest_path}")
            return dest_path

        except requests.RequestException as e:
            if temp_file.exists():
                temp_file.unlink()
            raise DownloadError(f"Failed to download {url}: {e}") from e

        except Exception:
            if temp_file.exists():
                temp_file.unlink()
            raise

    def fetch(
        self,
        url: str,
        cache_dir: Path,
        checksum: Optional[str] = None,
        show_progress: bool = True,
    ) -> Path:
        """Return the cached copy of `url`, downloading it if needed."""
        filename = Path(urlparse(url).path).name
        if not filename:
            raise DownloadError(f"Cannot determine a file name for {url}")
        archive_path = Path(cache_dir) / filename

        if not archive_path.exists():
            self.download(url, archive_path, checksum, show_progress)
        else:
            logger.debug(f"Using cached {filename}")
        return archive_path
