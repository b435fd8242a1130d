"""File System Tracker.

This module captures what changed on disk under a directory between build
steps, using git as the diff engine. Each component's install step becomes
a commit; the files it added or modified can be packed into their own
tarball.

Design:
    - SnapshotTracker is the narrow interface the rest of the engine uses
    - FileSystemTracker keeps a git repository at the root of the tracked
      directory (the installation prefix)
    - Empty directories are made visible to git with a marker file while
      diffing and the markers are removed afterwards
    - Directories whose whole content was selected are archived as a single
      entry instead of file by file
"""

import glob
import logging
import os
from abc import ABC, abstractmethod
from collections import Counter
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set, Union

from stackforge.artifacts.archive import create_tarball
from stackforge.build.process_runner import ProcessRunner, is_in_path
from stackforge.errors import ExternalProcessError, ToolNotFoundError

logger = logging.getLogger(__name__)

EMPTY_DIR_MARKER = ".__empty_dir"
GIT_USER_EMAIL = "builder@stackforge.local"
GIT_USER_NAME = "stackforge"

PathLike = Union[str, Path]


class SnapshotTracker(ABC):
    """Interface for engines that capture filesystem deltas between steps."""

    @abstractmethod
    def init(self) -> None:
        """Take the initial snapshot of the tracked directory."""
        pass

    @abstractmethod
    def diff(self) -> List[str]:
        """Return absolute paths added or modified since the last snapshot."""
        pass

    @abstractmethod
    def capture_delta(
        self,
        dest: PathLike,
        all: bool = False,
        paths_to_include: Optional[Sequence[PathLike]] = None,
        pick: Optional[Sequence[PathLike]] = None,
        exclude: Optional[Sequence[str]] = None,
    ) -> Optional[Path]:
        """Archive changed files into `dest`; None when nothing matched."""
        pass

    @abstractmethod
    def commit(self, message: str) -> Optional[str]:
        """Snapshot the current state; return its id or None if unchanged."""
        pass


def _is_within(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


class FileSystemTracker(SnapshotTracker):
    """Git-backed SnapshotTracker over a single directory."""

    def __init__(self, directory: PathLike):
        """Initialize the tracker.

        Args:
            directory: Directory to track

        Raises:
            ToolNotFoundError: If git is not available on PATH
        """
        if not is_in_path("git"):
            raise ToolNotFoundError("Git binary not found. You need git in order to track changes")
        self.directory = Path(directory).resolve()
        self._file_list: List[str] = []
        self._known_empty_dirs: Set[str] = set()

    @property
    def file_list(self) -> List[str]:
        """Files recorded by every commit since init()."""
        return list(self._file_list)

    def _git(self, *args: str, check: bool = True):
        cmd = ["git", "-c", "commit.gpgsign=false", "-c", "core.quotepath=false", *args]
        # "nothing to commit" detection relies on untranslated messages
        env = {**os.environ, "LC_ALL": "C"}
        return ProcessRunner.run(cmd, cwd=self.directory, env=env, check=check)

    def init(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        if (self.directory / ".git").exists():
            logger.debug(f"Re-attaching to existing repository in {self.directory}")
            self._stage(record=False)
            self._commit("Started tracking")
        else:
            self._git("init", "-q")
            self._git("config", "user.email", GIT_USER_EMAIL)
            self._git("config", "user.name", GIT_USER_NAME)
            self._stage(record=False)
            self._commit("Initial commit")

    def _stage(self, record: bool = True) -> None:
        if record:
            for f in self.diff():
                if f not in self._file_list:
                    self._file_list.append(f)
        self._known_empty_dirs = set(self._empty_dirs())
        self._git("add", "-A", ".")

    def _empty_dirs(self) -> List[str]:
        empty = []
        for root, dirnames, filenames in os.walk(self.directory):
            if ".git" in dirnames and Path(root) == self.directory:
                dirnames.remove(".git")
            if not dirnames and not filenames and Path(root) != self.directory:
                empty.append(root)
        return empty

    def _populate_empty_dirs(self) -> List[str]:
        populated = []
        for d in self._empty_dirs():
            (Path(d) / EMPTY_DIR_MARKER).touch()
            populated.append(d)
        return populated

    @staticmethod
    def _clean_populated_dirs(dirs: Iterable[str]) -> None:
        for d in dirs:
            marker = Path(d) / EMPTY_DIR_MARKER
            if marker.exists():
                marker.unlink()

    def _ls_files(self, *flags: str) -> List[str]:
        output = self._git("ls-files", "-z", *flags, ".").stdout
        return [f for f in output.split("\0") if f]

    def diff(self) -> List[str]:
        # git does not track empty directories, make them visible first
        populated = self._populate_empty_dirs()
        try:
            changed = []
            for f in self._ls_files("--modified", "--others"):
                if os.path.basename(f) == EMPTY_DIR_MARKER:
                    f = os.path.dirname(f)
                    if str(self.directory / f) in self._known_empty_dirs:
                        continue
                changed.append(f)
        finally:
            self._clean_populated_dirs(populated)

        deleted = set(self._ls_files("--deleted"))
        result: List[str] = []
        for f in changed:
            if f in deleted:
                continue
            absolute = str(self.directory / f)
            if absolute not in result:
                result.append(absolute)
        return result

    @staticmethod
    def filter_files(
        files: Iterable[PathLike],
        pick: Optional[Sequence[PathLike]] = None,
        exclude: Optional[Sequence[str]] = None,
        paths: Optional[Sequence[PathLike]] = None,
        relativize: Optional[PathLike] = None,
    ) -> List[str]:
        """Filter a list of files.

        Args:
            files: Absolute paths to filter
            pick: Files to keep exclusively; when given the other conditions
                are ignored
            exclude: Glob patterns of files to drop (matched recursively)
            paths: Directories the files must live in (all by default)
            relativize: Directory to make the result relative to

        Returns:
            Filtered list, only containing paths that exist
        """
        if pick:
            picked = [os.path.normpath(str(f)) for f in pick if os.path.lexists(str(f))]
            if relativize:
                return [os.path.relpath(f, str(relativize)) for f in picked]
            return picked

        excluded: Set[str] = set()
        for pattern in exclude or []:
            excluded.update(os.path.normpath(p) for p in glob.glob(str(pattern), recursive=True))

        roots = [os.path.normpath(str(p)) for p in (paths or [])]
        result = []
        for f in files:
            f = os.path.normpath(str(f))
            if any(_is_within(f, e) for e in excluded):
                continue
            if roots and not any(_is_within(f, root) for root in roots):
                continue
            if not os.path.lexists(f):
                continue
            result.append(os.path.relpath(f, str(relativize)) if relativize else f)
        return result

    def _leaf_entries(self) -> List[str]:
        """Files, symlinks and empty directories under the root, relative to it."""
        leaves = []
        for root, dirnames, filenames in os.walk(self.directory):
            rel_root = os.path.relpath(root, self.directory)
            if rel_root == ".":
                if ".git" in dirnames:
                    dirnames.remove(".git")
                rel_root = ""
            for name in list(dirnames):
                if os.path.islink(os.path.join(root, name)):
                    dirnames.remove(name)
                    filenames.append(name)
            for name in filenames:
                if name != EMPTY_DIR_MARKER:
                    leaves.append(os.path.join(rel_root, name))
            if not dirnames and not filenames and rel_root:
                leaves.append(rel_root)
        return leaves

    def fold(self, selected: Sequence[str]) -> List[str]:
        """Replace fully selected directories by a single entry.

        Args:
            selected: Paths relative to the tracked directory

        Returns:
            Reduced list of relative paths covering the same content
        """
        selected_set = {os.path.normpath(s) for s in selected}
        total: Counter = Counter()
        chosen: Counter = Counter()
        for leaf in self._leaf_entries():
            ancestors = []
            parent = os.path.dirname(leaf)
            while parent:
                ancestors.append(parent)
                parent = os.path.dirname(parent)
            is_chosen = leaf in selected_set or any(a in selected_set for a in ancestors)
            for ancestor in ancestors:
                total[ancestor] += 1
                if is_chosen:
                    chosen[ancestor] += 1

        folded: List[str] = []
        for directory in sorted(total, key=lambda d: (d.count(os.sep), d)):
            if any(_is_within(directory, f) for f in folded):
                continue
            if chosen[directory] == total[directory]:
                folded.append(directory)

        entries = sorted(set(folded) | selected_set, key=lambda e: (e.count(os.sep), e))
        result: List[str] = []
        for entry in entries:
            if not any(_is_within(entry, kept) for kept in result):
                result.append(entry)
        return result

    def capture_delta(
        self,
        dest: PathLike,
        all: bool = False,
        paths_to_include: Optional[Sequence[PathLike]] = None,
        pick: Optional[Sequence[PathLike]] = None,
        exclude: Optional[Sequence[str]] = None,
    ) -> Optional[Path]:
        """Write the changed files to a gzip tarball.

        Args:
            dest: Tarball to write
            all: Use every file recorded since init() instead of the
                current diff
            paths_to_include: Restrict to these directories (the whole
                tracked directory by default)
            pick: Exact files to capture
            exclude: Glob patterns to leave out; relative ones are rooted at
                the tracked directory

        Returns:
            `dest`, or None when nothing matched (no file is written)
        """
        dest = Path(dest)
        candidates = self.file_list if all else self.diff()
        exclude_patterns = [
            p if os.path.isabs(p) else str(self.directory / p) for p in (exclude or [])
        ]
        picked = [p if os.path.isabs(str(p)) else str(self.directory / p) for p in (pick or [])]

        selected = self.filter_files(
            candidates,
            pick=picked,
            exclude=exclude_patterns,
            paths=paths_to_include or [self.directory],
            relativize=self.directory,
        )
        if not selected:
            logger.debug(f"No changes to capture into {dest}")
            return None

        entries = self.fold(selected)
        # picked files are archived even when an exclude pattern covers them
        create_tarball(entries, dest, cwd=self.directory, exclude=[] if picked else exclude_patterns)
        logger.info(f"Captured {len(selected)} changed files into {dest}")
        return dest

    def _commit(self, message: str) -> Optional[str]:
        result = self._git("commit", "-a", "-m", message, check=False)
        if result.returncode != 0:
            if "nothing to commit" in result.stdout or "nothing to commit" in result.stderr:
                return None
            raise ExternalProcessError(
                ["git", "commit", "-a", "-m", message],
                result.returncode,
                result.stdout,
                result.stderr,
            )
        return self._git("rev-parse", "HEAD").stdout.strip()

    def commit(self, message: str) -> Optional[str]:
        self._stage()
        return self._commit(message)
