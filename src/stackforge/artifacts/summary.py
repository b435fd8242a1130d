"""Build Summary.

Collects one Artifact per built component and packages the result. With
incremental tracking, every component's install step is captured into its
own checksummed tarball under ``<artifacts_dir>/components`` so components
finished before a failure remain retrievable; the whole-stack tarball is
then assembled from the accumulated changes.

Files written by serialize(directory):
    <build_id>-<platform>.tar.gz       whole-stack tarball
    <build_id>-<platform>-build.json   manifest with the tarball's sha256
"""

import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Union

from stackforge.artifacts.archive import create_tarball, sha256_file
from stackforge.artifacts.artifact import Artifact, CompiledTarball
from stackforge.artifacts.distro import get_distro, list_files
from stackforge.artifacts.fs_tracker import FileSystemTracker, SnapshotTracker
from stackforge.build.build_environment import BuildEnvironment
from stackforge.errors import ConfigurationError, PackagingError

if TYPE_CHECKING:
    from stackforge.components.component import Component

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _absolute_paths(base: Path, paths: Sequence[str]) -> List[str]:
    """Resolve paths given relative to a component prefix."""
    return [str(p) if Path(p).is_absolute() else str(base / p) for p in paths]


def _prefixed_patterns(prefix: PathLike, patterns: Sequence[str]) -> List[str]:
    """Root exclude patterns at a component prefix, matching at any depth."""
    rooted: List[str] = []
    for pattern in patterns:
        rooted.append(str(Path(prefix) / pattern))
        rooted.append(str(Path(prefix) / "**" / pattern))
    return rooted


class Summary:
    """Manifest of a build and packager of its artifacts.

    Attributes:
        id: Build id, used in output file names
        platform: Target platform
        root: Installation prefix shared by all components
        built_on: When the summary was created
        artifacts: Artifacts in build order
    """

    def __init__(
        self,
        build_env: BuildEnvironment,
        build_id: Optional[str] = None,
        incremental_tracking: bool = False,
        artifacts_dir: Optional[PathLike] = None,
        tracker: Optional[SnapshotTracker] = None,
    ):
        """Create the summary.

        Args:
            build_env: Environment of the build
            build_id: Build id (defaults to build-<timestamp>)
            incremental_tracking: Capture a tarball per component
            artifacts_dir: Where per-component tarballs are written;
                required with incremental tracking
            tracker: Snapshot engine to use instead of a FileSystemTracker

        Raises:
            ConfigurationError: If tracking is requested without an
                artifacts directory or git is missing
        """
        self._be = build_env
        self.id = build_id or datetime.now().strftime("build-%Y%m%d%H%M")
        self.platform = build_env.platform
        self.root = build_env.prefix_dir
        self.built_on = datetime.now()
        self.artifacts: List[Artifact] = []
        self.start_time = time.monotonic()
        self.end_time: Optional[float] = None
        self.distro = get_distro(self.platform.distro, self.platform.arch)
        self._artifacts_dir = Path(artifacts_dir) if artifacts_dir else None

        self._tracker: Optional[SnapshotTracker] = None
        if incremental_tracking:
            if self._artifacts_dir is None:
                raise ConfigurationError(
                    "Enabling 'incremental_tracking' requires specifying an 'artifacts_dir' beforehand"
                )
            self._tracker = tracker or FileSystemTracker(self.root)
            self._tracker.init()

    @property
    def incremental_tracking(self) -> bool:
        return self._tracker is not None

    def start(self) -> None:
        self.start_time = time.monotonic()

    def end(self) -> None:
        self.end_time = time.monotonic()

    @property
    def build_time(self) -> float:
        return (self.end_time or time.monotonic()) - self.start_time

    def _capture_component(self, component: "Component") -> Optional[CompiledTarball]:
        if self._tracker is None or self._artifacts_dir is None:
            raise ConfigurationError("Capturing a component requires incremental tracking and an artifacts directory")
        artifact_id = f"{component.id}-{component.version}-{self.platform}"
        tarball_tail = Path("components") / f"{artifact_id}.tar.gz"
        tarball = self._artifacts_dir / tarball_tail

        self._tracker.capture_delta(
            tarball,
            paths_to_include=[component.prefix],
            pick=_absolute_paths(component.prefix, component.pick),
            exclude=_prefixed_patterns(component.prefix, component.exclude),
        )
        commit = self._tracker.commit(artifact_id)
        if commit and tarball.exists():
            return CompiledTarball(path=str(tarball_tail), sha256=sha256_file(tarball))
        return None

    def add_artifact(self, component: "Component", build_time: Optional[float] = None) -> Artifact:
        """Record a finished component.

        Under incremental tracking its changes are captured into a
        per-component tarball and committed first.
        """
        compiled_tarball = self._capture_component(component) if self._tracker else None

        runtime_packages: List[str] = []
        if self.distro is not None and component.prefix.exists():
            files = FileSystemTracker.filter_files(
                list_files(component.prefix),
                pick=_absolute_paths(component.prefix, component.pick),
                exclude=_prefixed_patterns(component.prefix, component.exclude),
            )
            runtime_packages = self.distro.get_runtime_packages(
                files, skip_libraries_in=[str(component.prefix)]
            )

        main_license = component.main_license
        artifact = Artifact(
            id=str(component.id),
            version=component.version,
            prefix=str(component.prefix),
            source=component.source.to_dict(),
            main_license=main_license.to_dict() if main_license else None,
            pick=tuple(component.pick),
            exclude=tuple(component.exclude),
            build_time=build_time,
            compiled_tarball=compiled_tarball,
            runtime_packages=tuple(runtime_packages),
        )
        self.artifacts.append(artifact)
        logger.debug(f"Added artifact {artifact.id}@{artifact.version}")
        return artifact

    def _excluded_patterns(self) -> List[str]:
        patterns: List[str] = []
        for artifact in self.artifacts:
            patterns.extend(_prefixed_patterns(artifact.prefix, artifact.exclude))
        return patterns

    def compress_artifacts(self, dest: PathLike) -> Path:
        """Write the whole-stack tarball.

        Raises:
            PackagingError: If there are no artifacts or nothing to compress
        """
        if not self.artifacts:
            raise PackagingError("No artifacts were built. Nothing to compress")
        dest = Path(dest)
        last = self.artifacts[-1]
        picked = _absolute_paths(Path(last.prefix), last.pick)
        excluded = self._excluded_patterns()

        if self._tracker is not None:
            result = self._tracker.capture_delta(
                dest,
                all=True,
                paths_to_include=[a.prefix for a in self.artifacts],
                pick=picked,
                exclude=excluded,
            )
            if result is None:
                raise PackagingError("No file has been modified. Nothing to compress")
            return result

        entries: List[Any] = picked or sorted(p.name for p in self.root.iterdir() if p.name != ".git")
        return create_tarball(entries, dest, cwd=self.root, exclude=excluded + [str(self.root / ".git")])

    def to_dict(self, extra: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        runtime_packages: List[str] = []
        for artifact in self.artifacts:
            for package in artifact.runtime_packages:
                if package not in runtime_packages:
                    runtime_packages.append(package)

        data: Dict[str, Any] = {
            "buildTime": self.build_time,
            "prefix": str(self.root),
            "platform": self.platform.to_dict(),
            "builtOn": self.built_on.isoformat(),
            "artifacts": [a.to_dict() for a in self.artifacts],
            "runtimePackages": runtime_packages,
            "buildTimePackages": self.distro.list_packages() if self.distro else [],
        }
        if extra:
            data.update(extra)
        return data

    def to_json(self, extra: Optional[Mapping[str, Any]] = None) -> str:
        return json.dumps(self.to_dict(extra), indent=4)

    def serialize(self, directory: PathLike) -> Path:
        """Write the stack tarball and its JSON manifest.

        Returns:
            Path to the manifest
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        summary_file_id = f"{self.id}-{self.platform}"
        tarball_tail = f"{summary_file_id}.tar.gz"
        tarball = directory / tarball_tail

        self.compress_artifacts(tarball)
        manifest = directory / f"{summary_file_id}-build.json"
        manifest.write_text(self.to_json({"tarball": tarball_tail, "sha256": sha256_file(tarball)}))
        logger.info(f"Wrote build manifest {manifest}")
        return manifest
