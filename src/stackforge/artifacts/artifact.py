"""Artifact record: what one component contributed to a build."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class CompiledTarball:
    """Per-component tarball, path relative to the artifacts directory."""

    path: str
    sha256: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "sha256": self.sha256}


@dataclass(frozen=True)
class Artifact:
    """Snapshot of a built component, taken when it finished building."""

    id: str
    version: Optional[str]
    prefix: str
    source: Dict[str, Any] = field(default_factory=dict)
    main_license: Optional[Dict[str, Any]] = None
    pick: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    build_time: Optional[float] = None
    compiled_tarball: Optional[CompiledTarball] = None
    runtime_packages: Tuple[str, ...] = ()
    built_on: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": {"id": self.id, "version": self.version},
            "builtOn": self.built_on.isoformat(),
            "prefix": self.prefix,
            "mainLicense": self.main_license,
            "source": dict(self.source),
            "pick": list(self.pick),
            "exclude": list(self.exclude),
            "compiledTarball": self.compiled_tarball.to_dict() if self.compiled_tarball else None,
            "buildTime": self.build_time,
            "runtimePackages": list(self.runtime_packages),
        }
