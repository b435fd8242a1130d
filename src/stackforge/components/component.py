"""Component base class.

A Component is one buildable piece of software (zlib, openssl, ...). The
BuildManager drives every component through the same hook sequence:

    cleanup -> extract -> copy_extra_files -> patch -> post_extract
    -> build -> post_build -> install -> fulfill_license_requirements
    -> post_install, and minify once every component is installed

Recipes subclass Component (usually through MakeComponent) and override the
hooks they need. Paths such as prefix and src_dir are derived from the
BuildEnvironment each time they are read, so they never go stale.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

from stackforge.artifacts.archive import extract_tarball, verify_checksum
from stackforge.build.compilation_env import EnvValue
from stackforge.build.process_runner import ProcessRunner
from stackforge.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from stackforge.build.build_environment import BuildEnvironment
    from stackforge.build.component_list import ComponentList

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE = [".git", ".__empty_dir"]


@dataclass
class License:
    """License of a component."""

    type: str
    license_relative_path: Optional[str] = None
    license_url: Optional[str] = None
    main: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "License":
        return cls(
            type=data.get("type", ""),
            license_relative_path=data.get("licenseRelativePath", data.get("license_relative_path")),
            license_url=data.get("licenseUrl", data.get("license_url")),
            main=bool(data.get("main", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type}
        if self.license_relative_path:
            result["licenseRelativePath"] = self.license_relative_path
        if self.license_url:
            result["licenseUrl"] = self.license_url
        if self.main:
            result["main"] = True
        return result


@dataclass
class ComponentMetadata:
    """Identity and licensing of a component."""

    id: Optional[str] = None
    version: Optional[str] = None
    licenses: List[License] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.id)

    @classmethod
    def from_value(cls, value: Union["ComponentMetadata", Mapping[str, Any], None]) -> "ComponentMetadata":
        if isinstance(value, ComponentMetadata):
            return value
        if not value:
            return cls()
        licenses = [
            lic if isinstance(lic, License) else License.from_dict(lic)
            for lic in value.get("licenses") or []
        ]
        version = value.get("version")
        return cls(id=value.get("id"), version=str(version) if version is not None else None, licenses=licenses)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "version": self.version}


@dataclass
class SourceReference:
    """Source tarball of a component."""

    tarball: Optional[str] = None
    sha256: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.tarball)

    def to_dict(self) -> Dict[str, Any]:
        return {"tarball": self.tarball, "sha256": self.sha256}


@dataclass
class FileReference:
    """A patch or extra file, with its expected checksum when known."""

    path: str
    sha256: Optional[str] = None

    def __bool__(self) -> bool:
        return bool(self.path)

    @classmethod
    def from_value(cls, value: Union["FileReference", str, Path, Mapping[str, Any]]) -> "FileReference":
        if isinstance(value, FileReference):
            return value
        if isinstance(value, (str, Path)):
            return cls(path=str(value))
        if isinstance(value, Mapping):
            return cls(path=str(value.get("path") or ""), sha256=value.get("sha256"))
        raise ValidationError(f"Invalid file reference: {value!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "sha256": self.sha256}


class Component:
    """Base class for buildable components.

    Attributes:
        id: Component identifier, unique within a build
        metadata: Identity and licenses
        source: Source tarball reference
        patches: Patches applied in order after extraction
        extra_files: Files copied into extra_files_dir
        pick: Files to exclusively include in the component artifact
        exclude: Patterns left out of the component artifact
        patch_level: Strip level passed to ``patch -p``
        main_license: License propagated by fulfill_license_requirements()
    """

    def __init__(self, metadata: Union[ComponentMetadata, Mapping[str, Any], None] = None):
        self.metadata = ComponentMetadata.from_value(metadata)
        self.id: Optional[str] = self.metadata.id
        self.source = SourceReference()
        self.patches: List[FileReference] = []
        self.extra_files: List[FileReference] = []
        self.pick: List[str] = []
        self.exclude: List[str] = list(DEFAULT_EXCLUDE)
        self.patch_level = 0
        self.main_license: Optional[License] = None
        self.be: Optional["BuildEnvironment"] = None
        self.component_list: Optional["ComponentList"] = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id}@{self.version})"

    @property
    def version(self) -> Optional[str]:
        return self.metadata.version

    def _environment(self) -> "BuildEnvironment":
        if self.be is None:
            raise ValidationError(f"Component {self.id} has not been set up with a build environment")
        return self.be

    @property
    def prefix(self) -> Path:
        return self._environment().prefix_dir / str(self.metadata.id)

    @property
    def src_dir(self) -> Path:
        name = (self.id or self.metadata.id or "").lower()
        return self._environment().sandbox_dir / f"{name}-{self.metadata.version}"

    @property
    def working_dir(self) -> Path:
        return self.src_dir

    @property
    def license_dir(self) -> Path:
        return self.prefix / "licenses"

    @property
    def extra_files_dir(self) -> Path:
        return self.working_dir / "extra-files"

    def setup(self, component_list: "ComponentList") -> None:
        """Attach the component to a list and its build environment."""
        self.component_list = component_list
        self.be = component_list.build_env

    def initialize(self) -> None:
        """Hook to initialize component properties. Does nothing by default."""
        pass

    def validate(self) -> None:
        """Check required metadata.

        Raises:
            ValidationError: Listing every missing field
        """
        errors = [
            f"You must provide a proper '{key}' for your component"
            for key in ("id", "version", "licenses")
            if not getattr(self.metadata, key)
        ]
        if errors:
            raise ValidationError(
                f"Some errors were found validating {self.metadata.id or self.id}:\n " + "\n ".join(errors)
            )

    def get_exportable_environment_variables(self) -> Dict[str, EnvValue]:
        """Variables exported to the components built after this one."""
        return {}

    def cleanup(self) -> None:
        if self.src_dir.exists():
            logger.debug(f"Deleting {self.src_dir}")
            shutil.rmtree(self.src_dir)

    @staticmethod
    def _check_input_file(kind: str, path: Optional[str]) -> Path:
        if not path:
            raise ValidationError(f"Wrong {kind} definition. Found {path!r} instead of a file path")
        file_path = Path(path)
        if not file_path.is_absolute():
            raise ValidationError(f"Path to {kind} should be absolute. Found {path}")
        if not file_path.exists():
            raise NotFoundError(f"{kind.capitalize()} not found: {path}")
        return file_path

    def extract(self) -> None:
        """Verify the source tarball and unpack it into src_dir.

        Raises:
            ValidationError: If the tarball path is missing or relative, or
                no checksum is known
            NotFoundError: If the tarball does not exist
            ChecksumMismatchError: If the tarball's sha256 differs
        """
        tarball = self._check_input_file("source tarball", self.source.tarball)
        if not self.source.sha256:
            raise ValidationError(f"No sha256 checksum given for source tarball {tarball}")
        verify_checksum(tarball, self.source.sha256)
        logger.debug(f"Extracting {tarball} into {self.src_dir}")
        extract_tarball(tarball, self.src_dir, reroot=True)

    def copy_extra_files(self) -> None:
        if not self.extra_files:
            return
        self.extra_files_dir.mkdir(parents=True, exist_ok=True)
        for ref in self.extra_files:
            path = self._check_input_file("extra file", ref.path)
            if ref.sha256:
                verify_checksum(path, ref.sha256)
            destination = self.extra_files_dir / path.name
            if path.is_dir():
                shutil.copytree(path, destination, dirs_exist_ok=True)
            else:
                shutil.copy2(path, destination)

    def patch(self) -> None:
        """Apply patches in order inside src_dir."""
        for ref in self.patches:
            path = self._check_input_file("patch", ref.path)
            if ref.sha256:
                verify_checksum(path, ref.sha256)
            logger.debug(f"Applying patch {path}")
            ProcessRunner.run(
                ["patch", f"-p{self.patch_level or 0}", "-i", str(path)], cwd=self.src_dir
            )

    def post_extract(self) -> None:
        pass

    def build(self) -> None:
        pass

    def post_build(self) -> None:
        pass

    def install(self) -> None:
        pass

    def _select_main_license(self) -> License:
        licenses = self.metadata.licenses
        if len(licenses) == 1:
            return licenses[0]
        main = [lic for lic in licenses if lic.main]
        if len(main) != 1:
            types = ", ".join(lic.type for lic in licenses)
            raise ValidationError(f"You should define a main license between {types}")
        return main[0]

    def fulfill_license_requirements(self) -> None:
        """Place the main license in license_dir.

        Raises:
            ValidationError: If the main license is ambiguous or cannot be
                resolved to a file, URL or CUSTOM type
        """
        if not self.metadata.licenses:
            logger.debug(f"Skipping license propagation. There is no license information available for {self.id}")
            return

        self.main_license = self._select_main_license()
        destination = self.license_dir / f"{self.metadata.id}-{self.metadata.version}.txt"
        self.license_dir.mkdir(parents=True, exist_ok=True)

        if self.main_license.license_relative_path:
            source_file = self.src_dir / self.main_license.license_relative_path
            if not source_file.exists():
                raise ValidationError(f"License file '{source_file}' does not exist")
            shutil.copyfile(source_file, destination)
        elif self.main_license.license_url:
            destination.write_text(f"{self.main_license.type}: {self.main_license.license_url}")
        elif self.main_license.type == "CUSTOM":
            destination.write_text(f"Distributed under {self.main_license.type} license")
        else:
            raise ValidationError(
                "You should specify either a licenseRelativePath or a licenseUrl "
                + f"for the {self.main_license.type} license of {self.id}"
            )

    def post_install(self) -> None:
        pass

    def minify(self) -> None:
        """Post-install cleanup. Does nothing by default."""
        pass

