"""Component Provider.

Turns component references from build data ("zlib@1.2.11:/tmp/zlib.tar.gz"
or a dict) into Component instances ready to be added to a ComponentList.

Recipes are Component subclasses registered per id, optionally with fixed
metadata (version, licenses). Ids without a recipe fall back to a default
component class when one is configured.

Design:
    - Reference parsing is independent from recipe lookup
    - Versions default to the one found in the tarball file name
    - Missing tarballs are looked up as <id>-<version>.<ext> in source paths
    - URL tarballs are downloaded once into the cache directory
    - Missing sha256 checksums are computed from the local tarball
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, Union

from stackforge.artifacts.archive import sha256_file
from stackforge.components.compilable import MakeComponent
from stackforge.components.component import (
    Component,
    ComponentMetadata,
    FileReference,
    SourceReference,
)
from stackforge.errors import NotFoundError, ValidationError, VersionMismatchError
from stackforge.sources.downloader import SourceDownloader, is_url, version_from_filename

logger = logging.getLogger(__name__)

REFERENCE_PATTERN = re.compile(r"^([^@:]*)(@([^:]*))?(:(.*))?$")
SOURCE_EXTENSIONS = (".tar.gz", ".tgz", ".tar.bz2", ".tar.xz")


@dataclass
class ComponentReference:
    """Parsed reference to a component in build data."""

    id: str
    version: Optional[str] = None
    source_tarball: Optional[str] = None
    sha256: Optional[str] = None
    patches: List[Any] = field(default_factory=list)
    extra_files: List[Any] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "sourceTarball": self.source_tarball,
            "patches": list(self.patches),
            "extraFiles": list(self.extra_files),
        }


@dataclass
class Recipe:
    """Registered build logic for a component id."""

    component_class: Type[Component]
    metadata: Dict[str, Any] = field(default_factory=dict)


class ComponentProvider:
    """Resolves component references into Component instances.

    Example:
        provider = ComponentProvider(source_paths=[Path("/srv/tarballs")])
        provider.register("zlib", Library, {"licenses": [{"type": "ZLIB", "licenseUrl": "..."}]})
        component = provider.get_component(provider.parse_component_reference("zlib@1.2.11"))
    """

    def __init__(
        self,
        source_paths: Optional[Sequence[Path]] = None,
        cache_dir: Optional[Path] = None,
        default_component_class: Optional[Type[Component]] = MakeComponent,
        downloader: Optional[SourceDownloader] = None,
    ):
        """Initialize provider.

        Args:
            source_paths: Directories searched for <id>-<version> tarballs
            cache_dir: Where downloaded tarballs are stored
            default_component_class: Class used for ids without a recipe;
                None makes unknown ids an error
            downloader: Downloader for URL sources
        """
        self.source_paths = [Path(p) for p in (source_paths or [])]
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.default_component_class = default_component_class
        self.downloader = downloader
        self._recipes: Dict[str, Recipe] = {}

    def register(
        self,
        component_id: str,
        component_class: Type[Component],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Register the build logic for a component id.

        Args:
            component_id: Component id
            component_class: Component subclass implementing the hooks
            metadata: Optional fixed metadata (version, licenses)
        """
        self._recipes[component_id] = Recipe(component_class, dict(metadata or {}))

    def has_recipe(self, component_id: str) -> bool:
        return component_id in self._recipes

    def parse_component_reference(
        self, reference: Union[str, Mapping[str, Any], ComponentReference]
    ) -> ComponentReference:
        """Parse a component reference.

        Accepted forms: ``id``, ``id@version``, ``id:/path/to/src.tar.gz``,
        ``id@version:/path/to/src.tar.gz`` or a dict with ``id``,
        ``version``, ``sourceTarball``, ``sha256``, ``patches``,
        ``extraFiles`` and ``metadata`` keys.

        Raises:
            ValidationError: If the reference cannot be parsed
        """
        if isinstance(reference, ComponentReference):
            parsed = reference
        elif isinstance(reference, str):
            match = REFERENCE_PATTERN.match(reference)
            if not match or not match.group(1):
                raise ValidationError(f"Don't know how to parse component reference {reference!r}")
            parsed = ComponentReference(
                id=match.group(1),
                version=match.group(3) or None,
                source_tarball=match.group(5) or None,
            )
        elif isinstance(reference, Mapping):
            if not reference.get("id"):
                raise ValidationError(f"Component reference without an id: {dict(reference)!r}")
            version = reference.get("version")
            parsed = ComponentReference(
                id=reference["id"],
                version=str(version) if version is not None else None,
                source_tarball=reference.get("sourceTarball") or None,
                sha256=reference.get("sha256") or None,
                patches=list(reference.get("patches") or []),
                extra_files=list(reference.get("extraFiles") or []),
                metadata=dict(reference["metadata"]) if reference.get("metadata") else None,
            )
        else:
            raise ValidationError(f"Don't know how to parse component reference {reference!r}")

        if not parsed.source_tarball:
            logger.warning(
                f"You should specify a sourceTarball for {parsed.id}. "
                + f"F.e. {parsed.id}@version:/path/to/{parsed.id}.tar.gz or specify it in the JSON input"
            )
        return parsed

    def _find_source_tarball(self, component_id: str, version: Optional[str]) -> Optional[Path]:
        if not version:
            return None
        for directory in self.source_paths:
            for extension in SOURCE_EXTENSIONS:
                candidate = directory / f"{component_id}-{version}{extension}"
                if candidate.exists():
                    return candidate.resolve()
        return None

    def _fetch(self, url: str, checksum: Optional[str]) -> Path:
        if self.cache_dir is None:
            raise NotFoundError(f"No download cache configured to fetch {url}")
        if self.downloader is None:
            self.downloader = SourceDownloader()
        return self.downloader.fetch(url, self.cache_dir, checksum)

    def get_component(self, reference: Union[str, Mapping[str, Any], ComponentReference]) -> Component:
        """Instantiate the component a reference points to.

        Raises:
            NotFoundError: If there is no recipe (and no default class) for
                the id
            VersionMismatchError: If the recipe has a fixed version that
                differs from the requested one
        """
        if not isinstance(reference, ComponentReference):
            reference = self.parse_component_reference(reference)

        recipe = self._recipes.get(reference.id)
        if recipe is None:
            if self.default_component_class is None:
                raise NotFoundError(f"Unable to find a recipe for {reference.id}")
            recipe = Recipe(self.default_component_class)

        metadata: Dict[str, Any] = dict(recipe.metadata)
        metadata.update(reference.metadata or {})
        metadata["id"] = metadata.get("id") or reference.id

        version = reference.version
        if not version and reference.source_tarball:
            version = version_from_filename(reference.source_tarball, reference.id)
        recipe_version = recipe.metadata.get("version")
        if version and recipe_version and str(recipe_version) != str(version):
            raise VersionMismatchError(
                f"Requested {reference.id}@{version} but the recipe provides version {recipe_version}"
            )
        metadata["version"] = version or recipe_version

        tarball: Optional[str] = reference.source_tarball
        if tarball and is_url(tarball):
            tarball = str(self._fetch(tarball, reference.sha256))
        elif not tarball:
            found = self._find_source_tarball(reference.id, metadata["version"])
            tarball = str(found) if found else None

        sha256 = reference.sha256
        if tarball and not sha256 and Path(tarball).is_file():
            sha256 = sha256_file(tarball)

        component = recipe.component_class(ComponentMetadata.from_value(metadata))
        component.id = component.id or reference.id
        component.source = SourceReference(tarball=tarball, sha256=sha256)
        component.patches = [FileReference.from_value(p) for p in reference.patches]
        component.extra_files = [FileReference.from_value(f) for f in reference.extra_files]
        return component
