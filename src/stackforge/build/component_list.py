"""Component List.

Ordered, deduplicated list of the components of one build. Insertion order
is build order. Adding an id that is already listed replaces the entry in
place, keeping the fields the new entry leaves empty (metadata, patches,
extra files, source) from the previous one. Each added component exports
its environment variables into the BuildEnvironment right away, so later
components compile against earlier ones.
"""

import logging
import re
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Sequence, Union

from stackforge.build.build_environment import BuildEnvironment
from stackforge.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from stackforge.components.component import Component
    from stackforge.components.provider import ComponentProvider

logger = logging.getLogger(__name__)

MERGED_FIELDS = ("metadata", "patches", "extra_files", "source")

TEMPLATE_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")
TEMPLATE_ATTRIBUTES = {
    "prefix": "prefix",
    "srcDir": "src_dir",
    "libDir": "lib_dir",
    "binDir": "bin_dir",
    "headersDir": "headers_dir",
    "workingDir": "working_dir",
    "licenseDir": "license_dir",
    "extraFilesDir": "extra_files_dir",
}

BuildData = Union[Sequence[Any], Mapping[str, Any]]


class ComponentList:
    """Components of one build, in build order."""

    def __init__(
        self,
        build_data: BuildData,
        provider: "ComponentProvider",
        build_env: BuildEnvironment,
        abort_on_error: bool = True,
        initialize: bool = True,
        validate: bool = True,
    ):
        """Resolve and add every component of `build_data`.

        Args:
            build_data: List of component references, or a dict with a
                ``components`` list
            provider: Resolves references into Component instances
            build_env: Environment the components are attached to
            abort_on_error: Raise validation errors instead of logging them
            initialize: Run each component's initialize() hook
            validate: Run each component's validate() hook
        """
        self.build_env = build_env
        self.provider = provider
        self.abort_on_error = abort_on_error
        self.initialize_components = initialize
        self.validate_components = validate
        self._components: List["Component"] = []

        references = build_data.get("components", []) if isinstance(build_data, Mapping) else build_data
        for reference in references or []:
            self.add(reference)

    def _resolve(self, reference: Any) -> "Component":
        parsed = self.provider.parse_component_reference(reference)
        component = self.provider.get_component(parsed)
        component.setup(self)
        if self.initialize_components:
            component.initialize()
        if self.validate_components:
            try:
                component.validate()
            except ValidationError as e:
                if self.abort_on_error:
                    raise
                logger.warning(f"Component validation failed: {e}")
        return component

    def add(self, reference: Any) -> "Component":
        """Resolve a reference and add (or replace) its component.

        Returns:
            The component now in the list
        """
        component = self._resolve(reference)
        index = self.get_index(component.id)
        if index != -1:
            previous = self._components[index]
            for name in MERGED_FIELDS:
                if not getattr(component, name) and getattr(previous, name):
                    setattr(component, name, getattr(previous, name))
            self._components[index] = component
            logger.debug(f"Replaced {component.id} in the list of components to build")
        else:
            self._components.append(component)
        self.build_env.add_env_variables(component.get_exportable_environment_variables())
        return component

    def get(self, component_id: str) -> "Component":
        """Return the component with the given id.

        Raises:
            NotFoundError: If it is not listed
        """
        for component in self._components:
            if component.id == component_id:
                return component
        raise NotFoundError(f"{component_id} is not present in the list of components to build")

    def get_index(self, component_id: str) -> int:
        """Position of a component in build order, or -1."""
        for index, component in enumerate(self._components):
            if component.id == component_id:
                return index
        return -1

    @property
    def components(self) -> List["Component"]:
        return list(self._components)

    def __iter__(self) -> Iterator["Component"]:
        return iter(list(self._components))

    def __len__(self) -> int:
        return len(self._components)

    def get_printable_list(self) -> str:
        """Components as ``id@version``, comma separated."""
        return ", ".join(f"{c.metadata.id}@{c.metadata.version}" for c in self._components)

    @staticmethod
    def _render(flag: str, component: "Component") -> str:
        def _replace(match: "re.Match[str]") -> str:
            name = match.group(1)
            attribute = TEMPLATE_ATTRIBUTES.get(name, name)
            if attribute not in TEMPLATE_ATTRIBUTES.values() or not hasattr(component, attribute):
                raise ValidationError(f"Unknown placeholder '{name}' in flag '{flag}' for {component.id}")
            return str(getattr(component, attribute))

        return TEMPLATE_PATTERN.sub(_replace, flag)

    def populate_flags_from_dependencies(self, per_dependency_flags: Mapping[str, Any]) -> List[str]:
        """Render flags against the paths of other components.

        Example:
            populate_flags_from_dependencies({"zlib": ["--with-zlib={{prefix}}"]})
            # => ["--with-zlib=/opt/stack/zlib"]

        Args:
            per_dependency_flags: Maps a component id to a list of flag
                templates (a required dependency) or to a dict with
                ``required`` and ``flags`` keys

        Returns:
            Rendered flags, in order

        Raises:
            ValidationError: If an entry has an unknown format
            NotFoundError: If a required dependency is not listed
        """
        rendered: List[str] = []
        for component_id, data in per_dependency_flags.items():
            if isinstance(data, (list, tuple)):
                entry: Dict[str, Any] = {"required": True, "flags": list(data)}
            elif isinstance(data, Mapping):
                entry = {"required": data.get("required", True), "flags": list(data.get("flags") or [])}
            else:
                raise ValidationError(f"Flag format not recognized for {component_id}: {data!r}")

            if self.get_index(component_id) == -1:
                if entry["required"]:
                    raise NotFoundError(f"{component_id} is required but has not been built")
                continue

            component = self.get(component_id)
            rendered.extend(self._render(flag, component) for flag in entry["flags"])
        return rendered
