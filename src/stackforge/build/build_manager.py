"""
Build orchestration for stackforge.

BuildManager drives a whole build: it creates the BuildEnvironment, resolves
the components into a ComponentList, runs every component through its
lifecycle hooks in list order and finally packages the results through a
Summary.

Design:
    - Components build strictly in list order, one at a time
    - A .buildcomplete sentinel in a component's src_dir skips the
      extract/build phase on the next run unless force_rebuild is set
    - install() and the license step always run, so the prefix is rebuilt
      consistently even when every build step is skipped
    - minify() runs only once every component has been installed, since
      later components may link against files minify would remove
    - continue_at and incremental tracking cannot be combined; tracking is
      disabled with a warning
"""

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from stackforge.artifacts.summary import Summary
from stackforge.build.build_environment import BuildEnvironment
from stackforge.build.component_list import ComponentList
from stackforge.build.platform import Platform
from stackforge.components.component import Component
from stackforge.components.provider import ComponentProvider
from stackforge.config.build_config import BuildConfig
from stackforge.errors import NotFoundError, ValidationError
from stackforge.logging_setup import attach_build_log, detach_build_log

logger = logging.getLogger(__name__)

BUILD_COMPLETE_FILE = ".buildcomplete"

BuildData = Union[Sequence[Any], Mapping[str, Any]]
PlatformValue = Union[Platform, Dict[str, Any], str, None]


class BuildManager:
    """
    Drives the build of a list of components.

    Usage:
        manager = BuildManager(BuildConfig.default())
        summary = manager.build(["zlib@1.2.11:/tmp/zlib-1.2.11.tar.gz"])
        print(summary.to_json())
    """

    def __init__(self, config: BuildConfig, provider: Optional[ComponentProvider] = None):
        """
        Initialize the manager.

        Args:
            config: Directories and defaults of the build
            provider: Component provider (defaults to one searching the
                configured source paths and download cache)
        """
        self.config = config
        self.provider = provider or ComponentProvider(
            source_paths=config.source_paths,
            cache_dir=config.cache_dir,
        )
        self.be: Optional[BuildEnvironment] = None

    def create_build_environment(self, platform: PlatformValue = None) -> BuildEnvironment:
        """Create (and remember) a BuildEnvironment from the configuration."""
        self.be = BuildEnvironment(
            platform=platform or self.config.platform,
            output_dir=self.config.output_dir,
            prefix_dir=self.config.prefix_dir,
            sandbox_dir=self.config.sandbox_dir,
            logs_dir=self.config.effective_logs_dir,
            max_parallel_jobs=self.config.max_jobs,
        )
        return self.be

    @staticmethod
    def _split_build_data(
        build_data: BuildData, platform: PlatformValue
    ) -> Tuple[List[Any], PlatformValue, Optional[str]]:
        if isinstance(build_data, Mapping):
            return (
                list(build_data.get("components") or []),
                platform or build_data.get("platform") or None,
                build_data.get("buildId"),
            )
        return list(build_data), platform, None

    def get_components_metadata(
        self, build_data: BuildData, platform: PlatformValue = None
    ) -> Dict[str, Any]:
        """
        Resolve the components of a build without building them.

        Args:
            build_data: List of component references, or a dict with
                ``platform`` and ``components`` keys
            platform: Target platform, overriding the one in build_data

        Returns:
            ``{"platform": {...}, "components": [{"id", "version",
            "sourceTarball", "patches", "extraFiles"}, ...]}``
        """
        references, platform, _ = self._split_build_data(build_data, platform)
        be = self.create_build_environment(platform)
        component_list = ComponentList(
            references, self.provider, be, initialize=False, validate=False
        )

        components = []
        for component in component_list:
            components.append(
                {
                    "id": component.id,
                    "version": component.version,
                    "sourceTarball": component.source.tarball,
                    "patches": [p.path for p in component.patches],
                    "extraFiles": [f.path for f in component.extra_files],
                }
            )
        return {"platform": be.platform.to_dict(), "components": components}

    def _build_component(self, component: Component, force_rebuild: bool = False) -> None:
        printable_ref = f"{component.metadata.id} {component.version}"
        build_complete_file = component.src_dir / BUILD_COMPLETE_FILE

        if build_complete_file.exists() and not force_rebuild:
            logger.info(f"Skipping build step for {printable_ref}")
        else:
            logger.info(f"Building {printable_ref}")
            component.cleanup()
            component.extract()
            component.copy_extra_files()
            component.patch()
            component.post_extract()
            component.build()
            component.post_build()
            build_complete_file.parent.mkdir(parents=True, exist_ok=True)
            build_complete_file.touch()

        logger.info(f"Installing {printable_ref}")
        component.install()
        component.fulfill_license_requirements()
        component.post_install()

    @staticmethod
    def _link_latest(build_dir: Path) -> None:
        latest = build_dir.parent / "latest"
        try:
            if latest.is_symlink() or latest.exists():
                latest.unlink()
            latest.symlink_to(build_dir, target_is_directory=True)
        except OSError as e:
            logger.debug(f"Unable to create symbolic link: {e}")

    def build(
        self,
        build_data: BuildData,
        abort_on_error: bool = True,
        force_rebuild: bool = False,
        continue_at: Optional[str] = None,
        incremental_tracking: bool = False,
        build_id: Optional[str] = None,
        build_dir: Optional[Union[str, Path]] = None,
        platform: PlatformValue = None,
    ) -> Summary:
        """
        Build a list of components and package the result.

        Args:
            build_data: List of component references, or a dict with
                ``platform``, ``buildId`` and ``components`` keys
            abort_on_error: Raise component validation errors instead of
                logging them
            force_rebuild: Rebuild components even if already built
            continue_at: Id of the first component to build; earlier ones
                are skipped
            incremental_tracking: Capture a tarball per component
            build_id: Build id (defaults to <lastId>-<lastVersion>-stack)
            build_dir: Build directory (defaults to a timestamped directory
                under the output directory)
            platform: Target platform, overriding build_data and config

        Returns:
            The serialized Summary

        Raises:
            ValidationError: If there is nothing to build or a component is
                invalid
            NotFoundError: If continue_at is not in the list of components
            StackforgeError: Any failure of a component step or packaging
        """
        references, platform, data_build_id = self._split_build_data(build_data, platform)
        build_id = build_id or data_build_id

        if continue_at and incremental_tracking:
            logger.warning(
                "Continuing a previous build and tracking the changes is not supported. Disabling tracking"
            )
            incremental_tracking = False

        be = self.create_build_environment(platform)
        component_list = ComponentList(references, self.provider, be, abort_on_error=abort_on_error)
        components = component_list.components
        if not components:
            raise ValidationError("No components to build")

        if not build_id:
            last = components[-1]
            build_id = f"{last.id}-{last.version}-stack"
        if not build_dir:
            build_tail = f"{datetime.now().strftime('%Y-%m-%d-%H%M%S')}-{build_id}-{be.platform}"
            build_dir = be.output_dir / build_tail
        build_dir = Path(build_dir).resolve()
        artifacts_dir = build_dir / "artifacts"

        log_handler = attach_build_log(build_dir / "logs" / "build.log")
        try:
            continue_at_index = 0
            if continue_at:
                continue_at_index = component_list.get_index(continue_at)
                if continue_at_index == -1:
                    raise NotFoundError(f"Cannot find {continue_at} in the list of components to build")
                logger.info(f"Instructed to continue at {continue_at}")

            summary = Summary(
                be,
                build_id=build_id,
                incremental_tracking=incremental_tracking,
                artifacts_dir=artifacts_dir,
            )
            summary.start()

            logger.info(f"Building for target {be.platform}")
            logger.info(f"Components to Build: {component_list.get_printable_list()}")

            for index, component in enumerate(components):
                start_time = time.monotonic()
                printable_ref = f"{component.metadata.id} {component.version}"
                if index >= continue_at_index:
                    self._build_component(component, force_rebuild=force_rebuild)
                else:
                    logger.info(f"Skipping component {printable_ref} because of continueAt={continue_at}")
                build_time = time.monotonic() - start_time
                logger.debug(f"{printable_ref} took {build_time:.2f} seconds to build")
                summary.add_artifact(component, build_time)

            for component in components:
                component.minify()

            summary.end()
            self._link_latest(build_dir)
            summary.serialize(artifacts_dir)
            logger.info(f"Build completed. Artifacts stored under '{artifacts_dir}'")
            return summary
        except Exception:
            logger.exception(f"Build {build_id} failed")
            raise
        finally:
            detach_build_log(log_handler)
