"""Leaf task actions of the add-on build.

Each public coroutine of :class:`BuildTasks` takes the invocation's
:class:`~packsmith.core.runners.ExecutionContext` and is registered as a leaf
task by :mod:`packsmith.build.pipelines`.
"""

from __future__ import annotations

import asyncio
import pathlib
from typing import Any, Iterable, List, Optional

from packsmith.build.archive import ArchiveBuilder
from packsmith.build.collaborators import CommandRunner, run_bundle, run_lint, run_typescript
from packsmith.build.config import (
    BundleConfig, CleanConfig, CopyConfig, LintConfig, PackageDescriptor, PackType, TypeScriptConfig
)
from packsmith.build.mirror import FileMirror
from packsmith.build.utils import remove_path
from packsmith.core.base import resolve_logger
from packsmith.core.config_manager import BuildSettings
from packsmith.core.runners import ExecutionContext
from packsmith.core.watch import WatchController
from packsmith.utils.exceptions import ConfigurationError, FileError, MissingInputError, TaskError


class BuildTasks:
    """The actions behind the built-in leaf tasks.

    Args:
        settings: Settings of the run
        logger_manager: Optional logging manager
        runner: Command runner for external tools; defaults to one rooted at
            the project directory
    """

    def __init__(
            self,
            settings: BuildSettings,
            logger_manager: Any = None,
            runner: Optional[CommandRunner] = None
    ) -> None:
        self.settings = settings
        self._logger_manager = logger_manager
        self._logger = resolve_logger(logger_manager, 'build_tasks')
        self.mirror = FileMirror(logger_manager)
        self.archive = ArchiveBuilder(logger_manager)
        self.runner = runner or CommandRunner(settings.root_dir, logger_manager)

    async def lint(self, config: LintConfig) -> None:
        output = await run_lint(config, self.runner, self._logger)
        if output:
            self._logger.info(output)

    async def typescript(self, config: TypeScriptConfig) -> None:
        await run_typescript(config, self.runner)

    async def bundle(self, config: BundleConfig) -> pathlib.Path:
        outfile = await run_bundle(config, self.runner, self._logger)
        self._logger.info(f'Bundled {config.entry_point.name} -> {outfile}')
        return outfile

    async def clean(self, config: CleanConfig) -> List[pathlib.Path]:
        """Delete the configured paths; missing ones are skipped."""
        return await asyncio.to_thread(self._remove_paths, config.paths)

    def _remove_paths(self, paths: Iterable[pathlib.Path]) -> List[pathlib.Path]:
        removed = []
        for path in paths:
            try:
                if remove_path(path):
                    self._logger.debug(f'Removed {path}')
                    removed.append(path)
            except OSError as e:
                raise FileError(f'Failed to remove {path}: {str(e)}', file_path=str(path)) from e
        return removed

    async def clean_collateral(self, config: CopyConfig) -> List[pathlib.Path]:
        """Delete the deployed development packs of the project."""
        targets = [config.development_pack_path(pack_type) for pack_type in PackType]
        if config.deployment_root is None:
            self._logger.warning(
                'Minecraft deployment folder could not be determined on this platform; '
                'set custom_deployment_path to clean deployed packs'
            )
            return []
        return await self.clean(CleanConfig(paths=[target for target in targets if target is not None]))

    async def copy_artifacts(self, config: CopyConfig) -> None:
        """Deploy the packs into the Minecraft development pack folders.

        The behavior pack and then the compiled scripts go into the behavior
        pack folder while the resource pack is copied concurrently; the two
        destinations never overlap.

        Raises:
            ConfigurationError: If the deployment folder cannot be determined
        """
        behavior_dest = config.development_pack_path(PackType.BEHAVIOR)
        resource_dest = config.development_pack_path(PackType.RESOURCE)
        if behavior_dest is None or resource_dest is None:
            raise ConfigurationError(
                'Minecraft deployment folder could not be determined on this platform',
                config_key='custom_deployment_path'
            )

        async def copy_behavior_pack() -> None:
            await self.mirror.mirror(config.behavior_packs, behavior_dest)
            await self.mirror.mirror(config.scripts, behavior_dest / 'scripts')

        results = await asyncio.gather(
            copy_behavior_pack(),
            self.mirror.mirror(config.resource_packs, resource_dest),
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        self._logger.info(f'Deployed {config.project_name} to {config.deployment_root}')

    async def create_package(self, descriptor: PackageDescriptor) -> pathlib.Path:
        """Stage the descriptor's sources and archive the staging tree.

        Raises:
            MissingInputError: If a required source is absent
        """
        for entry in descriptor.staging:
            if not entry.source.exists():
                if entry.required:
                    raise MissingInputError(
                        f'Required input for {descriptor.name} not found: {entry.source}',
                        path=str(entry.source)
                    )
                if entry.target == '.':
                    self._logger.warning(
                        f'Template folder {entry.source} not found; packaging without it'
                    )
                    continue
            await self.mirror.mirror(entry.source, descriptor.staging_root / entry.target)

        self._logger.info(f'Staged {descriptor.name} contents in {descriptor.staging_root}')
        return await self.archive.build_archive(descriptor.staging_root, descriptor.output_path)

    async def watch(self, context: ExecutionContext, target: str) -> None:
        """Rebuild ``target`` on every change until the session is stopped."""
        if context.engine is None:
            raise TaskError('Watching requires an engine-bound context', task_name=target)

        controller = WatchController(
            context.engine,
            target,
            self.settings.watch_patterns,
            self.settings.root_dir,
            debounce=self.settings.watch_debounce,
            stop_timeout=self.settings.watch_stop_timeout,
            logger_manager=self._logger_manager,
        )
        await controller.initialize()
        try:
            await controller.wait_stopped()
        finally:
            await controller.shutdown()
