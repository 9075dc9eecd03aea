"""Named task compositions of the add-on build."""

from __future__ import annotations

import functools
from typing import Any, Optional

import pydantic

from packsmith.build import config as build_config
from packsmith.build.collaborators import CommandRunner
from packsmith.build.tasks import BuildTasks
from packsmith.core.config_manager import BuildSettings
from packsmith.core.runners import ExecutionContext, parallel, series
from packsmith.core.task_registry import TaskRegistry
from packsmith.utils.exceptions import ConfigurationError

REBUILD_TASK = 'rebuild'


def _leaf(action: Any, *args: Any) -> Any:
    """Wrap a coroutine function as a leaf action that ignores the context."""

    @functools.wraps(action)
    async def run(context: ExecutionContext) -> Any:
        return await action(*args)

    return run


def register_default_tasks(
        registry: TaskRegistry,
        settings: BuildSettings,
        lint_fix: bool = False,
        logger_manager: Any = None,
        runner: Optional[CommandRunner] = None,
) -> BuildTasks:
    """Register the built-in tasks.

    Every task's configuration is built and validated here, before anything
    runs.

    Args:
        registry: Registry to populate
        settings: Settings of the run
        lint_fix: Let the linter fix problems it can
        logger_manager: Optional logging manager
        runner: Command runner for external tools

    Returns:
        The leaf actions bound to ``settings``

    Raises:
        ConfigurationError: If a task configuration is invalid
    """
    try:
        lint_options = build_config.lint_config(settings, fix=lint_fix)
        typescript_options = build_config.typescript_config(settings)
        bundle_options = build_config.bundle_config(settings)
        clean_options = build_config.clean_local_config(settings)
        copy_options = build_config.copy_config(settings)
        mcaddon = build_config.mcaddon_descriptor(settings)
        mcworld = build_config.mcworld_descriptor(settings)
    except pydantic.ValidationError as e:
        error_details = ', '.join(
            f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise ConfigurationError(
            f'Invalid {e.title} options: {error_details}',
            config_key=e.title
        ) from e

    tasks = BuildTasks(settings, logger_manager=logger_manager, runner=runner)

    # Lint
    registry.register('lint', _leaf(tasks.lint, lint_options), 'Lint the TypeScript sources (--fix to apply fixes)')

    # Build
    registry.register('typescript', _leaf(tasks.typescript, typescript_options), 'Type-check the TypeScript sources')
    registry.register(
        'bundle', _leaf(tasks.bundle, bundle_options),
        f'Bundle {settings.entry_point} into {settings.dist_dir}/scripts/{settings.script_name}'
    )
    registry.register('build', series('typescript', 'bundle'), 'Type-check, then bundle')

    # Clean
    registry.register('clean-local', _leaf(tasks.clean, clean_options), 'Remove local build output')
    registry.register(
        'clean-collateral', _leaf(tasks.clean_collateral, copy_options),
        'Remove the packs deployed to Minecraft'
    )
    registry.register('clean', parallel('clean-local', 'clean-collateral'), 'Run both clean steps')

    # Package
    registry.register(
        'copyArtifacts', _leaf(tasks.copy_artifacts, copy_options),
        'Copy the packs and compiled scripts into the Minecraft development pack folders'
    )
    registry.register('package', series('clean-collateral', 'copyArtifacts'), 'Redeploy the packs')

    # Local deploy
    registry.register(REBUILD_TASK, series('clean-local', 'build', 'package'), 'Full build followed by a redeploy')
    registry.register(
        'local-deploy',
        functools.partial(tasks.watch, target=REBUILD_TASK),
        'Rebuild and redeploy whenever sources change'
    )

    # Mcaddon
    registry.register(
        'createMcaddonFile', _leaf(tasks.create_package, mcaddon),
        f'Archive the packs into {mcaddon.output_path.name}'
    )
    registry.register('mcaddon', series('clean-local', 'build', 'createMcaddonFile'), 'Build a .mcaddon')

    # Mcworld
    registry.register(
        'createMcworldFile', _leaf(tasks.create_package, mcworld),
        f'Archive the world template and packs into {mcworld.output_path.name}'
    )
    registry.register('mcworld', series('clean-local', 'build', 'createMcworldFile'), 'Build a .mcworld')

    return tasks
