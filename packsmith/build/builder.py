"""Builder driving one Packsmith command.

This module contains the Builder class that wires the settings, the task
registry and the composition engine together and runs a single named task.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from packsmith.build.collaborators import CommandRunner
from packsmith.build.pipelines import register_default_tasks
from packsmith.core.config_manager import BuildSettings
from packsmith.core.engine import CompositionEngine
from packsmith.core.runners import ExecutionContext, TaskResult
from packsmith.core.task_registry import TaskRegistry
from packsmith.utils.exceptions import PacksmithError


class BuildError(PacksmithError):
    """Exception raised when a task of the build fails."""

    def __init__(self, message: str, *, result: TaskResult, **kwargs: Any) -> None:
        super().__init__(
            message,
            task_name=result.name,
            failed_task=result.failed_task,
            status=result.status.value,
            **kwargs
        )
        self.result = result


class Builder:
    """Runs named tasks of the add-on build.

    Attributes:
        settings: Settings of the run
        registry: Registry holding the built-in tasks
        engine: Engine the tasks run on
    """

    def __init__(
            self,
            settings: BuildSettings,
            logger_manager: Any = None,
            lint_fix: bool = False,
            runner: Optional[CommandRunner] = None
    ) -> None:
        """Initialize the Builder and register the built-in tasks.

        Args:
            settings: Settings of the run
            logger_manager: Optional logging manager
            lint_fix: Let the linter fix problems it can
            runner: Command runner for external tools

        Raises:
            ConfigurationError: If a task configuration is invalid
        """
        self.settings = settings
        self._logger_manager = logger_manager
        self.registry = TaskRegistry(logger_manager)
        self.engine = CompositionEngine(
            self.registry, logger_manager=logger_manager, max_parallel=settings.max_parallel
        )
        self.tasks = register_default_tasks(
            self.registry, settings, lint_fix=lint_fix, logger_manager=logger_manager, runner=runner
        )

    def describe_tasks(self) -> Dict[str, str]:
        return self.registry.describe()

    def plan(self, task_name: str) -> List[str]:
        """Get the tasks ``task_name`` runs, dependencies first."""
        return self.engine.validate(task_name)

    async def build(self, task_name: str, context: Optional[ExecutionContext] = None) -> TaskResult:
        """Run a task.

        This is the main entry point for a build.

        Returns:
            Result of the task

        Raises:
            UnknownTaskError: If a task name is not registered
            CyclicTaskError: If the task graph has a cycle
            BuildError: If the task failed or was cancelled
        """
        result = await self.engine.run(task_name, context)
        if not result.ok:
            failed = result.failed_task or result.name
            raise BuildError(
                f"Task '{failed}' failed: {result.error}",
                result=result
            ) from result.error
        return result
