from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Union

from packsmith.core.base import resolve_logger
from packsmith.core.runners import LeafRunner, ParallelRunner, Runner, RunnerKind, SequenceRunner, Task
from packsmith.utils.exceptions import TaskError, UnknownTaskError


class TaskRegistry:
    """Mapping from task name to its runner.

    Registration does not execute anything and implies no ordering. Names are
    unique: registering a name that already exists replaces the earlier
    binding (last registration wins).
    """

    def __init__(self, logger_manager: Any = None) -> None:
        """Initialize an empty registry.

        Args:
            logger_manager: Optional logging manager
        """
        self._tasks: Dict[str, Task] = {}
        self._logger = resolve_logger(logger_manager, 'task_registry')

    def register(
            self,
            name: str,
            runner: Union[Runner, Callable[..., Any]],
            description: str = ""
    ) -> Task:
        """Bind a task name to a runner.

        Args:
            name: Unique task name
            runner: A runner, or a callable that is wrapped as a leaf runner
            description: Help text shown by ``--list``

        Returns:
            The registered task

        Raises:
            TaskError: If the name is empty or the runner is not usable
        """
        if not name or not name.strip():
            raise TaskError('Task name must not be empty')

        if not isinstance(runner, (LeafRunner, SequenceRunner, ParallelRunner)):
            if not callable(runner):
                raise TaskError(f'Runner for task {name} is not callable', task_name=name)
            runner = LeafRunner(runner)

        if runner.kind != RunnerKind.LEAF and not runner.children:
            raise TaskError(f'Composite task {name} has no children', task_name=name)

        task = Task(name=name, runner=runner, description=description)
        if name in self._tasks:
            self._logger.debug(f'Replacing existing binding for task {name}')
        self._tasks[name] = task
        return task

    def resolve(self, name: str) -> Task:
        """Get the task bound to a name.

        Raises:
            UnknownTaskError: If no task has that name
        """
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownTaskError(name) from None

    def get(self, name: str) -> Optional[Task]:
        return self._tasks.get(name)

    def list(self) -> List[str]:
        """Get all registered task names, in registration order."""
        return list(self._tasks)

    def describe(self) -> Dict[str, str]:
        """Get a name to description mapping for help output."""
        return {name: task.description for name, task in self._tasks.items()}

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
