from __future__ import annotations
import asyncio
import inspect
import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Tuple, Union

if TYPE_CHECKING:
    from packsmith.core.engine import CompositionEngine

LeafAction = Callable[['ExecutionContext'], Union[Awaitable[Any], Any]]

_invocation_ids = itertools.count(1)


class TaskStatus(str, Enum):
    """Outcome of a task within one invocation."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunnerKind(str, Enum):
    """Runner variants."""
    LEAF = "leaf"
    SEQUENCE = "sequence"
    PARALLEL = "parallel"


@dataclass(frozen=True)
class LeafRunner:
    """Runs a single action, usually an external collaborator invocation.

    The action receives the :class:`ExecutionContext`; plain functions are
    run in a worker thread so they never block the event loop. Raising any
    exception marks the task as failed.
    """
    action: LeafAction
    kind: RunnerKind = field(default=RunnerKind.LEAF, init=False)

    @property
    def children(self) -> Tuple[str, ...]:
        return ()

    async def invoke(self, context: ExecutionContext) -> Any:
        if inspect.iscoroutinefunction(self.action):
            return await self.action(context)
        result = await asyncio.to_thread(self.action, context)
        if inspect.isawaitable(result):
            return await result
        return result


@dataclass(frozen=True)
class SequenceRunner:
    """Runs child tasks one after another, stopping at the first failure."""
    children: Tuple[str, ...]
    kind: RunnerKind = field(default=RunnerKind.SEQUENCE, init=False)


@dataclass(frozen=True)
class ParallelRunner:
    """Runs child tasks concurrently and joins on all of them."""
    children: Tuple[str, ...]
    kind: RunnerKind = field(default=RunnerKind.PARALLEL, init=False)


Runner = Union[LeafRunner, SequenceRunner, ParallelRunner]


@dataclass(frozen=True)
class Task:
    """A named, registered unit of work."""
    name: str
    runner: Runner
    description: str = ""

    @property
    def dependencies(self) -> Tuple[str, ...]:
        """Names of the tasks this task is composed from."""
        return self.runner.children

    @property
    def is_composite(self) -> bool:
        return self.runner.kind != RunnerKind.LEAF


@dataclass
class TaskResult:
    """Outcome of running a task in one invocation."""
    name: str
    status: TaskStatus
    invocation_id: int
    error: Optional[BaseException] = None
    failed_task: Optional[str] = None
    started_at: float = field(default_factory=time.monotonic)
    completed_at: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def duration(self) -> float:
        if self.completed_at is None:
            return 0.0
        return self.completed_at - self.started_at

    def raise_for_status(self) -> None:
        """Re-raise the failure cause, if any."""
        if self.error is not None:
            raise self.error


@dataclass
class ExecutionContext:
    """Per-invocation state shared by every task the invocation runs.

    ``outcomes`` memoizes each task by name. Entries are inserted before the
    task's first await, so concurrent references from parallel branches all
    see and await the same future.
    """
    engine: Optional[CompositionEngine] = None
    invocation_id: int = field(default_factory=lambda: next(_invocation_ids))
    outcomes: Dict[str, asyncio.Future] = field(default_factory=dict)
    cancelled: bool = False
    data: Dict[str, Any] = field(default_factory=dict)

    def cancel(self) -> None:
        """Stop scheduling further composite children in this invocation."""
        self.cancelled = True

    def completed_tasks(self) -> Dict[str, TaskResult]:
        """Results of the tasks that have finished so far."""
        return {
            name: future.result()
            for name, future in self.outcomes.items()
            if future.done() and not future.cancelled() and future.exception() is None
        }


def series(*names: str) -> SequenceRunner:
    """Compose named tasks to run strictly in the given order."""
    return SequenceRunner(children=tuple(names))


def parallel(*names: str) -> ParallelRunner:
    """Compose named tasks to run concurrently."""
    return ParallelRunner(children=tuple(names))
