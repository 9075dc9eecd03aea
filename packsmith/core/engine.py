from __future__ import annotations
import asyncio
import time
from typing import Any, List, Optional, Tuple

import networkx as nx

from packsmith.core.base import resolve_logger
from packsmith.core.runners import ExecutionContext, RunnerKind, Task, TaskResult, TaskStatus
from packsmith.core.task_registry import TaskRegistry
from packsmith.utils.exceptions import CyclicTaskError, ParallelTaskError, TaskCancelledError


def _format_duration(seconds: float) -> str:
    if seconds < 1:
        return f'{seconds * 1000:.0f} ms'
    return f'{seconds:.2f} s'


class CompositionEngine:
    """Runs registered tasks, composing sequence and parallel runners.

    Every public run validates the reachable task graph first, so unknown
    names and dependency cycles are reported before any task executes. Within
    one invocation each task runs at most once; later references to the same
    name reuse the recorded outcome. Failures of parallel siblings are not
    rolled back.
    """

    def __init__(
            self,
            registry: TaskRegistry,
            logger_manager: Any = None,
            max_parallel: Optional[int] = None
    ) -> None:
        """Initialize the engine.

        Args:
            registry: Registry the task names are resolved against
            logger_manager: Optional logging manager
            max_parallel: Maximum number of leaf tasks running at once within
                one invocation, or None for no limit
        """
        self._registry = registry
        self._logger = resolve_logger(logger_manager, 'composition_engine')
        self._max_parallel = max_parallel

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    def new_context(self) -> ExecutionContext:
        """Create the context for a fresh invocation."""
        context = ExecutionContext(engine=self)
        if self._max_parallel:
            context.data['leaf_slots'] = asyncio.Semaphore(self._max_parallel)
        return context

    def dependency_graph(self, name: str) -> nx.DiGraph:
        """Build the graph of tasks reachable from ``name``.

        Edges point from a composite task to each of its children.

        Raises:
            UnknownTaskError: If any reachable name is not registered
        """
        graph = nx.DiGraph()
        pending = [name]
        while pending:
            current = pending.pop()
            if graph.nodes.get(current, {}).get('resolved'):
                continue
            task = self._registry.resolve(current)
            graph.add_node(current, resolved=True, kind=task.runner.kind.value)
            for child in task.dependencies:
                graph.add_edge(current, child)
                if not graph.nodes[child].get('resolved'):
                    pending.append(child)
        return graph

    def validate(self, name: str) -> List[str]:
        """Check that ``name`` can be run.

        Returns:
            Reachable task names, dependencies before dependents

        Raises:
            UnknownTaskError: If any reachable name is not registered
            CyclicTaskError: If the reachable graph contains a cycle
        """
        graph = self.dependency_graph(name)
        if not nx.is_directed_acyclic_graph(graph):
            edges = nx.find_cycle(graph, source=name)
            cycle = [edge[0] for edge in edges] + [edges[0][0]]
            raise CyclicTaskError(cycle)
        # Successors keep declaration order, so sequence children are listed
        # in the order they run.
        return list(nx.dfs_postorder_nodes(graph, source=name))

    async def run(self, name: str, context: Optional[ExecutionContext] = None) -> TaskResult:
        """Run a task and everything it is composed from.

        Args:
            name: Task name
            context: Invocation context; a new one is created when omitted

        Returns:
            The task's result. Task failures are reported in the result, not
            raised.

        Raises:
            UnknownTaskError: If any reachable name is not registered
            CyclicTaskError: If the reachable graph contains a cycle
        """
        self.validate(name)
        if context is None:
            context = self.new_context()
        self._logger.debug(f"Invocation {context.invocation_id}: running '{name}'")
        return await self._run(name, context, ())

    async def _run(self, name: str, context: ExecutionContext, chain: Tuple[str, ...]) -> TaskResult:
        if name in chain:
            raise CyclicTaskError(chain[chain.index(name):] + (name,))

        outcome = context.outcomes.get(name)
        if outcome is not None:
            return await asyncio.shield(outcome)

        task = self._registry.resolve(name)
        outcome = asyncio.get_running_loop().create_future()
        context.outcomes[name] = outcome

        try:
            result = await self._execute(task, context, chain + (name,))
        except asyncio.CancelledError:
            outcome.cancel()
            raise
        except BaseException as e:
            outcome.set_exception(e)
            # Awaiting siblings re-raise it; mark it retrieved for the others.
            outcome.exception()
            raise

        outcome.set_result(result)
        return result

    async def _execute(self, task: Task, context: ExecutionContext, chain: Tuple[str, ...]) -> TaskResult:
        result = TaskResult(
            name=task.name,
            status=TaskStatus.COMPLETED,
            invocation_id=context.invocation_id
        )
        kind = task.runner.kind

        if kind == RunnerKind.LEAF:
            self._logger.info(f"Starting '{task.name}'...")
            try:
                await self._run_leaf(task, context)
            except Exception as e:
                result.status = TaskStatus.FAILED
                result.error = e
                result.failed_task = task.name
        elif kind == RunnerKind.SEQUENCE:
            await self._run_sequence(task, context, chain, result)
        else:
            await self._run_parallel(task, context, chain, result)

        result.completed_at = time.monotonic()
        elapsed = _format_duration(result.duration)
        if result.ok:
            if kind == RunnerKind.LEAF:
                self._logger.info(f"Finished '{task.name}' after {elapsed}")
            else:
                self._logger.debug(f"Finished '{task.name}' after {elapsed}")
        elif result.status == TaskStatus.CANCELLED:
            self._logger.warning(f"'{task.name}' cancelled after {elapsed}")
        elif kind == RunnerKind.LEAF or kind == RunnerKind.PARALLEL:
            self._logger.error(f"'{task.name}' failed after {elapsed}: {result.error}")
        return result

    async def _run_leaf(self, task: Task, context: ExecutionContext) -> Any:
        slots = context.data.get('leaf_slots')
        if slots is None:
            return await task.runner.invoke(context)
        async with slots:
            return await task.runner.invoke(context)

    async def _run_sequence(
            self,
            task: Task,
            context: ExecutionContext,
            chain: Tuple[str, ...],
            result: TaskResult
    ) -> None:
        for child in task.dependencies:
            if context.cancelled:
                result.status = TaskStatus.CANCELLED
                result.error = TaskCancelledError(
                    f"Invocation {context.invocation_id} was cancelled before '{child}' started",
                    task_name=child
                )
                result.failed_task = child
                return

            child_result = await self._run(child, context, chain)
            if not child_result.ok:
                # Later children never start; the child's failure propagates unchanged.
                result.status = child_result.status
                result.error = child_result.error
                result.failed_task = child_result.failed_task or child_result.name
                return

    async def _run_parallel(
            self,
            task: Task,
            context: ExecutionContext,
            chain: Tuple[str, ...],
            result: TaskResult
    ) -> None:
        pending = [
            asyncio.ensure_future(self._run(child, context, chain))
            for child in task.dependencies
        ]
        failures: List[TaskResult] = []
        try:
            for next_done in asyncio.as_completed(pending):
                child_result = await next_done
                if not child_result.ok:
                    failures.append(child_result)
        except BaseException:
            for future in pending:
                future.cancel()
            raise

        if not failures:
            return

        first = failures[0]
        if any(failure.status == TaskStatus.FAILED for failure in failures):
            result.status = TaskStatus.FAILED
        else:
            result.status = TaskStatus.CANCELLED
        result.error = ParallelTaskError(
            task.name,
            failed_task=first.name,
            cause=first.error,
            sibling_failures=len(failures) - 1
        )
        result.failed_task = first.failed_task or first.name
