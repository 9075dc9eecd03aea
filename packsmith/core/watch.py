from __future__ import annotations
import asyncio
import pathlib
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Set, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from packsmith.build.utils import GlobMatcher, relative_posix
from packsmith.core.base import PacksmithManager, resolve_logger
from packsmith.core.engine import CompositionEngine
from packsmith.core.runners import ExecutionContext, TaskResult
from packsmith.utils.exceptions import ManagerInitializationError, WatchError

# Open/close notifications fire whenever a build step merely reads a source file.
CHANGE_EVENT_TYPES = frozenset({'created', 'modified', 'deleted', 'moved'})


class WatchState(str, Enum):
    """Lifecycle of a watch session."""
    IDLE = 'idle'
    WATCHING = 'watching'
    REBUILDING = 'rebuilding'
    STOPPED = 'stopped'


class ChangeEventHandler(FileSystemEventHandler):
    """Forwards watchdog events from the observer thread to the event loop."""

    def __init__(self, controller: WatchController, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__()
        self._controller = controller
        self._loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in CHANGE_EVENT_TYPES:
            return
        for path in (event.src_path, getattr(event, 'dest_path', None)):
            if not path:
                continue
            if isinstance(path, bytes):
                path = path.decode()
            if self._loop.is_closed():
                return
            self._loop.call_soon_threadsafe(self._controller.notify_change, path)


class WatchController(PacksmithManager):
    """Re-runs a target task whenever watched files change.

    The session moves ``idle -> watching -> rebuilding -> watching ... ->
    stopped``. Changes that arrive during a rebuild are coalesced into a
    single pending rebuild. A failed rebuild is logged and the session keeps
    watching. Stopping lets an in-flight rebuild finish unless
    ``stop_timeout`` is set, in which case the rebuild is cancelled once the
    timeout expires.

    Only one session may be active in the process at a time.
    """

    _active: ClassVar[Optional[WatchController]] = None

    def __init__(
            self,
            engine: CompositionEngine,
            target: str,
            patterns: Iterable[str],
            root_dir: Union[str, pathlib.Path],
            debounce: float = 0.25,
            stop_timeout: Optional[float] = None,
            run_initial: bool = True,
            logger_manager: Any = None,
            observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        """Initialize the watch controller.

        Args:
            engine: Engine the target task is run with
            target: Name of the task to run on each change
            patterns: Glob patterns, relative to ``root_dir``, to watch
            root_dir: Directory observed recursively
            debounce: Seconds to wait for further changes before rebuilding
            stop_timeout: Seconds an in-flight rebuild may take to finish after
                a stop request, or None to always let it finish
            run_initial: Run the target once as soon as watching starts
            logger_manager: Optional logging manager
            observer_factory: Factory for the filesystem observer
        """
        super().__init__(name='watch_controller')
        self._engine = engine
        self._target = target
        self._matcher = GlobMatcher(patterns)
        self._root_dir = pathlib.Path(root_dir)
        self._debounce = debounce
        self._stop_timeout = stop_timeout
        self._run_initial = run_initial
        self._observer_factory = observer_factory
        self._logger = resolve_logger(logger_manager, 'watch_controller')

        self._state = WatchState.IDLE
        self._observer: Optional[Any] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._changed = asyncio.Event()
        self._idle = asyncio.Event()
        self._stopped = asyncio.Event()
        self._stopping = False
        self._pending_paths: Set[str] = set()
        self._current_context: Optional[ExecutionContext] = None
        self._rebuild_count = 0
        self._failure_count = 0
        self._last_result: Optional[TaskResult] = None

    @classmethod
    def active(cls) -> Optional[WatchController]:
        """Get the watch session running in this process, if any."""
        return cls._active

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def patterns(self) -> List[str]:
        return list(self._matcher.patterns)

    @property
    def rebuild_count(self) -> int:
        return self._rebuild_count

    @property
    def last_result(self) -> Optional[TaskResult]:
        return self._last_result

    @property
    def rebuild_pending(self) -> bool:
        return self._changed.is_set()

    async def initialize(self) -> None:
        """Start observing the patterns and enter the watching state.

        Raises:
            WatchError: If another watch session is active
            ManagerInitializationError: If the observer cannot be started
        """
        if self._state != WatchState.IDLE:
            raise WatchError(f'Watch session for {self._target} was already started')
        active = WatchController._active
        if active is not None and active is not self:
            raise WatchError(f'A watch session for {active._target} is already running')

        # Unknown targets and cycles are reported before anything is observed.
        self._engine.validate(self._target)

        loop = asyncio.get_running_loop()
        try:
            self._observer = self._observer_factory()
            self._observer.schedule(ChangeEventHandler(self, loop), str(self._root_dir), recursive=True)
            self._observer.start()
        except Exception as e:
            raise ManagerInitializationError(
                f'Failed to start watching {self._root_dir}: {str(e)}',
                manager_name=self.name
            ) from e

        WatchController._active = self
        self._state = WatchState.WATCHING
        self._initialized = True
        self._healthy = True
        self._logger.info(f"Watching {', '.join(self.patterns)} for changes")

        if self._run_initial:
            self._changed.set()
        else:
            self._idle.set()
        self._loop_task = asyncio.create_task(self._watch_loop(), name='packsmith-watch')

    def notify_change(self, path: Union[str, pathlib.Path]) -> bool:
        """Record a changed file.

        Args:
            path: Absolute path, or a path relative to the watched root

        Returns:
            True if the change matched a pattern and a rebuild is scheduled
        """
        if self._state not in (WatchState.WATCHING, WatchState.REBUILDING) or self._stopping:
            return False

        path = pathlib.Path(path)
        relative = relative_posix(path if path.is_absolute() else self._root_dir / path, self._root_dir)
        if relative is None or not self._matcher.matches(relative):
            return False

        self._pending_paths.add(relative)
        if self._state == WatchState.REBUILDING and self._changed.is_set():
            self._logger.debug(f'Change to {relative} coalesced into the pending rebuild')
        else:
            self._logger.debug(f'Change detected: {relative}')
        self._idle.clear()
        self._changed.set()
        return True

    async def _watch_loop(self) -> None:
        first = self._run_initial
        while True:
            await self._changed.wait()
            if self._stopping:
                break
            if not first and self._debounce:
                await asyncio.sleep(self._debounce)
                if self._stopping:
                    break
            first = False

            self._changed.clear()
            changed = sorted(self._pending_paths)
            self._pending_paths.clear()

            self._state = WatchState.REBUILDING
            try:
                await self._rebuild(changed)
            finally:
                if not self._stopping:
                    self._state = WatchState.WATCHING
                if not self._changed.is_set():
                    self._idle.set()

    async def _rebuild(self, changed: List[str]) -> None:
        if changed:
            shown = ', '.join(changed[:5]) + (' ...' if len(changed) > 5 else '')
            self._logger.info(f"Rebuilding '{self._target}' after changes to {shown}")
        else:
            self._logger.info(f"Running initial build of '{self._target}'")

        context = self._engine.new_context()
        self._current_context = context
        try:
            result = await self._engine.run(self._target, context)
        except Exception as e:
            self._failure_count += 1
            self._logger.error(f"Rebuild of '{self._target}' could not run: {str(e)}")
            return
        finally:
            self._current_context = None
            self._rebuild_count += 1

        self._last_result = result
        if result.ok:
            self._logger.info(f"Rebuild of '{self._target}' finished; watching for changes")
        else:
            self._failure_count += 1
            self._logger.error(
                f"Rebuild of '{self._target}' failed in task '{result.failed_task}': {result.error}; "
                f"watching for changes"
            )

    async def wait_until_idle(self, timeout: Optional[float] = None) -> None:
        """Wait until no rebuild is running or pending."""
        await asyncio.wait_for(self._idle.wait(), timeout=timeout)

    async def wait_stopped(self) -> None:
        """Wait until the session has been stopped."""
        await self._stopped.wait()

    def request_stop(self) -> None:
        """Ask the session to stop; safe to call from a signal handler."""
        if self._stop_task is None and self._state not in (WatchState.IDLE, WatchState.STOPPED):
            self._logger.info('Stop requested; finishing the current rebuild')
            self._stop_task = asyncio.get_running_loop().create_task(self.shutdown())

    async def shutdown(self) -> None:
        """Stop watching.

        An in-flight rebuild is awaited; with a stop timeout it is cancelled
        once the timeout expires.
        """
        if self._state in (WatchState.IDLE, WatchState.STOPPED):
            return

        self._stopping = True
        self._changed.set()

        if self._loop_task is not None:
            try:
                if self._stop_timeout is None:
                    await asyncio.shield(self._loop_task)
                else:
                    await asyncio.wait_for(asyncio.shield(self._loop_task), timeout=self._stop_timeout)
            except asyncio.TimeoutError:
                self._logger.warning(
                    f'Rebuild still running after {self._stop_timeout} s; cancelling it'
                )
                if self._current_context is not None:
                    self._current_context.cancel()
                self._loop_task.cancel()
                try:
                    await self._loop_task
                except asyncio.CancelledError:
                    pass

        if self._observer is not None:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join)
            self._observer = None

        self._state = WatchState.STOPPED
        self._initialized = False
        self._healthy = False
        if WatchController._active is self:
            WatchController._active = None
        self._idle.set()
        self._stopped.set()
        self._logger.info(f'Watch session stopped after {self._rebuild_count} rebuilds')

    def status(self) -> Dict[str, Any]:
        status = super().status()
        status.update({
            'state': self._state.value,
            'target': self._target,
            'patterns': self.patterns,
            'rebuilds': self._rebuild_count,
            'failures': self._failure_count,
            'rebuild_pending': self.rebuild_pending,
        })
        return status
