from packsmith.core.config_manager import BuildSettings, load_settings
from packsmith.core.engine import CompositionEngine
from packsmith.core.logging_manager import LoggingManager
from packsmith.core.runners import ExecutionContext, TaskResult, TaskStatus, parallel, series
from packsmith.core.task_registry import TaskRegistry
from packsmith.core.watch import WatchController, WatchState

__all__ = [
    'BuildSettings',
    'CompositionEngine',
    'ExecutionContext',
    'LoggingManager',
    'TaskRegistry',
    'TaskResult',
    'TaskStatus',
    'WatchController',
    'WatchState',
    'load_settings',
    'parallel',
    'series',
]
