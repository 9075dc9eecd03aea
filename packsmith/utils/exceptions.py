from __future__ import annotations

from typing import Any, List, Optional, Sequence


class PacksmithError(Exception):
    """Base exception for all Packsmith errors."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            **kwargs: Additional error information
        """
        details = dict(kwargs.pop("details", None) or {})
        details.update(kwargs)
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.message}"


class ConfigurationError(PacksmithError):
    """Exception raised for configuration-related errors."""

    def __init__(
            self, message: str, *, config_key: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a ConfigurationError.

        Args:
            message: A descriptive error message.
            config_key: The configuration key that caused the error.
            **kwargs: Additional keyword arguments to pass to the parent Exception.
        """
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details=details, **kwargs)
        self.config_key = config_key


class ManagerError(PacksmithError):
    """Base exception for manager-related errors."""

    def __init__(self, message: str, manager_name: Optional[str] = None, **kwargs: Any) -> None:
        """
        Initialize manager error.

        Args:
            message: Error message
            manager_name: Name of the affected manager
            **kwargs: Additional error information
        """
        super().__init__(message, manager_name=manager_name, **kwargs)
        self.manager_name = manager_name

    def __str__(self) -> str:
        """String representation."""
        if self.manager_name:
            return f"{self.message} (Manager: {self.manager_name})"
        return super().__str__()


class ManagerInitializationError(ManagerError):
    """Exception raised when a manager fails to initialize."""

    pass


class ManagerShutdownError(ManagerError):
    """Exception raised when a manager fails to shut down cleanly."""

    pass


class TaskError(PacksmithError):
    """Error related to task registration or execution."""

    def __init__(self, message: str, task_name: Optional[str] = None, **kwargs: Any) -> None:
        """
        Initialize task error.

        Args:
            message: Error message
            task_name: Name of the affected task
            **kwargs: Additional error information
        """
        super().__init__(message, task_name=task_name, **kwargs)
        self.task_name = task_name

    def __str__(self) -> str:
        """String representation."""
        if self.task_name:
            return f"{self.message} (Task: {self.task_name})"
        return super().__str__()


class UnknownTaskError(TaskError):
    """Raised when a task name is not registered."""

    def __init__(self, task_name: str, **kwargs: Any) -> None:
        super().__init__(f"Unknown task '{task_name}'", task_name=task_name, **kwargs)

    def __str__(self) -> str:
        return self.message


class CyclicTaskError(TaskError):
    """Raised when a task is, directly or transitively, its own dependency."""

    def __init__(self, cycle: Sequence[str], **kwargs: Any) -> None:
        """
        Initialize cyclic task error.

        Args:
            cycle: Task names forming the cycle, with the first name repeated last
            **kwargs: Additional error information
        """
        self.cycle: List[str] = list(cycle)
        super().__init__(
            f"Circular task dependency detected: {' -> '.join(self.cycle)}",
            task_name=self.cycle[0] if self.cycle else None,
            cycle=self.cycle,
            **kwargs
        )

    def __str__(self) -> str:
        return self.message


class ParallelTaskError(TaskError):
    """Composite failure of a parallel task.

    Names the first failing child by completion order and counts how many of
    its siblings also failed.
    """

    def __init__(
            self,
            task_name: str,
            failed_task: str,
            cause: Optional[BaseException],
            sibling_failures: int = 0,
            **kwargs: Any
    ) -> None:
        message = f"Parallel task '{task_name}' failed: '{failed_task}' failed"
        if cause is not None:
            message += f" ({cause})"
        if sibling_failures:
            plural = "s" if sibling_failures != 1 else ""
            message += f"; {sibling_failures} other task{plural} also failed"
        super().__init__(
            message,
            task_name=task_name,
            failed_task=failed_task,
            sibling_failures=sibling_failures,
            **kwargs
        )
        self.failed_task = failed_task
        self.cause = cause
        self.sibling_failures = sibling_failures

    def __str__(self) -> str:
        return self.message


class TaskCancelledError(TaskError):
    """Raised for composite children skipped after the invocation was cancelled."""

    pass


class MissingInputError(PacksmithError):
    """Exception raised when a mandatory input path does not exist."""

    def __init__(self, message: str, *, path: Optional[str] = None, **kwargs: Any) -> None:
        """Initialize a MissingInputError.

        Args:
            message: A descriptive error message.
            path: The path that was expected to exist.
            **kwargs: Additional keyword arguments to pass to the parent Exception.
        """
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path
        super().__init__(message, details=details, **kwargs)
        self.path = path


class FileError(PacksmithError):
    """Exception raised for copy, write and archive failures."""

    def __init__(
            self, message: str, *, file_path: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a FileError.

        Args:
            message: A descriptive error message.
            file_path: The path of the file that caused the error.
            **kwargs: Additional keyword arguments to pass to the parent Exception.
        """
        details = kwargs.pop("details", {})
        if file_path:
            details["file_path"] = file_path
        super().__init__(message, details=details, **kwargs)
        self.file_path = file_path


class CollaboratorError(PacksmithError):
    """Exception raised when an external tool (compiler, bundler, linter) fails."""

    def __init__(
            self,
            message: str,
            *,
            tool: Optional[str] = None,
            returncode: Optional[int] = None,
            output: Optional[str] = None,
            **kwargs: Any
    ) -> None:
        """
        Initialize CollaboratorError.

        Args:
            message: Error message
            tool: Name of the external tool
            returncode: Exit status of the tool process, if it ran
            output: Tail of the tool's combined output
            **kwargs: Additional keyword arguments
        """
        details = kwargs.pop("details", {})
        if tool:
            details["tool"] = tool
        if returncode is not None:
            details["returncode"] = returncode
        super().__init__(message, details=details, **kwargs)
        self.tool = tool
        self.returncode = returncode
        self.output = output


class WatchError(PacksmithError):
    """Exception raised for watch session errors."""

    pass
