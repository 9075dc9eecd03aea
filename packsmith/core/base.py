from __future__ import annotations
import abc
import logging
from typing import Any, Dict, Optional


class PacksmithManager(abc.ABC):
    """Base class for long-lived Packsmith components.

    Managers own a resource for the lifetime of a command (log handlers, a
    filesystem observer) and expose a uniform initialize/shutdown/status
    lifecycle.
    """

    def __init__(self, name: str) -> None:
        """Initialize the manager with a name.

        Args:
            name: The name of the manager
        """
        self._name: str = name
        self._initialized: bool = False
        self._healthy: bool = False
        self._logger: Optional[Any] = None

    @abc.abstractmethod
    def initialize(self) -> Any:
        """Acquire the manager's resources.

        Subclasses may implement this as a coroutine.

        Raises:
            ManagerInitializationError: If initialization fails
        """
        pass

    @abc.abstractmethod
    def shutdown(self) -> Any:
        """Release the manager's resources.

        Subclasses may implement this as a coroutine.

        Raises:
            ManagerShutdownError: If shutdown fails
        """
        pass

    def status(self) -> Dict[str, Any]:
        """Get the current status of the manager.

        Returns:
            Dictionary containing status information
        """
        return {
            'name': self._name,
            'initialized': self._initialized,
            'healthy': self._healthy
        }

    @property
    def name(self) -> str:
        """Get the manager's name."""
        return self._name

    @property
    def initialized(self) -> bool:
        """Check if the manager is initialized."""
        return self._initialized

    @property
    def healthy(self) -> bool:
        """Check if the manager is healthy."""
        return self._healthy


def resolve_logger(logger_manager: Any, name: str) -> Any:
    """Get a component logger from a logging manager, or the stdlib fallback.

    Args:
        logger_manager: A LoggingManager (or anything with get_logger), or None
        name: Component name

    Returns:
        Logger for the component
    """
    if logger_manager is not None:
        return logger_manager.get_logger(name)
    return logging.getLogger(f'packsmith.{name}')
