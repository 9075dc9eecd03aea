from __future__ import annotations

import logging
import logging.handlers
import os
import pathlib
import sys
from typing import Any, Dict, List, Optional, Union

import structlog
from pythonjsonlogger import jsonlogger

from packsmith.core.base import PacksmithManager
from packsmith.utils.exceptions import ManagerInitializationError, ManagerShutdownError


class LoggingManager(PacksmithManager):
    """Manages logging configuration for a Packsmith run.

    Configures the stdlib root logger with a console handler and, when
    enabled, a rotating file handler. With the ``json`` format the records are
    rendered by python-json-logger and structlog is configured on top of the
    stdlib logger factory so components get structured loggers.
    """

    # Mapping from string log levels to logging module constants
    LOG_LEVELS = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    def __init__(self, logging_config: Optional[Dict[str, Any]] = None) -> None:
        """Initialize the Logging Manager.

        Args:
            logging_config: The ``logging`` block of the build settings.
        """
        super().__init__(name="logging_manager")
        self._config: Dict[str, Any] = dict(logging_config or {})
        self._root_logger: Optional[logging.Logger] = None
        self._file_handler: Optional[logging.Handler] = None
        self._console_handler: Optional[logging.Handler] = None
        self._log_directory: Optional[pathlib.Path] = None
        self._enable_structlog = False
        self._handlers: List[logging.Handler] = []

    def initialize(self) -> None:
        """Initialize the Logging Manager.

        Raises:
            ManagerInitializationError: If initialization fails.
        """
        try:
            log_level = self._level(self._config.get("level", "INFO"))
            log_format = str(self._config.get("format", "text")).lower()
            file_config = self._config.get("file") or {}
            console_config = self._config.get("console") or {}

            self._root_logger = logging.getLogger()
            self._root_logger.setLevel(log_level)

            # Remove any existing handlers
            for handler in list(self._root_logger.handlers):
                self._root_logger.removeHandler(handler)

            if log_format == "json":
                self._enable_structlog = True
                formatter = self._create_json_formatter()
            else:
                formatter = logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                )

            if console_config.get("enabled", True):
                self._console_handler = logging.StreamHandler(sys.stdout)
                self._console_handler.setLevel(self._level(console_config.get("level", "INFO")))
                self._console_handler.setFormatter(formatter)
                self._root_logger.addHandler(self._console_handler)
                self._handlers.append(self._console_handler)

            if file_config.get("enabled", False):
                file_path = pathlib.Path(file_config.get("path", "logs/packsmith.log"))
                self._log_directory = file_path.parent
                os.makedirs(self._log_directory, exist_ok=True)

                rotation = file_config.get("rotation", "10 MB")
                retention = file_config.get("retention", "30 days")

                # Parse rotation (e.g., "10 MB")
                if isinstance(rotation, str) and "MB" in rotation:
                    max_bytes = int(rotation.split()[0]) * 1024 * 1024
                else:
                    max_bytes = 10 * 1024 * 1024

                # Parse retention (e.g., "30 days")
                if isinstance(retention, str) and "days" in retention:
                    backup_count = int(retention.split()[0])
                else:
                    backup_count = 30

                self._file_handler = logging.handlers.RotatingFileHandler(
                    file_path,
                    maxBytes=max_bytes,
                    backupCount=backup_count,
                    encoding="utf-8",
                )
                self._file_handler.setLevel(log_level)
                self._file_handler.setFormatter(formatter)
                self._root_logger.addHandler(self._file_handler)
                self._handlers.append(self._file_handler)

            if self._enable_structlog:
                self._configure_structlog()

            self._initialized = True
            self._healthy = True
            self._root_logger.debug("Logging Manager initialized")

        except Exception as e:
            raise ManagerInitializationError(
                f"Failed to initialize LoggingManager: {str(e)}",
                manager_name=self.name,
            ) from e

    def _level(self, value: Any) -> int:
        return self.LOG_LEVELS.get(str(value).lower(), logging.INFO)

    def _create_json_formatter(self) -> logging.Formatter:
        """Create a JSON formatter for log records.

        Returns:
            logging.Formatter: A formatter that outputs logs in JSON format.
        """
        return jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
            json_ensure_ascii=False,
        )

    def _configure_structlog(self) -> None:
        """Configure structlog for structured logging."""
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.stdlib.render_to_log_kwargs,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def get_logger(self, name: str) -> Union[logging.Logger, Any]:
        """Get a logger for a specific component.

        Args:
            name: The name of the component requesting a logger.

        Returns:
            A stdlib logger, or a structlog logger when structured logging is on.
        """
        qualified = name if name.startswith("packsmith") else f"packsmith.{name}"
        if self._initialized and self._enable_structlog:
            return structlog.get_logger(qualified)
        return logging.getLogger(qualified)

    def shutdown(self) -> None:
        """Shut down the Logging Manager.

        Raises:
            ManagerShutdownError: If shutdown fails.
        """
        if not self._initialized:
            return

        try:
            for handler in self._handlers:
                if self._root_logger:
                    self._root_logger.removeHandler(handler)
                handler.flush()
                handler.close()
            self._handlers.clear()

            if self._enable_structlog:
                structlog.reset_defaults()

            self._initialized = False
            self._healthy = False

        except Exception as e:
            raise ManagerShutdownError(
                f"Failed to shut down LoggingManager: {str(e)}",
                manager_name=self.name,
            ) from e

    def status(self) -> Dict[str, Any]:
        """Get the status of the Logging Manager.

        Returns:
            Dict[str, Any]: Status information about the Logging Manager.
        """
        status = super().status()

        if self._initialized:
            status.update(
                {
                    "log_directory": str(self._log_directory)
                    if self._log_directory
                    else None,
                    "handlers": {
                        "console": self._console_handler is not None,
                        "file": self._file_handler is not None,
                    },
                    "structured_logging": self._enable_structlog,
                }
            )

        return status
