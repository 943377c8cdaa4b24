"""
Structured logging configuration for the TaskBell client.

Provides JSON-formatted logging with file rotation for production
environments and human-readable console logging for development.

Loggers:
- registry: HTTP calls to the notification registry
- push: Push permission and subscription lifecycle
- realtime: WebSocket connection, channel and event dispatch
- store: Notification history persistence
- bridge: Out-of-band push delivery
- cli: Command-line interface and daemon runner
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional


LOGGER_NAMESPACE = "taskbell"
LOGGER_NAMES = ["registry", "push", "realtime", "store", "bridge", "cli"]

# Attributes present on every LogRecord; anything else came from extra={...}
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs logs as JSON for structured logging.

    Each log record includes:
    - timestamp: ISO 8601 format
    - level: Log level (INFO, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - module, function, line: Call site
    - Additional fields: exception info, extra fields
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields passed as logger.info("msg", extra={...})
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable formatter for console output in development.

    Format: [TIMESTAMP] LEVEL - LOGGER - MESSAGE
    Example: [2026-10-19 10:30:45] INFO - taskbell.realtime - Subscribed to private-user.42
    """

    def __init__(self):
        super().__init__(
            fmt="[%(asctime)s] %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )


def _get_log_level(level: Optional[str] = None) -> int:
    """
    Get log level from the argument or environment variable.

    Environment Variables:
        TASKBELL_LOG_LEVEL: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
                            Defaults to INFO
    """
    level_str = (level or os.environ.get("TASKBELL_LOG_LEVEL", "INFO")).upper()
    return getattr(logging, level_str, logging.INFO)


def _get_log_dir() -> Path:
    """
    Get log directory path from environment variable or use default.

    Environment Variables:
        TASKBELL_LOG_DIR: Custom log directory path
                          Defaults to ./logs (relative to CWD)
    """
    log_dir = Path(os.environ.get("TASKBELL_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _is_production() -> bool:
    """
    Check if running in production environment.

    Environment Variables:
        TASKBELL_ENV: Environment name (production, development, test)
                      Defaults to development
    """
    return os.environ.get("TASKBELL_ENV", "development").lower() == "production"


def configure_logging(level: Optional[str] = None) -> Dict[str, logging.Logger]:
    """
    Configure structured logging for the TaskBell client.

    Behavior:
    - Production (TASKBELL_ENV=production):
      * JSON-formatted logs to files with rotation
      * Separate files per logger: realtime.log, store.log, ...
      * File rotation: 10MB max size, 5 backup files

    - Development (default):
      * Human-readable console output on stderr
      * No file logging

    Args:
        level: Optional level overriding TASKBELL_LOG_LEVEL

    Returns:
        Dictionary mapping logger names to configured Logger instances
    """
    log_level = _get_log_level(level)
    is_prod = _is_production()
    log_dir = _get_log_dir() if is_prod else None

    loggers = {}
    for logger_name in LOGGER_NAMES:
        logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{logger_name}")
        logger.setLevel(log_level)
        logger.propagate = False
        logger.handlers.clear()

        if is_prod:
            file_handler = logging.handlers.RotatingFileHandler(
                log_dir / f"{logger_name}.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding="utf-8"
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(JSONFormatter())
            logger.addHandler(file_handler)
        else:
            # stderr keeps CLI output on stdout clean
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(log_level)
            console_handler.setFormatter(ConsoleFormatter())
            logger.addHandler(console_handler)

        loggers[logger_name] = logger

    return loggers


# Singleton logger instances
_loggers: Optional[Dict[str, logging.Logger]] = None


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger by name.

    Args:
        name: Logger name (registry, push, realtime, store, bridge, cli)

    Returns:
        Configured Logger instance

    Raises:
        ValueError: If logger name is not recognized

    Example:
        >>> logger = get_logger("store")
        >>> logger.info("History loaded", extra={"records": 12})
    """
    global _loggers

    if _loggers is None:
        _loggers = configure_logging()

    if name not in _loggers:
        raise ValueError(
            f"Unknown logger name: {name}. "
            f"Valid names: {', '.join(_loggers.keys())}"
        )

    return _loggers[name]


def init_logging(level: Optional[str] = None) -> Dict[str, logging.Logger]:
    """
    Initialize logging configuration (called on daemon/CLI startup).

    Reconfigures the existing logger objects in place, so module-level
    loggers obtained earlier through get_logger() pick up the new level.

    Args:
        level: Optional level overriding TASKBELL_LOG_LEVEL

    Returns:
        Dictionary of configured loggers
    """
    global _loggers
    _loggers = configure_logging(level)
    return _loggers
