"""
Structured logging utilities for cbshell.

This module provides structured logging with per-command context tracking and
timing information for debugging fan-out executions.
"""

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

from ..config import get_settings


class LogContext:
    """Context manager for structured logging of a timed operation."""

    def __init__(self, operation: str, **kwargs):
        self.operation = operation
        self.context = kwargs
        self.start_time = None
        self.command_id = kwargs.pop('command_id', str(uuid.uuid4())[:8])

    def __enter__(self):
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.monotonic() - self.start_time) * 1000

        if exc_type is None:
            self.log_success(duration_ms)
        else:
            self.log_error(exc_val, duration_ms)

    def log_success(self, duration_ms: float):
        """Log successful operation completion."""
        logger = get_logger(self.context.get('logger_name', __name__))
        logger.debug(
            f"Operation completed: {self.operation}",
            extra={
                'operation': self.operation,
                'command_id': self.command_id,
                'duration_ms': round(duration_ms, 2),
                'status': 'success',
                **self.context
            }
        )

    def log_error(self, error: BaseException, duration_ms: float):
        """Log operation failure."""
        logger = get_logger(self.context.get('logger_name', __name__))
        logger.warning(
            f"Operation failed: {self.operation} - {error}",
            extra={
                'operation': self.operation,
                'command_id': self.command_id,
                'duration_ms': round(duration_ms, 2),
                'status': 'error',
                'error_type': type(error).__name__,
                'error_message': str(error),
                **self.context
            }
        )


# Context variable for command tracking
command_context: ContextVar[Dict[str, Any]] = ContextVar('command_context', default={})

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message', 'asctime'
}


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        context = command_context.get()
        if context:
            log_entry['command_context'] = context

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_entry:
                log_entry[key] = value

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': self.formatException(record.exc_info)
            }

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class CommandTrackingFilter(logging.Filter):
    """Filter to add command tracking information to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add command context to log record."""
        for key, value in command_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def setup_logging(
    log_level: Optional[str] = None,
    structured: Optional[bool] = None,
    enable_command_tracking: bool = True
) -> None:
    """
    Set up shell logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Whether to use structured JSON logging
        enable_command_tracking: Whether to attach command context to records
    """
    settings = get_settings()
    if log_level is None:
        log_level = settings.effective_log_level()
    if structured is None:
        structured = settings.logging.structured

    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    if structured:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(settings.logging.log_format)
    console_handler.setFormatter(formatter)

    if enable_command_tracking:
        console_handler.addFilter(CommandTrackingFilter())

    root_logger.addHandler(console_handler)

    configure_logger_levels()


def configure_logger_levels():
    """Configure specific logger levels to reduce noise."""
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def set_command_context(**kwargs):
    """
    Set command context for logging.

    Args:
        **kwargs: Context key-value pairs
    """
    current_context = dict(command_context.get())
    current_context.update(kwargs)
    command_context.set(current_context)


def clear_command_context():
    """Clear the current command context."""
    command_context.set({})


def get_command_context() -> Dict[str, Any]:
    """Get the current command context."""
    return command_context.get()
