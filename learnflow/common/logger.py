"""
Application Logger

This module provides the logging setup shared by every LearnFlow component:
a console/file logger with optional JSON output and redaction of sensitive
fields before they reach a handler. ``get_app_logger`` reads the environment
at import time; the application factory reconfigures the logger from the
loaded ``LoggingConfig``.
"""

import os
import sys
import json
import time
import logging
import datetime
import functools
import inspect
from typing import Dict, Any, Iterable, Optional, Union, Callable, TypeVar

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Keys removed from structured log data before formatting
REDACTED_KEYS = frozenset({
    "authorization",
    "cookie",
    "raw_id",
    "student_id",
    "anonymization_salt",
    "api_key",
})

F = TypeVar('F', bound=Callable[..., Any])

__all__ = [
    'configure_logger',
    'redact',
    'JsonFormatter',
    'app_logger',
    'log_execution_time'
]


def redact(data: Dict[str, Any], keys: Iterable[str] = REDACTED_KEYS) -> Dict[str, Any]:
    """
    Return a copy of ``data`` without sensitive keys (recursively).

    Args:
        data: Structured log payload
        keys: Keys to drop

    Returns:
        Redacted copy of the payload
    """
    blocked = set(keys)
    cleaned = {}
    for key, value in data.items():
        if key.lower() in blocked:
            continue
        if isinstance(value, dict):
            value = redact(value, blocked)
        cleaned[key] = value
    return cleaned


class JsonFormatter(logging.Formatter):
    """
    Formatter that renders each record as a single JSON object.

    Structured context passed through ``extra={"data": {...}}`` is merged
    into the object after redaction.
    """

    def __init__(self, *, indent: Optional[int] = None):
        super().__init__()
        self.indent = indent

    def format(self, record: logging.LogRecord) -> str:
        log_object = {
            "timestamp": datetime.datetime.fromtimestamp(
                record.created, tz=datetime.timezone.utc
            ).isoformat(),
            "name": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno
        }

        if record.exc_info:
            log_object["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        data = getattr(record, 'data', None)
        if isinstance(data, dict):
            log_object.update(redact(data))

        return json.dumps(log_object, indent=self.indent, default=str)


def configure_logger(
    name: str = "learnflow",
    level: Union[str, int] = logging.INFO,
    format_string: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    use_json: bool = False,
    log_file: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    Configure a logger with console and/or file handlers.

    Args:
        name: Logger name
        level: Log level (name or numeric)
        format_string: Log format string for plain-text output
        date_format: Date format string
        use_json: Whether to emit JSON lines
        log_file: Path to a log file (no file handler when None)
        console_output: Whether to log to stdout

    Returns:
        Configured logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []

    if use_json:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(format_string, date_format)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        try:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logging.getLogger("fallback").warning(f"Could not create log file {log_file}: {e}")

    return logger


def get_app_logger() -> logging.Logger:
    """
    Get or create the application logger.

    Level, JSON output and log file are read from ``LOG_LEVEL``,
    ``LOG_JSON`` and ``LOG_FILE``.
    """
    logger = logging.getLogger("learnflow")

    if not logger.handlers:
        return configure_logger(
            name="learnflow",
            level=os.environ.get("LOG_LEVEL", "INFO"),
            use_json=os.environ.get("LOG_JSON", "false").lower() == "true",
            log_file=os.environ.get("LOG_FILE"),
            console_output=True
        )

    return logger


app_logger = get_app_logger()


def log_execution_time(logger: Optional[logging.Logger] = None) -> Callable[[F], F]:
    """
    Decorator that logs how long the wrapped function took at DEBUG level.

    Failures are logged at ERROR level and re-raised.

    Args:
        logger: Optional logger to use (defaults to the application logger)
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = time.perf_counter() - start_time
                (logger or app_logger).error(f"{func.__name__} failed after {elapsed:.3f} seconds: {e}")
                raise
            elapsed = time.perf_counter() - start_time
            (logger or app_logger).debug(f"{func.__name__} executed in {elapsed:.3f} seconds")
            return result

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = time.perf_counter() - start_time
                (logger or app_logger).error(f"{func.__name__} failed after {elapsed:.3f} seconds: {e}")
                raise
            elapsed = time.perf_counter() - start_time
            (logger or app_logger).debug(f"{func.__name__} executed in {elapsed:.3f} seconds")
            return result

        return async_wrapper if inspect.iscoroutinefunction(func) else wrapper
    return decorator
