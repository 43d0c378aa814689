"""
Central logging configuration and debug decorator.

Provides structured logging with file and console handlers, plus a decorator
for automatic function-level observability.
"""

import functools
import logging
import traceback
from pathlib import Path
from time import time
from typing import Any, Callable, TypeVar

F = TypeVar("F", bound=Callable[..., Any])

LOG_FILE = Path(__file__).resolve().parent.parent / "system_debug.log"

_FORMAT = "[%(asctime)s] [%(levelname)s] [%(module)s]: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logger = logging.getLogger("churn_analytics")
_logger.setLevel(logging.DEBUG)

# Prevent duplicate handlers on re-import (Streamlit reruns the script)
if not _logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
    _logger.addHandler(console_handler)

    file_handler = logging.FileHandler(LOG_FILE, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
    _logger.addHandler(file_handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Optional module name. Dotted module paths are reduced to their
            last component so every logger hangs off the package logger.

    Returns:
        Logger instance configured with file and console handlers.
    """
    if name:
        return logging.getLogger(f"churn_analytics.{name.rsplit('.', 1)[-1]}")
    return _logger


def set_console_level(level: int) -> None:
    """Change the console verbosity; the log file always records DEBUG."""
    for handler in _logger.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)


def debug_watcher(func: F) -> F:
    """
    Decorator that logs function entry, execution time, and exceptions.

    The full traceback of a failure goes to the file handler only (DEBUG);
    the exception is always re-raised.
    """
    logger = get_logger(func.__module__)

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        func_name = func.__name__
        start_time = time()

        args_str = ", ".join([_short(arg, 100) for arg in args[:3]])
        kwargs_str = ", ".join([f"{k}={_short(v, 50)}" for k, v in list(kwargs.items())[:3]])
        params_str = ", ".join(filter(None, [args_str, kwargs_str]))
        logger.debug(f"Starting {func_name}... ({params_str})")

        try:
            result = func(*args, **kwargs)
            elapsed = time() - start_time
            logger.debug(f"Completed {func_name} in {elapsed:.3f} seconds.")
            return result

        except Exception as e:
            elapsed = time() - start_time
            logger.error(
                f"Exception in {func_name} after {elapsed:.3f} seconds: {type(e).__name__}: {str(e)}"
            )
            logger.debug(f"Full traceback for {func_name}:\n{traceback.format_exc()}")
            raise

    return wrapper  # type: ignore[return-value]


def _short(value: Any, limit: int) -> str:
    # Batches are summarized by size
    if isinstance(value, (list, tuple)) and len(value) > 3:
        return f"<{type(value).__name__} of {len(value)}>"
    return str(value)[:limit]
