"""
Centralized logging configuration.

All modules should use `get_logger(__name__)` to obtain a logger instance.
`instrumented` wraps a data-access call with timing and failure logging.
"""

import functools
import logging
import sys
import time

from soilstore.config import config
from soilstore.errors import NON_RETRYABLE

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_initialized = False


def _init_logging() -> None:
    """Configure the root logger once."""
    global _initialized
    if _initialized:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
    root = logging.getLogger()
    root.setLevel(config.log_level)
    root.addHandler(handler)
    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a named logger instance.

    Args:
        name: Usually ``__name__`` of the calling module.

    Returns:
        A configured logging.Logger.
    """
    _init_logging()
    return logging.getLogger(name)


def elapsed_ms(started: float) -> int:
    """Milliseconds since a time.perf_counter() reading."""
    return int((time.perf_counter() - started) * 1000)


def instrumented(operation: str):
    """
    Decorator that logs the duration and outcome of a store operation.

    The first positional argument after ``self`` is reported as the target
    when it is a string (report ids); filters and payloads are not logged.

    Usage:
        @instrumented("find_by_id")
        def find_by_id(self, report_id): ...
    """

    def decorator(func):
        logger = get_logger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            target = args[1] if len(args) > 1 and isinstance(args[1], str) else None
            extra = {"operation": operation, "target": target}
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except NON_RETRYABLE as e:
                extra["duration_ms"] = elapsed_ms(started)
                logger.warning(
                    f"{operation} rejected (target={target}): {e}", extra=extra
                )
                raise
            except Exception as e:
                extra["duration_ms"] = elapsed_ms(started)
                logger.error(
                    f"{operation} failed (target={target}) after "
                    f"{extra['duration_ms']}ms: {e!r}",
                    exc_info=True,
                    extra=extra,
                )
                raise
            extra["duration_ms"] = elapsed_ms(started)
            logger.debug(
                f"{operation} completed in {extra['duration_ms']}ms", extra=extra
            )
            return result

        return wrapper

    return decorator
