"""
Bounded exponential-backoff retry for data operations.

The executor does not inspect error kinds unless given an ``is_retryable``
predicate. On exhaustion it re-raises the last error the operation raised.
"""

import time
from typing import Callable, TypeVar

from soilstore.config import config
from soilstore.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _always(exc: BaseException) -> bool:
    return True


class RetryExecutor:
    """
    Runs an operation, retrying failures with exponential backoff.

    The wait after failed attempt k is min(base_delay_ms * 2**k, max_delay_ms),
    so with the defaults: 2000ms after attempt 1, 4000ms after attempt 2.
    """

    def __init__(
        self,
        max_attempts: int = None,
        base_delay_ms: int = None,
        max_delay_ms: int = None,
        sleep: Callable[[float], None] = time.sleep,
        is_retryable: Callable[[BaseException], bool] = None,
    ):
        self.max_attempts = (
            config.retry_max_attempts if max_attempts is None else max_attempts
        )
        self.base_delay_ms = (
            config.retry_base_delay_ms if base_delay_ms is None else base_delay_ms
        )
        self.max_delay_ms = (
            config.retry_max_delay_ms if max_delay_ms is None else max_delay_ms
        )
        self.sleep = sleep
        self.is_retryable = is_retryable or _always

    def backoff_ms(self, attempt: int) -> int:
        """Delay in milliseconds after the given failed attempt."""
        return min(self.base_delay_ms * 2**attempt, self.max_delay_ms)

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        max_attempts: int = None,
        description: str = "operation",
    ) -> T:
        """
        Run ``operation`` until it succeeds or the attempt bound is reached.

        Args:
            operation: Zero-argument callable to run
            max_attempts: Attempt bound, defaults to the executor's bound
            description: Name used in log messages

        Returns:
            The first successful result

        Raises:
            The operation's own exception from the final attempt, or
            immediately when ``is_retryable`` rejects it.
        """
        bound = self.max_attempts if max_attempts is None else max_attempts
        if bound < 1:
            raise ValueError(f"max_attempts must be >= 1, got {bound}")

        attempt = 1
        while True:
            try:
                return operation()
            except Exception as e:
                if not self.is_retryable(e):
                    raise
                if attempt >= bound:
                    logger.error(
                        f"{description} failed after {attempt} of {bound} attempts: {e!r}",
                        extra={"operation": description, "attempts": attempt},
                    )
                    raise

                delay_ms = self.backoff_ms(attempt)
                logger.warning(
                    f"{description} failed, attempt {attempt} of {bound}; "
                    f"retrying in {delay_ms}ms: {e!r}",
                    extra={"operation": description, "attempts": attempt},
                )
                self.sleep(delay_ms / 1000)
                attempt += 1
