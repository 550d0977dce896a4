"""Retry policy for setup steps.

Only setup failures are retried by harborqa. Test failures are reported
as-is; any retry of a request is the test adapter's own business.

Example:
    >>> policy = RetryPolicy(RetryConfig(max_attempts=3, delay=2.0))
    >>> policy.execute(lambda: start_units(), token=token)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from harborqa.errors.base import HarborQAError, OperationCancelledError, RetryExhaustedError

if TYPE_CHECKING:
    from harborqa.core.cancellation import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Total number of attempts, including the first one.
        delay: Fixed delay between attempts, in seconds.
        retryable_exceptions: Exception types considered for retry.
        on_retry: Callback invoked before each retry with
            (attempt, error, delay).
    """

    max_attempts: int = 3
    delay: float = 2.0
    retryable_exceptions: tuple[type[BaseException], ...] = (Exception,)
    on_retry: Callable[[int, BaseException, float], None] | None = None

    @classmethod
    def from_settings(cls, max_retries: int, retry_delay: float, **kwargs: Any) -> RetryConfig:
        """Build a config from the user-facing "retries" count.

        ``max_retries`` counts attempts, so 0 and 1 both mean "try once".
        """
        return cls(max_attempts=max(1, max_retries), delay=max(0.0, retry_delay), **kwargs)


class RetryPolicy:
    """Fixed-delay retry policy that honours cancellation."""

    def __init__(self, config: RetryConfig | None = None) -> None:
        self.config = config or RetryConfig()

    def should_retry(self, exception: BaseException, attempt: int) -> bool:
        """Determine if the operation should be retried.

        ``attempt`` is 1-based: the number of attempts already made.
        """
        if attempt >= self.config.max_attempts:
            return False

        if isinstance(exception, OperationCancelledError):
            return False

        if isinstance(exception, HarborQAError) and not exception.recoverable:
            return False

        return isinstance(exception, self.config.retryable_exceptions)

    def execute(self, operation: Callable[[], T], token: CancellationToken | None = None) -> T:
        """Execute an operation with retry logic.

        Raises:
            RetryExhaustedError: every attempt failed with a retryable error.
            OperationCancelledError: the token was cancelled while waiting.
            Exception: the first non-retryable error, unchanged.
        """
        last_error: BaseException | None = None

        for attempt in range(1, self.config.max_attempts + 1):
            if token is not None:
                token.raise_if_cancelled()
            try:
                return operation()
            except Exception as e:
                last_error = e

                if not self.should_retry(e, attempt):
                    if attempt > 1 and attempt >= self.config.max_attempts and self._is_retryable(e):
                        break
                    raise

                delay = self.config.delay
                if self.config.on_retry:
                    self.config.on_retry(attempt, e, delay)

                logger.warning(
                    f"Retry {attempt}/{self.config.max_attempts - 1} "
                    f"after {delay:.2f}s due to: {e}"
                )
                self._sleep(delay, token)

        raise RetryExhaustedError(
            attempts=self.config.max_attempts,
            last_error=last_error,
        )

    def _is_retryable(self, exception: BaseException) -> bool:
        if isinstance(exception, OperationCancelledError):
            return False
        if isinstance(exception, HarborQAError) and not exception.recoverable:
            return False
        return isinstance(exception, self.config.retryable_exceptions)

    @staticmethod
    def _sleep(delay: float, token: CancellationToken | None) -> None:
        if delay <= 0:
            return
        if token is None:
            time.sleep(delay)
            return
        if token.wait(delay):
            raise OperationCancelledError("cancelled while waiting to retry")
