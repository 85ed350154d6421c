"""
Retry with exponential backoff for store calls.

The engine is synchronous (it runs in a worker thread per request), so the
retry loop sleeps with time.sleep.
"""
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from analytics.exceptions import StoreConnectionError
from analytics.observability import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 0.5  # seconds
    max_delay: float = 10.0  # seconds
    exponential_base: float = 2.0
    jitter: float = 0.1  # random jitter factor

    @classmethod
    def from_fetch_config(cls, fetch_config) -> "RetryConfig":
        return cls(
            max_attempts=fetch_config.retry_attempts,
            base_delay=fetch_config.retry_base_delay,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given (1-based) failed attempt, without jitter."""
        return min(
            self.base_delay * (self.exponential_base ** (attempt - 1)),
            self.max_delay
        )


def retry_call(
    func: Callable[..., T],
    *args,
    config: Optional[RetryConfig] = None,
    retryable_exceptions: tuple = (StoreConnectionError,),
    sleep: Callable[[float], None] = time.sleep,
    **kwargs
) -> T:
    """
    Call func, retrying transient failures with exponential backoff.

    Args:
        func: Function to execute
        *args: Positional arguments for func
        config: Retry configuration
        retryable_exceptions: Exceptions to retry on; anything else propagates at once
        sleep: Sleep function (injected by tests)
        **kwargs: Keyword arguments for func

    Returns:
        Result of func

    Raises:
        Last exception if all retries fail
    """
    config = config or RetryConfig()
    if config.max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, config.max_attempts + 1):
        try:
            return func(*args, **kwargs)
        except retryable_exceptions as e:
            if attempt == config.max_attempts:
                logger.error(
                    f"All {config.max_attempts} retry attempts failed",
                    extra={"error": str(e)}
                )
                raise

            delay = config.delay_for(attempt)
            delay += delay * config.jitter * random.random()

            logger.warning(
                f"Attempt {attempt} failed, retrying in {delay:.2f}s",
                extra={"attempt": attempt, "delay": delay, "error": str(e)}
            )
            sleep(delay)

