"""
Async retry utility with exponential backoff

Wraps read-only RPC and explorer calls that can fail transiently. The
deployment transaction itself is never retried: resending could double
spend gas, and the idempotence check already covers re-runs.

Design Notes:
- Exponential backoff with optional jitter
- Retry conditions are exception types; anything else propagates at once
- Transport failures (OSError covers requests/urllib3 connection errors,
  TimeoutError) are retried by default
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

T = TypeVar('T')
LOG = logging.getLogger(__name__)

DEFAULT_RETRY_ON: Tuple[Type[Exception], ...] = (OSError, TimeoutError)


class RetryState:
    """Tracks retry state for a single operation"""

    def __init__(
        self,
        max_retries: int,
        base_delay: float,
        max_delay: float,
        exponential_base: float,
        jitter: bool
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.attempt = 0
        self.total_delay = 0.0
        self.last_exception: Optional[Exception] = None

    def should_retry(self) -> bool:
        """Check if we should retry based on attempt count"""
        return self.attempt < self.max_retries

    def next_delay(self) -> float:
        """Calculate next delay with exponential backoff and jitter"""
        delay = self.base_delay * (self.exponential_base ** self.attempt)

        if self.jitter:
            jitter_range = delay * 0.25
            delay += random.uniform(-jitter_range, jitter_range)

        delay = min(delay, self.max_delay)
        self.total_delay += delay
        return delay

    def record_attempt(self, exception: Exception) -> None:
        """Record a failed attempt"""
        self.attempt += 1
        self.last_exception = exception


class AsyncRetry:
    """
    Configurable async retry mechanism with exponential backoff.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retry_on: Optional[Tuple[Type[Exception], ...]] = None
    ):
        """
        Initialize retry configuration.

        Args:
            max_retries: Maximum number of attempts in total
            base_delay: Initial delay in seconds before first retry
            max_delay: Maximum delay limit in seconds
            exponential_base: Multiplier for exponential backoff
            jitter: Add random jitter to prevent synchronized retries
            retry_on: Exception types that trigger a retry
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = retry_on or DEFAULT_RETRY_ON

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args,
        **kwargs
    ) -> T:
        """
        Execute an async function with retry logic.

        Raises:
            The last exception if all attempts are exhausted
        """
        state = RetryState(
            self.max_retries,
            self.base_delay,
            self.max_delay,
            self.exponential_base,
            self.jitter
        )

        while True:
            try:
                result = await func(*args, **kwargs)

                if state.attempt > 0:
                    LOG.info(
                        f"Operation succeeded after {state.attempt} retries "
                        f"(total delay: {state.total_delay:.2f}s)"
                    )
                return result

            except Exception as e:
                if not isinstance(e, self.retry_on):
                    raise

                state.record_attempt(e)

                if not state.should_retry():
                    LOG.error(
                        f"Operation failed after {state.attempt} attempts. "
                        f"Last error: {type(e).__name__}: {e}"
                    )
                    raise

                delay = state.next_delay()
                LOG.warning(
                    f"Attempt {state.attempt}/{state.max_retries} failed: "
                    f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                )
                await asyncio.sleep(delay)

