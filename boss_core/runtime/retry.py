"""
Retry policy configuration and decorator.

Job transitions retry when they lose a compare-and-set: the next attempt
reloads the job and the state machine decides again against its new status.
"""

from __future__ import annotations

import functools
import random
import time
from typing import Any, Callable, TypeVar

from loguru import logger
from pydantic import BaseModel

from .errors import RetryableError

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    The delay before retry N (0-indexed) is
    min(base_delay * exponential_base ** N, max_delay), plus up to 25% jitter.

    Attributes:
        max_attempts: Maximum number of attempts (including the first).
        base_delay: Initial delay in seconds between retries.
        max_delay: Maximum delay in seconds (caps backoff).
        exponential_base: Base for exponential backoff calculation.
        jitter: Whether to add random jitter to delays.
    """

    max_attempts: int = 3
    base_delay: float = 0.05
    max_delay: float = 1.0
    exponential_base: float = 2.0
    jitter: bool = True

    model_config = {"frozen": True}

    def calculate_delay(self, attempt: int) -> float:
        """Delay in seconds before the retry following `attempt` (0-indexed)."""
        delay = min(self.base_delay * (self.exponential_base**attempt), self.max_delay)

        if self.jitter:
            delay += delay * 0.25 * random.random()

        return delay


DEFAULT_RETRY_POLICY = RetryPolicy()


def with_retry(
    policy: RetryPolicy | None = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry the decorated function while it raises a RetryableError.

    Any other exception, including a terminal ServiceError, propagates on the
    first attempt. The last RetryableError is re-raised once attempts run out.

    Example:
        @with_retry(RetryPolicy(max_attempts=5))
        def approve(job_id: str) -> TransitionResult:
            ...
    """
    retry_policy = policy or DEFAULT_RETRY_POLICY

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(retry_policy.max_attempts):
                try:
                    return func(*args, **kwargs)
                except RetryableError as e:
                    if attempt + 1 >= retry_policy.max_attempts:
                        logger.warning(
                            f"[{e.debug_id}] Max retries ({retry_policy.max_attempts}) "
                            f"exceeded for {func.__name__}: {e.message_safe}"
                        )
                        raise

                    delay = retry_policy.calculate_delay(attempt)
                    logger.info(
                        f"[{e.debug_id}] Retry {attempt + 1}/{retry_policy.max_attempts} "
                        f"for {func.__name__} in {delay:.2f}s: {e.message_safe}"
                    )
                    time.sleep(delay)

            raise RuntimeError(f"Retry loop exited unexpectedly in {func.__name__}")

        return wrapper

    return decorator
