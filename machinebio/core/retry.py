"""
Exponential backoff for async calls to external services.

Only the NHTSA vehicle API is wrapped today. Callers classify failures by
raising RetryableError or NonRetryableError; anything else is a bug and
propagates on the first attempt.
"""

import asyncio
import logging
from functools import wraps
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

RETRYABLE = (asyncio.TimeoutError,)


class RetryableError(Exception):
    """
    Transient upstream failure, worth another attempt.

    Raised for connection errors, upstream 5xx responses and upstream
    rate limiting (429).
    """


class NonRetryableError(Exception):
    """
    Deterministic upstream failure. Retrying gives the same answer.

    Raised for upstream 4xx responses and payloads that cannot be parsed.
    """


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number `attempt` (1-based): base, 2*base, 4*base, ... capped."""
    return min(base_delay * 2 ** (attempt - 1), max_delay)


def async_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0
) -> Callable[[F], F]:
    """Retry an async callable on RetryableError or asyncio.TimeoutError.

    Args:
        max_attempts: Total number of calls, first one included
        base_delay: Seconds to wait before the first retry
        max_delay: Upper bound on any single wait

    The last error is re-raised once attempts run out. NonRetryableError and
    unclassified exceptions are raised straight away.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except (RetryableError, *RETRYABLE) as e:
                    if attempt >= max_attempts:
                        logger.error(
                            f"{func.__name__} failed after {attempt} attempts: {e}",
                            extra={"function": func.__name__, "attempts": attempt},
                        )
                        raise

                    delay = backoff_delay(attempt, base_delay, max_delay)
                    logger.warning(
                        f"{func.__name__} attempt {attempt}/{max_attempts} failed: {e}. "
                        f"Retrying in {delay:.2f}s",
                        extra={"function": func.__name__, "attempt": attempt, "delay_seconds": delay},
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper
    return decorator
