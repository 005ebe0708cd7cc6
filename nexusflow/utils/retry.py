from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from ..contracts import RetryPolicy
from ..errors import ActivityTimeout, NexusflowError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int, policy: RetryPolicy) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, policy.backoff_base, policy.backoff_jitter)
    await asyncio.sleep(delay)


def is_retryable(exc: BaseException) -> bool:
    """Typed errors decide for themselves; anything unexpected is transient."""
    if isinstance(exc, NexusflowError):
        return exc.retryable
    return True


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "operation",
    on_attempt: Optional[Callable[[int], None]] = None,
) -> T:
    """Run ``operation`` under ``policy``.

    Each attempt is bounded by ``policy.per_attempt_timeout``; a timeout
    surfaces as :class:`ActivityTimeout`. Retryable failures are retried
    with exponential backoff until ``policy.max_attempts`` is exhausted,
    then the last error is raised unchanged.
    """
    attempt = 0
    while True:
        attempt += 1
        if on_attempt is not None:
            on_attempt(attempt)
        try:
            return await asyncio.wait_for(operation(), timeout=policy.per_attempt_timeout)
        except asyncio.TimeoutError:
            error: Exception = ActivityTimeout(
                f"{label} timed out after {policy.per_attempt_timeout}s"
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = exc

        if attempt >= policy.max_attempts or not is_retryable(error):
            if attempt > 1:
                logger.error(f"{label} failed after {attempt} attempts: {error}")
            raise error

        logger.warning(
            f"{label} failed on attempt {attempt}/{policy.max_attempts}: {error}; retrying"
        )
        await schedule_retry(attempt, policy)
