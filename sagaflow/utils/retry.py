from __future__ import annotations

import asyncio
import random
from typing import Optional

from ..contracts import RetryPolicy

_MAX_EXPONENT = 1023


def compute_backoff(attempt: int, policy: RetryPolicy) -> float:
    """Compute the delay in milliseconds before retry ``attempt``.

    ``attempt`` counts retries from 1; the initial try is never delayed.
    """
    if policy.backoff_strategy == "exponential":
        # 2.0 ** 1024 overflows a float; any exponent that large is past max_delay.
        delay = policy.base_delay * 2.0 ** min(attempt - 1, _MAX_EXPONENT)
    elif policy.backoff_strategy == "linear":
        delay = policy.base_delay * attempt
    else:
        delay = policy.base_delay
    delay = min(delay, policy.max_delay)

    if policy.jitter_factor > 0:
        delay += delay * policy.jitter_factor * random.random()

    return min(delay, policy.max_delay)


def is_retryable(error: BaseException, policy: RetryPolicy) -> bool:
    """Decide whether ``error`` may be retried under ``policy``.

    An explicit boolean ``retryable`` attribute wins. Otherwise a string
    ``code`` equal to one of the policy patterns marks the error retryable,
    and as a last resort the patterns are matched as case-insensitive
    substrings of the exception class name and message.
    """
    explicit = getattr(error, "retryable", None)
    if isinstance(explicit, bool):
        return explicit

    patterns = [p.lower() for p in policy.retryable_errors if p]
    if not patterns:
        return False

    code = getattr(error, "code", None)
    if isinstance(code, str) and code.lower() in patterns:
        return True

    name = type(error).__name__.lower()
    message = str(error).lower()
    return any(p in message or p in name for p in patterns)


async def schedule_retry(
    attempt: int, policy: RetryPolicy, limit_ms: Optional[float] = None
) -> float:
    """Sleep for the computed backoff delay before retrying.

    ``limit_ms`` caps the sleep, e.g. to the time left before a deadline.
    Returns the delay actually slept, in milliseconds.
    """
    delay = compute_backoff(attempt, policy)
    if limit_ms is not None:
        delay = max(0.0, min(delay, limit_ms))
    await asyncio.sleep(delay / 1000)
    return delay
