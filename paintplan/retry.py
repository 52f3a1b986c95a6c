"""
retry.py — Exponential backoff for rate-limited model calls.

Only the awaiting coroutine sleeps; other generation calls running on the
same loop keep going. Default schedule: 5s, 10s, 20s, 40s, then give up.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from .errors import classify_error, is_rate_limit_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 4
INITIAL_DELAY = 5.0  # seconds

Sleep = Callable[[float], Awaitable[None]]


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    context: str,
    max_retries: int = MAX_RETRIES,
    initial_delay: float = INITIAL_DELAY,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Await operation(), retrying on rate-limit errors with doubling delays.

    Args:
        operation: zero-arg coroutine factory, called once per attempt
        context: operation name used in log lines and in the user message
        max_retries: how many delayed retries follow the first attempt
        initial_delay: first delay in seconds, doubled after every retry
        sleep: awaitable sleep, injectable for tests

    Raises:
        QuotaExceededError when the rate limit outlasts the retry budget,
        BackendUnreachableError / CommunicationError for anything else.
    """
    delay = initial_delay
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if is_rate_limit_error(e) and attempt < max_retries:
                attempt += 1
                logger.warning(
                    f"Rate limit during '{context}', retrying in {delay:g}s "
                    f"({attempt}/{max_retries})"
                )
                await sleep(delay)
                delay *= 2
                continue
            logger.error(f"'{context}' failed: {e}")
            raise classify_error(e, context) from e
