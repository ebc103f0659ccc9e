"""
Mock LLM Retry Helper

Exponential backoff retry loop for async operations, with cancellation.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .exceptions import RetryCancelledError

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """
    Delay after the given zero-based failed attempt.

    Returns base_delay * 2**attempt, capped at max_delay.
    """
    return min(base_delay * (2 ** attempt), max_delay)


async def retry_with_backoff(
    attempts: int,
    base_delay: float,
    max_delay: float,
    operation: Callable[[], Awaitable[None]],
    cancel: Optional[asyncio.Event] = None
) -> None:
    """
    Run an async operation until it succeeds or attempts run out.

    Cancellation is checked once at the top of every iteration. A backoff
    sleep ends early when ``cancel`` is set, and the following iteration then
    reports it.

    Args:
        attempts: Maximum number of attempts (>= 1)
        base_delay: First backoff delay in seconds
        max_delay: Upper bound for any single backoff delay in seconds
        operation: Coroutine function that raises on failure
        cancel: Optional event that abandons the remaining attempts once set

    Raises:
        RetryCancelledError: If ``cancel`` was set before an attempt
        Exception: The most recent failure when every attempt failed
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")

    last_error: Optional[BaseException] = None

    for attempt in range(attempts):
        if cancel is not None and cancel.is_set():
            raise RetryCancelledError(f"cancelled after {attempt} attempt(s)") from last_error

        try:
            await operation()
            return
        except Exception as e:
            last_error = e

        if attempt == attempts - 1:
            break

        delay = backoff_delay(attempt, base_delay, max_delay)
        logger.warning(f"Attempt {attempt + 1}/{attempts} failed ({last_error}), retrying in {delay:.2f}s")
        await _sleep(delay, cancel)

    raise last_error


async def _sleep(delay: float, cancel: Optional[asyncio.Event]) -> None:
    """Sleep for ``delay`` seconds, returning early if ``cancel`` is set."""
    if cancel is None:
        await asyncio.sleep(delay)
        return

    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass
