"""
Retry and timeout helpers for store round-trips.

Store calls retry transport failures with exponential backoff; anything the
database itself rejects is raised immediately. Timeouts are applied by the
callers that own a latency budget (one import row, one search).
"""

import asyncio
from typing import Any, Awaitable, Optional, TypeVar

import httpx
import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger()

T = TypeVar("T")

RETRY_ATTEMPTS = 3


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "store_call_retry",
        attempt=retry_state.attempt_number,
        error=str(error),
    )


def with_retry(attempts: int = RETRY_ATTEMPTS, min_wait: float = 0.5, max_wait: float = 4.0):
    """
    Bounded retry with exponential backoff for transport errors.

    Args:
        attempts: Total attempts including the first
        min_wait: Lower bound of the backoff in seconds
        max_wait: Upper bound of the backoff in seconds

    Returns:
        tenacity retry decorator
    """
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(httpx.TransportError),
        before_sleep=_log_retry,
        reraise=True,
    )


async def with_timeout(
    awaitable: Awaitable[T],
    seconds: float,
    default: Optional[Any] = None,
    **log_context: Any,
) -> T | Any:
    """
    Await with a deadline, returning default when it passes.

    Args:
        awaitable: Coroutine to run
        seconds: Deadline in seconds
        default: Value returned on timeout
        **log_context: Extra fields for the timeout log entry

    Returns:
        The awaited result, or default on timeout
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        logger.warning("lookup_timed_out", timeout_seconds=seconds, **log_context)
        return default
