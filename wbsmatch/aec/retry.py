"""Bounded retry policy for calls to the AEC Data Model service.

The policy is split into a classifier (``is_retryable``) and a delay
function so each part can be swapped out and tested on its own; tenacity
drives the loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


def is_retryable_error(error: BaseException) -> bool:
    """Return True for throttling, gateway and timeout failures."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(error, httpx.TimeoutException)


def linear_delay(base_seconds: float) -> Callable[[int], float]:
    """Delay of ``base_seconds * attempt`` after the given failed attempt."""

    def _delay(attempt: int) -> float:
        return base_seconds * attempt

    return _delay


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.info(
        "retry_scheduled",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(error),
    )


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    delay: Callable[[int], float] = linear_delay(0.35),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Invoke ``call`` up to ``attempts`` times.

    ``call`` may be any zero-argument callable returning an awaitable
    (a lambda around a coroutine call included). Only errors accepted by
    ``is_retryable`` are retried. Anything else, or the last retryable error
    once the budget is spent, propagates unchanged.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        retry=retry_if_exception(is_retryable),
        wait=lambda retry_state: delay(retry_state.attempt_number),
        sleep=sleep,
        before_sleep=_log_retry,
        reraise=True,
    )

    async def _attempt() -> T:
        return await call()

    return await retrying(_attempt)
