"""Retry-with-backoff for outbound vendor calls.

Wraps a coroutine factory in tenacity's AsyncRetrying:
- HTTP 429: wait the server's Retry-After (seconds or HTTP-date), falling
  back to base_delay * 2 ** (attempt - 1); every wait is capped at max_delay
- Other HTTP/transport failures: retried immediately
- Budget exhausted: the last failure is re-raised unchanged

Callers can narrow which failures are retried with retry_on.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (httpx.HTTPStatusError, httpx.TransportError)


def is_retryable(exc: BaseException) -> bool:
    """Default retry predicate: any HTTP status or transport failure."""
    return isinstance(exc, RETRYABLE_ERRORS)


def is_rate_limited(exc: BaseException | None) -> bool:
    """True when exc is an HTTP 429 response error."""
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 429


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header into seconds.

    Accepts delta-seconds ("120", "1.5") or an HTTP-date. Returns None when
    the header is missing or unparseable.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


class RetryAfterWait(wait_base):
    """Tenacity wait strategy honouring Retry-After on rate-limited responses."""

    def __init__(self, base_delay: float, max_delay: float) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay

    def __call__(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if not is_rate_limited(exc):
            return 0.0

        suggested = parse_retry_after(exc.response.headers.get("retry-after"))
        if suggested is None:
            suggested = self.base_delay * 2 ** (retry_state.attempt_number - 1)
        return min(suggested, self.max_delay)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
    if is_rate_limited(exc):
        logger.warning(
            "retry.rate_limited",
            attempt=retry_state.attempt_number,
            wait_seconds=wait,
            url=str(exc.request.url),
        )
    else:
        logger.warning(
            "retry.request_failed",
            attempt=retry_state.attempt_number,
            error=str(exc),
        )


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 5,
    base_delay: float = 5.0,
    max_delay: float = 60.0,
    retry_on: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call fn until it succeeds or max_attempts is exhausted.

    Args:
        fn: Zero-argument callable returning an awaitable; called once per
            attempt. Lambdas and partials work as well as coroutine functions.
        max_attempts: Total number of attempts (not retries).
        base_delay: Exponential base in seconds for 429 waits without Retry-After.
        max_delay: Upper bound in seconds for any single wait.
        retry_on: Predicate deciding whether a failure is retried.
        sleep: Awaitable sleep used between attempts.

    Returns:
        Whatever fn returns on its first successful attempt.

    Raises:
        httpx.HTTPStatusError | httpx.TransportError: The last failure once
            the budget is exhausted. Failures rejected by retry_on propagate
            immediately.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=RetryAfterWait(base_delay, max_delay),
        retry=retry_if_exception(retry_on),
        before_sleep=_log_before_sleep,
        sleep=sleep,
        reraise=True,
    )

    # tenacity only awaits callables it recognises as coroutine functions
    async def attempt() -> T:
        return await fn()

    return await retrying(attempt)
