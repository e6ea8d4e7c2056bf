"""Retry policy for transient dependency failures (network, 429, 5xx)."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from libs.common.errors import CircuitOpenError, OperationTimeoutError, TransientExternalError
from libs.common.settings import Settings

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 529})


def _status_code(error: BaseException):
    status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def is_transient_error(error: BaseException) -> bool:
    """Return True for errors worth retrying.

    An open circuit is never transient: retrying it would defeat the breaker.
    """
    if isinstance(error, CircuitOpenError):
        return False
    if isinstance(error, (TransientExternalError, OperationTimeoutError, asyncio.TimeoutError)):
        return True
    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return True
    status = _status_code(error)
    if status is not None:
        return status in TRANSIENT_STATUS_CODES
    # openai.APIConnectionError / APITimeoutError carry no status code
    return type(error).__name__ in {"APIConnectionError", "APITimeoutError"}


def _log_before_sleep(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Transient error, retrying",
        attempt=retry_state.attempt_number,
        error=str(error),
        error_type=type(error).__name__ if error else None,
        sleep_s=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
    )


def transient_retry(
    *,
    max_attempts: int = 3,
    initial_wait_s: float = 0.5,
    max_wait_s: float = 8.0,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with exponential backoff and jitter."""
    return AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_jitter(initial=initial_wait_s, max=max_wait_s, jitter=initial_wait_s),
        retry=retry_if_exception(is_transient_error),
        before_sleep=_log_before_sleep,
    )


def retry_from_settings(settings: Settings) -> AsyncRetrying:
    return transient_retry(
        max_attempts=settings.retry_max_attempts,
        initial_wait_s=settings.retry_initial_wait_s,
        max_wait_s=settings.retry_max_wait_s,
    )


async def run_with_retry(fn: Callable[[], Awaitable[T]], *, retrying: Optional[AsyncRetrying]) -> T:
    """Await ``fn`` under the given retry policy.

    The policy is copied per call so concurrent callers do not share
    attempt state. Without a policy ``fn`` is awaited once.
    """
    if retrying is None:
        return await fn()
    async for attempt in retrying.copy():
        with attempt:
            return await fn()
    raise RuntimeError("Retry loop exited unexpectedly")
