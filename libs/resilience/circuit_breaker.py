"""Async circuit breaker for outbound dependency calls.

- Tracks consecutive failures per dependency (LLM, vector store, web search).
- Opens the circuit once ``failure_threshold`` consecutive failures occur.
- While open, calls fail fast with :class:`CircuitOpenError`.
- After ``reset_timeout_s`` the breaker moves to HALF_OPEN and admits one
  trial call at a time; ``success_threshold`` consecutive successes close it,
  any failure re-opens it.
- Every call is raced against ``request_timeout_s``; a timeout is a failure.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Literal, Optional, TypeVar, Union

import structlog

from libs.common.errors import CircuitOpenError, OperationTimeoutError
from libs.common.settings import BreakerConfig, Settings

# Indirection so tests can monkeypatch the clock without affecting other modules.
from time import monotonic as time_monotonic  # noqa: E402

logger = structlog.get_logger(__name__)

T = TypeVar("T")

CircuitState = Literal["closed", "open", "half-open"]


@dataclass(frozen=True)
class CircuitBreakerMetrics:
    """Point-in-time view of a breaker."""

    state: CircuitState
    consecutive_failures: int
    total_requests: int
    total_failures: int
    total_timeouts: int
    total_rejections: int
    last_failure_time: Optional[float]


class CircuitBreaker:
    """Circuit breaker tracking failures for a single logical dependency."""

    def __init__(
        self,
        *,
        name: str,
        failure_threshold: int = 5,
        reset_timeout_s: float = 30.0,
        request_timeout_s: float = 10.0,
        success_threshold: int = 2,
        should_record_failure: Optional[Callable[[BaseException], bool]] = None,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if success_threshold < 1:
            raise ValueError("success_threshold must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout_s = reset_timeout_s
        self.request_timeout_s = request_timeout_s
        self.success_threshold = success_threshold
        self._should_record_failure = should_record_failure or (lambda _error: True)

        self._state: CircuitState = "closed"
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._last_failure_time: Optional[float] = None
        self._next_attempt_time: Optional[float] = None
        self._trial_in_flight = False

        self._total_requests = 0
        self._total_failures = 0
        self._total_timeouts = 0
        self._total_rejections = 0

    @classmethod
    def from_config(cls, name: str, config: BreakerConfig) -> "CircuitBreaker":
        return cls(
            name=name,
            failure_threshold=config.failure_threshold,
            reset_timeout_s=config.reset_timeout_s,
            request_timeout_s=config.request_timeout_s,
            success_threshold=config.success_threshold,
        )

    @property
    def state(self) -> CircuitState:
        self._maybe_half_open()
        return self._state

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` under breaker control.

        Raises :class:`CircuitOpenError` without invoking ``fn`` while the
        circuit is open, and :class:`OperationTimeoutError` when the call
        exceeds ``request_timeout_s``.
        """
        self._total_requests += 1
        self._maybe_half_open()

        if self._state == "open" or (self._state == "half-open" and self._trial_in_flight):
            self._total_rejections += 1
            logger.warning("Circuit open; rejecting call", circuit=self.name, state=self._state)
            raise CircuitOpenError(self.name)

        is_trial = self._state == "half-open"
        if is_trial:
            self._trial_in_flight = True

        try:
            result = await asyncio.wait_for(fn(), timeout=self.request_timeout_s)
        except asyncio.TimeoutError:
            self._total_timeouts += 1
            error = OperationTimeoutError(self.name, self.request_timeout_s * 1000)
            self._on_failure(error)
            raise error from None
        except Exception as e:
            self._on_failure(e)
            raise
        else:
            self._on_success()
            return result
        finally:
            if is_trial:
                self._trial_in_flight = False

    async def execute_with_fallback(
        self,
        fn: Callable[[], Awaitable[T]],
        fallback: Union[T, Callable[[], Any]],
    ) -> T:
        """Run ``fn`` and return ``fallback`` on any failure, including an open circuit."""
        try:
            return await self.execute(fn)
        except Exception as e:
            logger.info("Circuit fallback used", circuit=self.name, error=str(e), error_type=type(e).__name__)
            if callable(fallback):
                value = fallback()
                if inspect.isawaitable(value):
                    value = await value
                return value
            return fallback

    def metrics(self) -> CircuitBreakerMetrics:
        return CircuitBreakerMetrics(
            state=self.state,
            consecutive_failures=self._consecutive_failures,
            total_requests=self._total_requests,
            total_failures=self._total_failures,
            total_timeouts=self._total_timeouts,
            total_rejections=self._total_rejections,
            last_failure_time=self._last_failure_time,
        )

    def reset(self) -> None:
        """Force the circuit closed and clear counters."""
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._last_failure_time = None
        self._next_attempt_time = None
        self._trial_in_flight = False
        self._transition_to("closed")

    def trip(self) -> None:
        """Force the circuit open for one reset window."""
        now = time_monotonic()
        self._consecutive_failures = self.failure_threshold
        self._last_failure_time = now
        self._next_attempt_time = now + self.reset_timeout_s
        self._transition_to("open")

    # Internal helpers -----------------------------------------------------

    def _maybe_half_open(self) -> None:
        if (
            self._state == "open"
            and self._next_attempt_time is not None
            and time_monotonic() >= self._next_attempt_time
        ):
            self._consecutive_successes = 0
            self._transition_to("half-open")

    def _on_success(self) -> None:
        self._consecutive_failures = 0
        if self._state == "half-open":
            self._consecutive_successes += 1
            if self._consecutive_successes >= self.success_threshold:
                self._consecutive_successes = 0
                self._transition_to("closed")

    def _on_failure(self, error: BaseException) -> None:
        if not self._should_record_failure(error):
            return

        now = time_monotonic()
        self._total_failures += 1
        self._consecutive_failures += 1
        self._consecutive_successes = 0
        self._last_failure_time = now

        if self._state == "half-open":
            self._next_attempt_time = now + self.reset_timeout_s
            self._transition_to("open")
        elif self._state == "closed" and self._consecutive_failures >= self.failure_threshold:
            self._next_attempt_time = now + self.reset_timeout_s
            self._transition_to("open")

    def _transition_to(self, new_state: CircuitState) -> None:
        if self._state == new_state:
            return
        old_state = self._state
        self._state = new_state
        log = logger.error if new_state == "open" else logger.info
        log(
            "Circuit breaker state change",
            circuit=self.name,
            from_state=old_state,
            to_state=new_state,
            consecutive_failures=self._consecutive_failures,
        )


class BreakerRegistry:
    """One breaker per external dependency, constructed from settings."""

    LLM = "llm"
    VECTOR_SEARCH = "vector_search"
    LEXICAL_SEARCH = "lexical_search"
    WEB_SEARCH = "web_search"

    def __init__(self, breakers: Dict[str, CircuitBreaker]):
        self._breakers = dict(breakers)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BreakerRegistry":
        return cls({
            cls.LLM: CircuitBreaker.from_config(cls.LLM, settings.llm_breaker),
            cls.VECTOR_SEARCH: CircuitBreaker.from_config(cls.VECTOR_SEARCH, settings.vector_breaker),
            cls.LEXICAL_SEARCH: CircuitBreaker.from_config(cls.LEXICAL_SEARCH, settings.lexical_breaker),
            cls.WEB_SEARCH: CircuitBreaker.from_config(cls.WEB_SEARCH, settings.web_search_breaker),
        })

    def get(self, name: str) -> CircuitBreaker:
        try:
            return self._breakers[name]
        except KeyError:
            raise KeyError(f"No circuit breaker registered for '{name}'") from None

    def all_metrics(self) -> Dict[str, CircuitBreakerMetrics]:
        return {name: breaker.metrics() for name, breaker in self._breakers.items()}
