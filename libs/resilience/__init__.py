"""Resilience primitives: circuit breakers and transient-error retry."""

from libs.resilience.circuit_breaker import BreakerRegistry, CircuitBreaker, CircuitBreakerMetrics
from libs.resilience.retry import is_transient_error, run_with_retry, transient_retry

__all__ = [
    "BreakerRegistry",
    "CircuitBreaker",
    "CircuitBreakerMetrics",
    "is_transient_error",
    "run_with_retry",
    "transient_retry",
]
