"""Reliability layer for AI provider calls.

This layer handles:
- Failure classification into a retry-safe taxonomy
- Per-service rate limiting and cost budgeting
- Circuit breakers per provider endpoint
- Retry with exponential backoff and jitter
- Periodic cleanup of idle state
"""

from .types import CancellationToken, RetryContext, ServiceKey
from .errors import (
    CapabilityUnavailableError,
    CircuitOpenError,
    ClassifiedError,
    ErrorKind,
    RequestCancelledError,
)
from .error_classifier import ErrorClassifier, RawFailure
from .rate_limiter import (
    DEFAULT_RATE_LIMITS,
    RateLimitConfig,
    RateLimitDecision,
    RateLimiter,
    UsageStats,
)
from .circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitBreakerState,
    CircuitState,
)
from .retry import RetryConfig, RetryExecutor, RetryMetrics, calculate_delay, with_error_handling
from .maintenance import MaintenanceTask

__all__ = [
    "CancellationToken",
    "RetryContext",
    "ServiceKey",
    "CapabilityUnavailableError",
    "CircuitOpenError",
    "ClassifiedError",
    "ErrorKind",
    "RequestCancelledError",
    "ErrorClassifier",
    "RawFailure",
    "DEFAULT_RATE_LIMITS",
    "RateLimitConfig",
    "RateLimitDecision",
    "RateLimiter",
    "UsageStats",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitBreakerState",
    "CircuitState",
    "RetryConfig",
    "RetryExecutor",
    "RetryMetrics",
    "calculate_delay",
    "with_error_handling",
    "MaintenanceTask",
]
