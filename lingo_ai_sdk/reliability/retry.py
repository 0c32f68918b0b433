"""
Retry executor: admission control, circuit breaking and backoff around one call.

The executor is the only component that talks to both registries. For each
attempt it asks the RateLimiter for admission, runs the operation, classifies
failures through ErrorClassifier and reports outcomes to the
CircuitBreakerRegistry, sleeping with exponential backoff between attempts.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..observability.logging import ReliabilityLogger
from .circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry, CircuitState
from .error_classifier import ErrorClassifier
from .errors import CircuitOpenError, ClassifiedError, ErrorKind, RequestCancelledError
from .rate_limiter import RateLimiter
from .types import CancellationToken, RetryContext, ServiceKey

T = TypeVar('T')

JITTER_RATIO = 0.25


@dataclass
class RetryConfig:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1


def calculate_delay(attempt: int, config: RetryConfig, rng: Optional[random.Random] = None) -> float:
    """
    Backoff delay in seconds after the given zero-based attempt.

    ``min(base_delay * exponential_base ** attempt, max_delay)``, moved by a
    uniform amount within +/-25% when jitter is on and clamped at zero.
    """
    try:
        delay = min(config.base_delay * config.exponential_base ** attempt, config.max_delay)
    except OverflowError:
        # The power left float range long after passing max_delay
        delay = config.max_delay if config.base_delay > 0 else 0.0
    if config.jitter:
        uniform = (rng or random).uniform
        delay += uniform(-JITTER_RATIO, JITTER_RATIO) * delay
    return max(0.0, delay)


class RetryMetrics:
    """Tracks retry metrics for observability."""

    def __init__(self):
        self.retry_attempts: Dict[str, int] = {}
        self.retry_successes: Dict[str, int] = {}
        self.retry_failures: Dict[str, int] = {}
        self.error_counts: Dict[ErrorKind, int] = {}
        self.total_retry_delay: float = 0.0

    def record_attempt(self, provider: str, kind: ErrorKind):
        """Record a retry attempt."""
        key = f"{provider}:{kind.value}"
        self.retry_attempts[key] = self.retry_attempts.get(key, 0) + 1
        self.error_counts[kind] = self.error_counts.get(kind, 0) + 1

    def record_success(self, provider: str):
        """Record a call that succeeded after at least one retry."""
        self.retry_successes[provider] = self.retry_successes.get(provider, 0) + 1

    def record_failure(self, provider: str):
        """Record a call that failed after at least one retry."""
        self.retry_failures[provider] = self.retry_failures.get(provider, 0) + 1

    def add_delay(self, delay: float):
        self.total_retry_delay += delay

    def get_success_rate(self, provider: str) -> float:
        """Calculate retry success rate for provider."""
        successes = self.retry_successes.get(provider, 0)
        failures = self.retry_failures.get(provider, 0)
        total = successes + failures
        return successes / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "retry_attempts": dict(self.retry_attempts),
            "retry_successes": dict(self.retry_successes),
            "retry_failures": dict(self.retry_failures),
            "error_counts": {kind.value: count for kind, count in self.error_counts.items()},
            "total_retry_delay": self.total_retry_delay,
        }


class RetryExecutor:
    """
    Runs provider operations under rate limiting, circuit breaking and retry.

    Both registries are shared objects: construct them once and hand the same
    instances to every executor that should see the same budgets and breakers.
    """

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        default_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None
    ):
        self.rate_limiter = rate_limiter or RateLimiter()
        self.breakers = breakers or CircuitBreakerRegistry()
        self.default_config = default_config or RetryConfig()
        self.metrics = RetryMetrics()
        self._sleep = sleep
        self._rng = rng
        self.logger = ReliabilityLogger("retry")

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        context: RetryContext,
        retry_config: Optional[RetryConfig] = None,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        *,
        estimated_cost: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> T:
        """
        Execute an operation with retry logic.

        Args:
            operation: Zero-argument coroutine function performing the call
            context: RetryContext naming the provider and endpoint
            retry_config: Retry policy, executor default when omitted
            breaker_config: Breaker policy, registry default when omitted
            estimated_cost: Cost units to reserve per attempt; estimated
                from the endpoint's cost estimator when omitted
            cancel_token: Checked before each attempt and during waits

        Returns:
            Result from successful operation execution

        Raises:
            CircuitOpenError: The service's breaker rejected the call
            ClassifiedError: Non-retryable failure or retries exhausted
            RequestCancelledError: The token was cancelled between attempts
        """
        config = retry_config or self.default_config
        key = context.service_key
        context.start_time = time.time()
        context.attempt = 0
        context.last_error = None
        context.total_attempts = config.total_attempts
        if estimated_cost is None:
            estimated_cost = self.rate_limiter.estimate_cost(key)

        if not self.breakers.is_allowed(key, breaker_config):
            status = self.breakers.get_status(key)
            self.logger.warning(
                "Circuit breaker open, call rejected",
                provider=context.provider, endpoint=context.endpoint
            )
            raise CircuitOpenError(str(key), context, status.next_attempt_time)

        # Admitted while half-open means this execution holds a probe slot
        is_probe = self.breakers.get_status(key).state == CircuitState.HALF_OPEN
        outcome_reported = False
        try:
            for attempt in range(config.total_attempts):
                context.attempt = attempt + 1
                is_last = attempt == config.max_retries
                self._check_cancelled(key, cancel_token)

                decision = self.rate_limiter.check_and_reserve(key, estimated_cost)
                if not decision.allowed:
                    self.rate_limiter.record_denial(key)
                    error = ClassifiedError(
                        ErrorKind.RATE_LIMIT,
                        f"Rate limit exceeded for {key}: {decision.reason}",
                        status_code=429,
                        retryable=True,
                        context=context,
                        retry_after=decision.retry_after_seconds,
                    )
                    context.last_error = error
                    if is_last:
                        raise error

                    wait = decision.retry_after_seconds
                    if wait is None:
                        wait = calculate_delay(attempt, config, self._rng)
                    self.logger.warning(
                        "Rate limited locally, waiting",
                        provider=context.provider, endpoint=context.endpoint,
                        attempt=context.attempt, wait=wait, reason=decision.reason
                    )
                    await self._wait(key, wait, cancel_token)
                    continue

                try:
                    result = await operation()
                except Exception as raw_error:
                    error = ErrorClassifier.classify(raw_error, context)
                    if error.context is None:
                        error.context = context
                    context.last_error = error

                    self.breakers.on_failure(key, breaker_config)
                    outcome_reported = True
                    self.rate_limiter.record_usage(key, 0, success=False)

                    breaker_open = self.breakers.get_status(key).state == CircuitState.OPEN
                    if not error.retryable or is_last or breaker_open:
                        if attempt > 0:
                            self.metrics.record_failure(context.provider)
                        self.logger.error(
                            "Request failed",
                            provider=context.provider, endpoint=context.endpoint,
                            attempt=context.attempt, total_attempts=context.total_attempts,
                            error=error
                        )
                        if error is raw_error:
                            raise
                        raise error from raw_error

                    delay = calculate_delay(attempt, config, self._rng)
                    self.metrics.record_attempt(context.provider, error.kind)
                    self.metrics.add_delay(delay)
                    self.logger.warning(
                        f"Retrying after {error.kind.value} error",
                        provider=context.provider, endpoint=context.endpoint,
                        attempt=context.attempt, total_attempts=context.total_attempts,
                        delay=round(delay, 3)
                    )
                    await self._wait(key, delay, cancel_token)
                    continue

                self.breakers.on_success(key)
                outcome_reported = True
                self.rate_limiter.record_usage(key, estimated_cost, success=True)
                if attempt > 0:
                    self.metrics.record_success(context.provider)
                    self.logger.info(
                        f"Request succeeded after {attempt} retries",
                        provider=context.provider, endpoint=context.endpoint
                    )
                return result
        finally:
            if is_probe and not outcome_reported:
                self.breakers.release_probe(key)

        # Unreachable: the last attempt always returns or raises
        raise RuntimeError("retry loop exited without a result")

    def _check_cancelled(self, key: ServiceKey, cancel_token: Optional[CancellationToken]):
        if cancel_token is not None and cancel_token.cancelled:
            raise RequestCancelledError(str(key), cancel_token.reason)

    async def _wait(self, key: ServiceKey, delay: float,
                    cancel_token: Optional[CancellationToken]):
        if cancel_token is None:
            await self._sleep(delay)
            return
        sleeper = asyncio.ensure_future(self._sleep(delay))
        watcher = asyncio.ensure_future(cancel_token.wait_cancelled())
        try:
            await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            watcher.cancel()
        if cancel_token.cancelled:
            raise RequestCancelledError(str(key), cancel_token.reason)
        sleeper.result()

    def get_metrics(self) -> Dict[str, Any]:
        return self.metrics.to_dict()


def with_error_handling(
    operation: Callable[..., Awaitable[T]],
    context: RetryContext,
    executor: RetryExecutor,
    retry_config: Optional[RetryConfig] = None
) -> Callable[..., Awaitable[T]]:
    """
    Wrap ``operation`` so every call runs through ``executor``.

    The returned coroutine function forwards its arguments to ``operation``
    on each attempt. Classified failures are logged and re-raised.

    Example:
        translate = with_error_handling(client.translate, context, executor)
        text = await translate("Good morning", target="de")
    """
    async def wrapped(*args, **kwargs) -> T:
        try:
            return await executor.execute_with_retry(
                lambda: operation(*args, **kwargs), context, retry_config
            )
        except ClassifiedError as error:
            executor.logger.error(
                "Operation failed after error handling",
                provider=context.provider, endpoint=context.endpoint, error=error
            )
            raise

    return wrapped
