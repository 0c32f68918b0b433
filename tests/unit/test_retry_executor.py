"""Unit tests for the retry executor."""

import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from lingo_ai_sdk.reliability.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from lingo_ai_sdk.reliability.errors import (
    CircuitOpenError,
    ClassifiedError,
    ErrorKind,
    RequestCancelledError,
)
from lingo_ai_sdk.reliability.rate_limiter import RateLimitConfig, RateLimiter
from lingo_ai_sdk.reliability.retry import (
    RetryConfig,
    RetryExecutor,
    calculate_delay,
    with_error_handling,
)
from lingo_ai_sdk.reliability.types import CancellationToken, RetryContext
from tests.helpers.mock_exceptions import MockAuthenticationError, MockServerError


class TestCalculateDelay:

    def test_exponential_without_jitter(self):
        config = RetryConfig(jitter=False)
        assert [calculate_delay(n, config) for n in range(3)] == [1.0, 2.0, 4.0]

    def test_capped_at_max_delay(self):
        config = RetryConfig(jitter=False, max_delay=30.0)
        assert calculate_delay(10, config) == 30.0

    def test_large_attempt_does_not_overflow(self):
        config = RetryConfig(jitter=False, max_delay=30.0)
        assert calculate_delay(1024, config) == 30.0
        assert calculate_delay(5000, config) == 30.0
        assert calculate_delay(5000, RetryConfig(base_delay=0.0, jitter=False)) == 0.0

    def test_jitter_stays_within_quarter(self):
        config = RetryConfig()
        rng = random.Random(7)
        for attempt in range(6):
            nominal = min(2.0 ** attempt, 30.0)
            for _ in range(50):
                delay = calculate_delay(attempt, config, rng)
                assert nominal * 0.75 <= delay <= nominal * 1.25

    def test_never_negative(self):
        config = RetryConfig(base_delay=0.0)
        assert calculate_delay(0, config) == 0.0


class TestExecuteWithRetry:

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, executor, context, sleep, rate_limiter):
        operation = AsyncMock(return_value="hola")

        result = await executor.execute_with_retry(operation, context)

        assert result == "hola"
        assert operation.await_count == 1
        assert sleep.delays == []
        assert context.attempt == 1
        assert context.total_attempts == 4
        assert rate_limiter.get_usage_stats(context.service_key).successes == 1

    @pytest.mark.asyncio
    async def test_retries_retryable_errors_with_backoff(self, executor, context, sleep):
        operation = AsyncMock(side_effect=[MockServerError(), MockServerError(), "ok"])

        result = await executor.execute_with_retry(operation, context)

        assert result == "ok"
        assert operation.await_count == 3
        assert sleep.delays == [1.0, 2.0]
        metrics = executor.get_metrics()
        assert metrics["retry_successes"] == {"openai": 1}
        assert metrics["retry_attempts"] == {"openai:api_error": 2}
        assert metrics["total_retry_delay"] == 3.0

    @pytest.mark.asyncio
    async def test_exhausts_retries(self, executor, context, sleep, rate_limiter):
        operation = AsyncMock(side_effect=MockServerError())

        with pytest.raises(ClassifiedError) as exc_info:
            await executor.execute_with_retry(operation, context)

        error = exc_info.value
        assert error.kind == ErrorKind.API_ERROR
        assert error.status_code == 503
        assert error.context is context
        assert context.attempt == 4
        assert context.last_error is error
        assert operation.await_count == 4
        assert sleep.delays == [1.0, 2.0, 4.0]
        assert rate_limiter.get_usage_stats(context.service_key).errors == 4
        assert executor.get_metrics()["retry_failures"] == {"openai": 1}

    @pytest.mark.asyncio
    async def test_non_retryable_propagates_immediately(self, executor, context, sleep):
        operation = AsyncMock(side_effect=MockAuthenticationError())

        with pytest.raises(ClassifiedError) as exc_info:
            await executor.execute_with_retry(operation, context)

        assert exc_info.value.kind == ErrorKind.AUTHENTICATION
        assert isinstance(exc_info.value.__cause__, MockAuthenticationError)
        assert operation.await_count == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_classified_error_from_operation_passes_through(self, executor, context):
        raised = ClassifiedError(ErrorKind.AUTHENTICATION, "expired token")
        operation = AsyncMock(side_effect=raised)

        with pytest.raises(ClassifiedError) as exc_info:
            await executor.execute_with_retry(operation, context)

        assert exc_info.value is raised
        assert raised.context is context

    @pytest.mark.asyncio
    async def test_custom_retry_config(self, executor, context, sleep):
        operation = AsyncMock(side_effect=MockServerError())
        config = RetryConfig(max_retries=1, base_delay=0.5, jitter=False)

        with pytest.raises(ClassifiedError):
            await executor.execute_with_retry(operation, context, config)

        assert operation.await_count == 2
        assert sleep.delays == [0.5]
        assert context.total_attempts == 2

    @pytest.mark.asyncio
    async def test_reused_context_starts_fresh(self, executor, context):
        with pytest.raises(ClassifiedError):
            await executor.execute_with_retry(
                AsyncMock(side_effect=MockAuthenticationError()), context
            )
        assert context.last_error is not None
        context.start_time = 0.0

        result = await executor.execute_with_retry(AsyncMock(return_value="ok"), context)

        assert result == "ok"
        assert context.attempt == 1
        assert context.last_error is None
        assert 0 <= context.elapsed() < 60


class TestCircuitBreaking:

    @pytest.mark.asyncio
    async def test_open_breaker_rejects_without_calling(self, executor, context, breakers):
        for _ in range(5):
            breakers.on_failure(context.service_key)
        operation = AsyncMock(return_value="never")

        with pytest.raises(CircuitOpenError) as exc_info:
            await executor.execute_with_retry(operation, context)

        error = exc_info.value
        assert error.kind == ErrorKind.API_ERROR
        assert error.status_code == 503
        assert error.retryable is False
        assert "circuit breaker open" in error.message
        operation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_opening_breaker_stops_retrying(self, executor, context, breakers):
        operation = AsyncMock(side_effect=MockServerError())
        config = CircuitBreakerConfig(failure_threshold=2)

        with pytest.raises(ClassifiedError):
            await executor.execute_with_retry(operation, context, breaker_config=config)

        assert operation.await_count == 2
        assert breakers.get_status(context.service_key).state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_success_closes_half_open_breaker(self, executor, context, breakers, clock):
        config = CircuitBreakerConfig(failure_threshold=1)
        breakers.on_failure(context.service_key, config)
        clock.advance(60)

        result = await executor.execute_with_retry(AsyncMock(return_value="ok"), context)

        assert result == "ok"
        assert breakers.get_status(context.service_key).state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_slot_released_when_rate_limited(self, clock, sleep):
        breakers = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=1), clock=clock)
        context = RetryContext(endpoint="tts", provider="openai")
        limiter = RateLimiter({context.service_key: RateLimitConfig(max_requests=0)}, clock=clock)
        executor = RetryExecutor(limiter, breakers, RetryConfig(max_retries=0), sleep=sleep)
        breakers.on_failure(context.service_key)
        clock.advance(60)

        with pytest.raises(ClassifiedError) as exc_info:
            await executor.execute_with_retry(AsyncMock(), context)

        assert exc_info.value.kind == ErrorKind.RATE_LIMIT
        status = breakers.get_status(context.service_key)
        assert status.state == CircuitState.HALF_OPEN
        assert status.half_open_in_flight == 0


class TestLocalRateLimiting:

    @pytest.fixture
    def limited(self, clock, sleep, breakers, context):
        limiter = RateLimiter(
            {context.service_key: RateLimitConfig(max_requests=1, window=60.0)}, clock=clock
        )
        return RetryExecutor(limiter, breakers, RetryConfig(jitter=False), sleep=sleep)

    @pytest.mark.asyncio
    async def test_waits_retry_after_then_succeeds(self, limited, context, sleep, breakers):
        await limited.execute_with_retry(AsyncMock(return_value="first"), context)
        operation = AsyncMock(return_value="second")

        result = await limited.execute_with_retry(operation, context)

        assert result == "second"
        assert sleep.delays == [60]
        assert operation.await_count == 1
        assert context.attempt == 2
        # Local denials never count against the service
        assert breakers.get_status(context.service_key).failure_count == 0
        stats = limited.rate_limiter.get_usage_stats(context.service_key)
        assert stats.errors == 0
        assert stats.denials == 1
        assert stats.requests == 2
        assert limited.rate_limiter.is_high_error_rate(context.service_key) is False

    @pytest.mark.asyncio
    async def test_fails_when_no_attempts_remain(self, limited, context):
        await limited.execute_with_retry(AsyncMock(return_value="first"), context)
        operation = AsyncMock()

        with pytest.raises(ClassifiedError) as exc_info:
            await limited.execute_with_retry(operation, context, RetryConfig(max_retries=0))

        error = exc_info.value
        assert error.kind == ErrorKind.RATE_LIMIT
        assert error.status_code == 429
        assert error.retryable is True
        assert error.retry_after == 60
        assert "Request limit exceeded" in error.message
        operation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_estimated_cost_reserved(self, clock, sleep, breakers, context):
        limiter = RateLimiter(
            {context.service_key: RateLimitConfig(max_requests=10, max_cost=5)}, clock=clock
        )
        executor = RetryExecutor(limiter, breakers, RetryConfig(max_retries=0), sleep=sleep)

        await executor.execute_with_retry(AsyncMock(return_value="ok"), context, estimated_cost=4)
        with pytest.raises(ClassifiedError) as exc_info:
            await executor.execute_with_retry(AsyncMock(), context, estimated_cost=2)

        assert "Cost limit exceeded" in exc_info.value.message
        assert limiter.get_usage_stats(context.service_key).actual_cost == 4


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancelled_before_first_attempt(self, executor, context):
        token = CancellationToken()
        token.cancel("user left the lesson")
        operation = AsyncMock()

        with pytest.raises(RequestCancelledError) as exc_info:
            await executor.execute_with_retry(operation, context, cancel_token=token)

        assert exc_info.value.reason == "user left the lesson"
        operation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancelled_during_backoff(self, executor, context):
        token = CancellationToken()

        async def operation():
            token.cancel()
            raise MockServerError()

        with pytest.raises(RequestCancelledError):
            await executor.execute_with_retry(
                operation, context, RetryConfig(base_delay=30.0), cancel_token=token
            )

    @pytest.mark.asyncio
    async def test_token_not_cancelled_waits_and_retries(self, executor, context, sleep, clock):
        token = CancellationToken()
        operation = AsyncMock(side_effect=[MockServerError(), "ok"])
        started = clock()

        result = await executor.execute_with_retry(operation, context, cancel_token=token)

        assert result == "ok"
        assert sleep.delays == [1.0]
        assert clock() == started + 1.0

    @pytest.mark.asyncio
    async def test_cancel_interrupts_injected_sleep(self, rate_limiter, breakers, context):
        sleeping = asyncio.Event()

        async def stalled_sleep(delay):
            sleeping.set()
            await asyncio.Event().wait()

        executor = RetryExecutor(
            rate_limiter, breakers, RetryConfig(base_delay=30.0, jitter=False), sleep=stalled_sleep
        )
        token = CancellationToken()

        async def cancel_once_sleeping():
            await sleeping.wait()
            token.cancel("lesson closed")

        canceller = asyncio.ensure_future(cancel_once_sleeping())
        operation = AsyncMock(side_effect=MockServerError())

        with pytest.raises(RequestCancelledError) as exc_info:
            await executor.execute_with_retry(operation, context, cancel_token=token)

        await canceller
        assert exc_info.value.reason == "lesson closed"
        assert operation.await_count == 1


class TestWithErrorHandling:

    @pytest.mark.asyncio
    async def test_wraps_without_calling(self, executor, context):
        operation = AsyncMock(return_value=42)

        wrapped = with_error_handling(operation, context, executor)

        operation.assert_not_called()
        assert await wrapped() == 42
        operation.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_forwards_arguments_on_every_attempt(self, executor, context, sleep):
        operation = AsyncMock(side_effect=[MockServerError(), "Guten Morgen"])
        translate = with_error_handling(operation, context, executor)

        result = await translate("Good morning", target="de")

        assert result == "Guten Morgen"
        assert operation.await_count == 2
        for call in operation.await_args_list:
            assert call.args == ("Good morning",)
            assert call.kwargs == {"target": "de"}
        assert sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_custom_retry_config(self, executor, context):
        operation = AsyncMock(side_effect=MockServerError())
        wrapped = with_error_handling(operation, context, executor, RetryConfig(max_retries=0))

        with pytest.raises(ClassifiedError):
            await wrapped()

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_reraises_classified_error(self, executor, context):
        wrapped = with_error_handling(
            AsyncMock(side_effect=MockAuthenticationError()), context, executor
        )
        with pytest.raises(ClassifiedError) as exc_info:
            await wrapped()
        assert exc_info.value.kind == ErrorKind.AUTHENTICATION
