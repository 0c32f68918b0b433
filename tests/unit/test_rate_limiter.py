"""Unit tests for rate limiting and cost estimation."""

import math

import pytest

from lingo_ai_sdk.reliability.rate_limiter import (
    COST_LIMIT_EXCEEDED,
    DEFAULT_RATE_LIMITS,
    REQUEST_LIMIT_EXCEEDED,
    RateLimitConfig,
    RateLimiter,
)
from lingo_ai_sdk.reliability.types import ServiceKey


KEY = ServiceKey("openai", "conversation")


@pytest.fixture
def limiter(clock):
    return RateLimiter({KEY: RateLimitConfig(max_requests=3, window=60.0, max_cost=10)}, clock=clock)


class TestAdmission:

    def test_admits_up_to_max_requests(self, limiter):
        decisions = [limiter.check_and_reserve(KEY, 1) for _ in range(4)]
        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert decisions[-1].reason == REQUEST_LIMIT_EXCEEDED
        assert decisions[-1].retry_after_seconds == 60

    def test_retry_after_rounds_up_remaining_window(self, limiter, clock):
        for _ in range(3):
            limiter.check_and_reserve(KEY, 1)
        clock.advance(30.5)
        decision = limiter.check_and_reserve(KEY, 1)
        assert decision.allowed is False
        assert decision.retry_after_seconds == 30

    def test_window_resets_after_expiry(self, limiter, clock):
        for _ in range(3):
            limiter.check_and_reserve(KEY, 1)
        clock.advance(60)
        assert limiter.check_and_reserve(KEY, 1).allowed is True
        assert limiter.get_remaining_limit(KEY).requests == 2

    def test_cost_limit(self, limiter):
        assert limiter.check_and_reserve(KEY, 6).allowed is True
        decision = limiter.check_and_reserve(KEY, 5)
        assert decision.allowed is False
        assert decision.reason == COST_LIMIT_EXCEEDED
        assert decision.retry_after_seconds == 60
        # Exactly filling the budget is allowed
        assert limiter.check_and_reserve(KEY, 4).allowed is True

    def test_denial_does_not_reserve(self, limiter):
        limiter.check_and_reserve(KEY, 6)
        limiter.check_and_reserve(KEY, 5)
        remaining = limiter.get_remaining_limit(KEY)
        assert remaining.requests == 2
        assert remaining.cost == 4

    def test_unconfigured_service_always_admitted(self, limiter):
        other = ServiceKey("gemini", "translation")
        assert all(limiter.check_and_reserve(other, 1000).allowed for _ in range(50))
        assert limiter.get_remaining_limit(other).requests == math.inf

    def test_no_cost_limit(self, clock):
        limiter = RateLimiter({KEY: RateLimitConfig(max_requests=2)}, clock=clock)
        assert limiter.check_and_reserve(KEY, 10_000).allowed is True

    def test_zero_requests_denies_everything(self, clock):
        limiter = RateLimiter({KEY: RateLimitConfig(max_requests=0)}, clock=clock)
        decision = limiter.check_and_reserve(KEY, 1)
        assert decision.allowed is False
        assert decision.reason == REQUEST_LIMIT_EXCEEDED


class TestUsage:

    def test_reservation_updates_usage(self, limiter):
        limiter.check_and_reserve(KEY, 2)
        limiter.check_and_reserve(KEY, 3)
        stats = limiter.get_usage_stats(KEY)
        assert stats.requests == 2
        assert stats.cost == 5

    def test_record_usage(self, limiter, clock):
        limiter.record_usage(KEY, 2.5, success=True)
        limiter.record_usage(KEY, 0, success=False)
        stats = limiter.get_usage_stats(KEY)
        assert stats.successes == 1
        assert stats.actual_cost == 2.5
        assert stats.errors == 1
        assert stats.last_request == clock()

    def test_usage_stats_are_copies(self, limiter):
        limiter.check_and_reserve(KEY, 1)
        limiter.get_usage_stats(KEY).requests = 99
        assert limiter.get_usage_stats(KEY).requests == 1

    def test_high_error_rate(self, limiter):
        assert limiter.is_high_error_rate(KEY) is False
        limiter.check_and_reserve(KEY, 1)
        limiter.check_and_reserve(KEY, 1)
        limiter.record_usage(KEY, 0, success=False)
        assert limiter.is_high_error_rate(KEY) is False
        limiter.record_usage(KEY, 0, success=False)
        assert limiter.is_high_error_rate(KEY) is True

    def test_denials_are_not_errors(self, clock):
        limiter = RateLimiter({KEY: RateLimitConfig(max_requests=1)}, clock=clock)
        assert limiter.check_and_reserve(KEY, 1).allowed is True
        for _ in range(3):
            assert limiter.check_and_reserve(KEY, 1).allowed is False
            limiter.record_denial(KEY)

        stats = limiter.get_usage_stats(KEY)
        assert stats.requests == 1
        assert stats.denials == 3
        assert stats.errors == 0
        assert stats.last_request == clock()
        assert limiter.is_high_error_rate(KEY) is False

    def test_daily_usage_filters_by_provider_and_age(self, limiter, clock):
        limiter.check_and_reserve(KEY, 1)
        limiter.check_and_reserve(ServiceKey("gemini", "translation"), 1)
        limiter.record_usage(ServiceKey("gemini", "translation"), 1, success=True)

        assert set(limiter.get_daily_usage()) == {"openai-conversation", "gemini-translation"}
        assert set(limiter.get_daily_usage("gemini")) == {"gemini-translation"}

        clock.advance(24 * 60 * 60 + 1)
        assert limiter.get_daily_usage() == {}

    def test_all_usage_stats(self, limiter):
        limiter.check_and_reserve(KEY, 4)
        assert limiter.get_all_usage_stats()["openai-conversation"]["cost"] == 4


class TestRecommendations:

    def test_recommended_delay_unconfigured(self, limiter):
        assert limiter.get_recommended_delay(ServiceKey("x", "y")) == 0

    def test_recommended_delay_with_plenty_left(self, clock):
        limiter = RateLimiter({KEY: RateLimitConfig(max_requests=100)}, clock=clock)
        limiter.check_and_reserve(KEY, 1)
        assert limiter.get_recommended_delay(KEY) == 0

    def test_recommended_delay_spreads_remaining(self, limiter):
        limiter.check_and_reserve(KEY, 1)
        # 2 requests left over 60 seconds
        assert limiter.get_recommended_delay(KEY) == 30

    def test_recommended_delay_when_exhausted(self, limiter, clock):
        for _ in range(3):
            limiter.check_and_reserve(KEY, 1)
        clock.advance(15)
        assert limiter.get_recommended_delay(KEY) == 45


class TestCostEstimation:

    @pytest.fixture
    def defaults(self, clock):
        return RateLimiter(clock=clock)

    def test_tts_per_thousand_characters(self, defaults):
        assert defaults.estimate_cost(ServiceKey("openai", "tts"), {"text": "a" * 2500}) == 3

    def test_transcription_flat(self, defaults):
        assert defaults.estimate_cost(ServiceKey("openai", "transcription"), {}) == 10

    def test_openai_conversation_counts_messages(self, defaults):
        params = {"messages": [{"role": "system", "content": "x" * 150},
                               {"role": "user", "content": "y" * 100}]}
        assert defaults.estimate_cost(KEY, params) == 3

    def test_openai_conversation_falls_back_to_prompt(self, defaults):
        assert defaults.estimate_cost(KEY, {"prompt": "z" * 101}) == 2

    def test_gemini_conversation(self, defaults):
        assert defaults.estimate_cost(ServiceKey("gemini", "conversation"), {"prompt": "p" * 250}) == 3

    def test_gemini_translation(self, defaults):
        assert defaults.estimate_cost(ServiceKey("gemini", "translation"), {"text": "t" * 401}) == 3

    def test_unknown_endpoint_defaults_to_one(self, defaults):
        assert defaults.estimate_cost(ServiceKey("gemini", "tts"), {"text": "hello"}) == 1

    def test_register_cost_estimator(self, defaults):
        key = ServiceKey("gemini", "tts")
        defaults.register_cost_estimator(key, lambda params: len(params["text"]))
        assert defaults.estimate_cost(key, {"text": "hello"}) == 5


class TestConfiguration:

    def test_default_table(self, clock):
        configs = RateLimiter(clock=clock).get_configs()
        assert configs == DEFAULT_RATE_LIMITS
        assert configs[ServiceKey("openai", "tts")] == RateLimitConfig(50, 60.0, 100)
        assert configs[ServiceKey("openai", "transcription")].max_requests == 30
        assert configs[ServiceKey("gemini", "translation")].max_cost == 400

    def test_update_config(self, limiter):
        limiter.update_config(KEY, RateLimitConfig(max_requests=1))
        assert limiter.check_and_reserve(KEY, 1).allowed is True
        assert limiter.check_and_reserve(KEY, 1).allowed is False

    def test_cleanup_evicts_expired_windows_then_stale_usage(self, limiter, clock):
        limiter.check_and_reserve(KEY, 1)
        assert limiter.cleanup() == 0

        clock.advance(61)
        assert limiter.cleanup() == 1
        assert limiter.get_usage_stats(KEY).requests == 1

        clock.advance(24 * 60 * 60)
        assert limiter.cleanup() == 1
        assert limiter.get_usage_stats(KEY).requests == 0
