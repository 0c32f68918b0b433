"""Shared pytest fixtures for Lingo AI SDK tests."""

import pytest

from lingo_ai_sdk.reliability.circuit_breaker import CircuitBreakerRegistry
from lingo_ai_sdk.reliability.rate_limiter import RateLimiter
from lingo_ai_sdk.reliability.retry import RetryConfig, RetryExecutor
from lingo_ai_sdk.reliability.types import RetryContext
from tests.helpers.fakes import FakeClock, RecordingSleep


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: multi-component scenario tests")


def pytest_collection_modifyitems(items):
    """Mark tests by the directory they live in."""
    for item in items:
        parts = item.path.parts
        if "unit" in parts:
            item.add_marker(pytest.mark.unit)
        elif "integration" in parts:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def clean_lingo_env(monkeypatch):
    """Keep LINGO_* variables from the developer's shell out of tests."""
    import os
    for name in list(os.environ):
        if name.startswith("LINGO_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep(clock):
    return RecordingSleep(clock)


@pytest.fixture
def rate_limiter(clock):
    """Limiter with no configured services: everything is admitted."""
    return RateLimiter({}, clock=clock)


@pytest.fixture
def breakers(clock):
    return CircuitBreakerRegistry(clock=clock)


@pytest.fixture
def retry_config():
    """Default policy without jitter so delays are exact."""
    return RetryConfig(jitter=False)


@pytest.fixture
def executor(rate_limiter, breakers, retry_config, sleep):
    return RetryExecutor(
        rate_limiter=rate_limiter,
        breakers=breakers,
        default_config=retry_config,
        sleep=sleep,
    )


@pytest.fixture
def context():
    return RetryContext(endpoint="conversation", provider="openai")
