"""Environment-driven reliability settings."""

import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..reliability.circuit_breaker import CircuitBreakerConfig
from ..reliability.retry import RetryConfig


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_probes(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None:
        return default
    # "0" or "none" lifts the half-open probe limit
    if value.strip().lower() in ("", "0", "none", "unlimited"):
        return None
    return int(value)


class ReliabilitySettings(BaseModel):
    """
    Defaults for retry, circuit breaking, availability caching and cleanup.

    Durations are seconds. ``from_env`` reads ``LINGO_*`` variables; values
    not set fall back to the field defaults.
    """
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    base_delay: float = Field(default=1.0, ge=0.0, description="Backoff before the first retry")
    max_delay: float = Field(default=30.0, ge=0.0, description="Backoff cap")
    exponential_base: float = Field(default=2.0, ge=1.0, description="Backoff growth factor")
    jitter: bool = Field(default=True, description="Randomize backoff by +/-25%")

    failure_threshold: int = Field(default=5, ge=1, description="Failures before a breaker opens")
    reset_timeout: float = Field(default=60.0, ge=0.0, description="Open period before a probe")
    monitoring_period: float = Field(default=300.0, gt=0.0, description="Failure counting window")
    half_open_max_probes: Optional[int] = Field(default=1, description="Concurrent half-open probes")

    availability_ttl: float = Field(default=300.0, ge=0.0, description="Availability cache TTL")
    cleanup_interval: float = Field(default=300.0, gt=0.0, description="Maintenance sweep period")

    @field_validator('half_open_max_probes')
    def validate_probes(cls, v):
        if v is not None and v < 1:
            return None
        return v

    @classmethod
    def from_env(cls) -> "ReliabilitySettings":
        defaults = cls()
        return cls(
            max_retries=int(os.getenv("LINGO_MAX_RETRIES", defaults.max_retries)),
            base_delay=float(os.getenv("LINGO_BASE_DELAY", defaults.base_delay)),
            max_delay=float(os.getenv("LINGO_MAX_DELAY", defaults.max_delay)),
            exponential_base=float(os.getenv("LINGO_BACKOFF_BASE", defaults.exponential_base)),
            jitter=_env_bool("LINGO_RETRY_JITTER", defaults.jitter),
            failure_threshold=int(os.getenv("LINGO_CB_FAILURE_THRESHOLD", defaults.failure_threshold)),
            reset_timeout=float(os.getenv("LINGO_CB_RESET_TIMEOUT", defaults.reset_timeout)),
            monitoring_period=float(os.getenv("LINGO_CB_MONITORING_PERIOD", defaults.monitoring_period)),
            half_open_max_probes=_env_probes("LINGO_CB_HALF_OPEN_PROBES", defaults.half_open_max_probes),
            availability_ttl=float(os.getenv("LINGO_AVAILABILITY_TTL", defaults.availability_ttl)),
            cleanup_interval=float(os.getenv("LINGO_CLEANUP_INTERVAL", defaults.cleanup_interval)),
        )

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            exponential_base=self.exponential_base,
            jitter=self.jitter,
        )

    def breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            reset_timeout=self.reset_timeout,
            monitoring_period=self.monitoring_period,
            half_open_max_probes=self.half_open_max_probes,
        )
