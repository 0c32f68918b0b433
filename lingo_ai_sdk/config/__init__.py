"""Configuration module for the Lingo AI SDK."""

from .settings import ReliabilitySettings
from .rate_limits import load_rate_limits, load_rate_limit_overrides, parse_rate_limits

__all__ = [
    "ReliabilitySettings",
    "load_rate_limits",
    "load_rate_limit_overrides",
    "parse_rate_limits",
]
