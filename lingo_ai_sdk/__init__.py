"""
Lingo AI SDK - resilient multi-provider access to language-learning AI services.

This package sits between a language-learning app and rate-limited,
cost-metered AI endpoints (conversation, translation, grammar checks,
speech synthesis, transcription) and provides:
- Failure classification into a retry-safe taxonomy
- Retry with exponential backoff and jitter
- Per-service circuit breakers
- Request and cost rate limiting
- Provider fallback per capability with normalized responses
"""

__version__ = "0.1.0"

from .config import ReliabilitySettings
from .models import Capability, CapabilityResponse, ConversationMessage, ProviderType
from .orchestration import ProviderOrchestrator
from .providers import ProviderAdapter
from .reliability import (
    CancellationToken,
    CapabilityUnavailableError,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitOpenError,
    ClassifiedError,
    ErrorClassifier,
    ErrorKind,
    RateLimitConfig,
    RateLimiter,
    RequestCancelledError,
    RetryConfig,
    RetryContext,
    RetryExecutor,
    ServiceKey,
)

__all__ = [
    # Orchestration
    "ProviderOrchestrator",
    "ProviderAdapter",

    # Reliability
    "RetryExecutor",
    "RetryConfig",
    "RetryContext",
    "CircuitBreakerRegistry",
    "CircuitBreakerConfig",
    "RateLimiter",
    "RateLimitConfig",
    "ErrorClassifier",
    "ServiceKey",
    "CancellationToken",

    # Errors
    "ClassifiedError",
    "ErrorKind",
    "CircuitOpenError",
    "CapabilityUnavailableError",
    "RequestCancelledError",

    # Models and settings
    "Capability",
    "CapabilityResponse",
    "ConversationMessage",
    "ProviderType",
    "ReliabilitySettings",
]
