"""
Typed errors surfaced by the reliability layer.

Every failure that leaves the retry executor is a ClassifiedError carrying
its kind, retryability and the RetryContext of the execution that produced it.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from .types import RetryContext


class ErrorKind(Enum):
    """Failure taxonomy shared by all providers."""
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    API_ERROR = "api_error"
    AUTHENTICATION = "authentication"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class ClassifiedError(Exception):
    """
    A failure classified into the retry-safe taxonomy.

    Attributes:
        kind: Error category
        message: Error message
        status_code: HTTP status code if applicable
        retryable: Whether the executor may re-attempt the call
        context: RetryContext of the execution that produced the error
        retry_after: Seconds the upstream asked us to wait, if known
        original_error: The raw exception that was classified
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
        context: Optional[RetryContext] = None,
        retry_after: Optional[float] = None,
        original_error: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.retryable = retryable
        self.context = context
        self.retry_after = retry_after
        self.original_error = original_error

    @property
    def provider(self) -> Optional[str]:
        return self.context.provider if self.context else None

    @property
    def endpoint(self) -> Optional[str]:
        return self.context.endpoint if self.context else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
            "retryable": self.retryable,
            "retry_after": self.retry_after,
            "context": self.context.to_dict() if self.context else None,
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value}, "
            f"status_code={self.status_code}, retryable={self.retryable}, "
            f"message={self.message!r})"
        )


class CircuitOpenError(ClassifiedError):
    """Raised without calling the operation when a service's breaker is open."""

    def __init__(self, service: str, context: Optional[RetryContext] = None,
                 next_attempt_time: Optional[float] = None):
        super().__init__(
            ErrorKind.API_ERROR,
            f"Service {service} is temporarily unavailable (circuit breaker open)",
            status_code=503,
            retryable=False,
            context=context,
        )
        self.service = service
        self.next_attempt_time = next_attempt_time


class RequestCancelledError(Exception):
    """Raised when a caller cancels an execution between attempts."""

    def __init__(self, service: str, reason: Optional[str] = None):
        message = f"Request to {service} was cancelled"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.service = service
        self.reason = reason


class CapabilityUnavailableError(Exception):
    """
    Raised by the orchestrator when every provider for a capability failed.

    Distinct from ClassifiedError so callers can tell "this provider failed"
    apart from "nothing can serve this capability right now".
    """

    def __init__(
        self,
        capability: str,
        errors: Optional[Dict[str, BaseException]] = None,
        tried: Optional[List[str]] = None
    ):
        self.capability = capability
        self.errors = errors or {}
        self.tried = tried or list(self.errors)

        message = f"All {capability} services unavailable"
        if self.tried:
            message += f" (tried: {', '.join(self.tried)})"
        super().__init__(message)

    @property
    def last_error(self) -> Optional[BaseException]:
        if not self.tried:
            return None
        return self.errors.get(self.tried[-1])
