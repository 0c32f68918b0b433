"""
Error classification for upstream AI provider failures.

This module turns arbitrary failures (transport exceptions, HTTP status
errors, provider-specific messages) into ClassifiedError instances with a
retry annotation. Raw errors are first normalized into a RawFailure so the
ordered rules below operate on one stable shape regardless of the source.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx
import openai

from .errors import ClassifiedError, ErrorKind
from .types import RetryContext


TRANSPORT_CONNECTION = "connection"
TRANSPORT_TIMEOUT = "timeout"


@dataclass(frozen=True)
class RawFailure:
    """Normalized view of a raw error before classification."""
    message: str
    status_code: Optional[int] = None
    retry_after: Optional[float] = None
    transport: Optional[str] = None  # "connection" | "timeout"

    @classmethod
    def from_error(cls, error: Any) -> "RawFailure":
        """Build a RawFailure from an exception or any error-like object."""
        return cls(
            message=_extract_message(error),
            status_code=_extract_status_code(error),
            retry_after=_extract_retry_after(error),
            transport=_detect_transport(error),
        )


class ErrorClassifier:
    """Ordered, side-effect free failure classification."""

    NETWORK_PATTERNS = (
        "network", "connection", "timeout", "econnreset", "enotfound",
        "connection reset", "dns",
    )
    RATE_LIMIT_PATTERNS = ("rate limit",)
    AUTHENTICATION_PATTERNS = ("unauthorized", "forbidden")
    TIMEOUT_PATTERNS = ("timeout", "timed out")

    AUTHENTICATION_STATUS_CODES = {401, 403}
    RATE_LIMIT_STATUS_CODE = 429

    @classmethod
    def classify(cls, error: Any, context: Optional[RetryContext] = None) -> ClassifiedError:
        """
        Classify a raw error.

        Args:
            error: The raw failure (exception or error-like object)
            context: RetryContext of the current execution, if any

        Returns:
            ClassifiedError; the input itself when it is already classified
        """
        if isinstance(error, ClassifiedError):
            return error

        raw = RawFailure.from_error(error)
        kind, retryable = cls.classify_raw(raw)
        original = error if isinstance(error, BaseException) else None
        return ClassifiedError(
            kind,
            raw.message,
            status_code=raw.status_code,
            retryable=retryable,
            context=context,
            retry_after=raw.retry_after,
            original_error=original,
        )

    @classmethod
    def classify_raw(cls, raw: RawFailure) -> "tuple[ErrorKind, bool]":
        """Apply the classification rules in order and return (kind, retryable)."""
        message = raw.message.lower()
        status = raw.status_code

        if raw.transport == TRANSPORT_CONNECTION or _contains_any(message, cls.NETWORK_PATTERNS):
            return ErrorKind.NETWORK, True

        if status == cls.RATE_LIMIT_STATUS_CODE or _contains_any(message, cls.RATE_LIMIT_PATTERNS):
            return ErrorKind.RATE_LIMIT, True

        if status in cls.AUTHENTICATION_STATUS_CODES or _contains_any(message, cls.AUTHENTICATION_PATTERNS):
            return ErrorKind.AUTHENTICATION, False

        if status is not None and 500 <= status < 600:
            return ErrorKind.API_ERROR, True

        if status is not None and 400 <= status < 500:
            return ErrorKind.API_ERROR, False

        if raw.transport == TRANSPORT_TIMEOUT or _contains_any(message, cls.TIMEOUT_PATTERNS):
            return ErrorKind.TIMEOUT, True

        # Unclassified failures are never retried
        return ErrorKind.UNKNOWN, False

    @classmethod
    def is_retryable(cls, error: Any) -> bool:
        return cls.classify(error).retryable


def _contains_any(message: str, patterns) -> bool:
    return any(pattern in message for pattern in patterns)


def _extract_message(error: Any) -> str:
    if not isinstance(error, BaseException):
        # Error-like payloads (decoded JSON, SDK error bodies) carry a message field
        message = error.get("message") if isinstance(error, dict) else getattr(error, "message", None)
        if message:
            return str(message)
    try:
        message = str(error)
    except Exception:
        # If str() fails, try to get the message another way
        message = ""
    if not message:
        message = str(getattr(error, "message", "") or "")
    if not message and isinstance(error, BaseException):
        message = type(error).__name__
    return message


def _coerce_status(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


STATUS_FIELDS = ("status_code", "statusCode", "status")


def _extract_status_code(error: Any) -> Optional[int]:
    for name in STATUS_FIELDS:
        if isinstance(error, Mapping):
            status = _coerce_status(error.get(name))
        else:
            status = _coerce_status(getattr(error, name, None))
        if status is not None:
            return status

    response = getattr(error, "response", None)
    if response is not None:
        return _coerce_status(getattr(response, "status_code", None))
    return None


def _extract_retry_after(error: Any) -> Optional[float]:
    if isinstance(error, Mapping):
        retry_after = error.get("retry_after")
    else:
        retry_after = getattr(error, "retry_after", None)
    if isinstance(retry_after, (int, float)) and not isinstance(retry_after, bool):
        return float(retry_after)

    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if headers is None:
        return None
    try:
        value = headers.get("Retry-After") or headers.get("retry-after")
    except AttributeError:
        return None
    if value:
        try:
            return float(value)
        except (TypeError, ValueError):
            return None
    return None


def _detect_transport(error: Any) -> Optional[str]:
    # openai.APITimeoutError subclasses APIConnectionError, so timeouts go first
    if isinstance(error, (httpx.TimeoutException, openai.APITimeoutError,
                          asyncio.TimeoutError, TimeoutError)):
        return TRANSPORT_TIMEOUT
    if isinstance(error, (httpx.NetworkError, openai.APIConnectionError, ConnectionError)):
        return TRANSPORT_CONNECTION
    return None
