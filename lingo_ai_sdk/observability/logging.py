"""
Structured logging utility for the reliability and orchestration layers.

Every record is prefixed with ``[provider=... endpoint=... key=value]`` so a
single grep over the logs follows one service through retries, breaker
transitions and fallbacks.
"""

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Optional


class ReliabilityLogger:
    """Structured logger scoped to one component."""

    def __init__(self, component: str):
        """
        Initialize logger for a component.

        Args:
            component: Component name (e.g., "retry", "orchestrator")
        """
        self.component = component
        self.logger = logging.getLogger(f"lingo_ai_sdk.{component}")

    def _format_message(self, message: str, **kwargs) -> str:
        """Format message with structured fields."""
        fields = []
        for key, value in kwargs.items():
            if value is not None:
                fields.append(f"{key}={value}")

        if not fields:
            return message
        return f"[{' '.join(fields)}] {message}"

    def debug(self, message: str, provider: Optional[str] = None,
              endpoint: Optional[str] = None, **kwargs):
        self.logger.debug(
            self._format_message(message, provider=provider, endpoint=endpoint, **kwargs)
        )

    def info(self, message: str, provider: Optional[str] = None,
             endpoint: Optional[str] = None, **kwargs):
        self.logger.info(
            self._format_message(message, provider=provider, endpoint=endpoint, **kwargs)
        )

    def warning(self, message: str, provider: Optional[str] = None,
                endpoint: Optional[str] = None, **kwargs):
        self.logger.warning(
            self._format_message(message, provider=provider, endpoint=endpoint, **kwargs)
        )

    def error(self, message: str, provider: Optional[str] = None,
              endpoint: Optional[str] = None, error: Optional[BaseException] = None, **kwargs):
        """Log error message; classified errors contribute kind and status."""
        if error is not None:
            kind = getattr(error, "kind", None)
            if kind is not None:
                kwargs['kind'] = getattr(kind, "value", kind)
                kwargs['status'] = getattr(error, "status_code", None)
            else:
                kwargs['error_type'] = type(error).__name__
            kwargs['error_msg'] = str(error)

        self.logger.error(
            self._format_message(message, provider=provider, endpoint=endpoint, **kwargs)
        )

    @contextmanager
    def track_request(self, capability: str, provider: str, request_id: Optional[str] = None):
        """
        Context manager that times one capability call and logs its outcome.

        Yields:
            Dict with request metadata including request_id
        """
        if request_id is None:
            request_id = str(uuid.uuid4())[:8]

        start_time = time.time()
        self.debug(f"Starting {capability} request", provider=provider, request_id=request_id)

        metadata = {
            'request_id': request_id,
            'provider': provider,
            'capability': capability,
            'start_time': start_time
        }

        try:
            yield metadata

            duration = time.time() - start_time
            self.info(
                f"Completed {capability} request",
                provider=provider,
                request_id=request_id,
                duration_ms=int(duration * 1000)
            )

        except Exception as e:
            duration = time.time() - start_time
            self.error(
                f"Failed {capability} request",
                provider=provider,
                request_id=request_id,
                duration_ms=int(duration * 1000),
                error=e
            )
            raise
