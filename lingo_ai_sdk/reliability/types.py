"""
Shared value types for the reliability layer.

ServiceKey scopes all per-service state (rate windows, breaker state, usage),
RetryContext travels with one execution of the retry executor, and
CancellationToken lets a caller abandon a request between attempts.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, NamedTuple, Optional


class ServiceKey(NamedTuple):
    """Composite identity of an upstream service: (provider, endpoint)."""
    provider: str
    endpoint: str

    def __str__(self) -> str:
        return f"{self.provider}-{self.endpoint}"

    @classmethod
    def parse(cls, value: str) -> "ServiceKey":
        """Parse the ``provider-endpoint`` form produced by ``str()``."""
        provider, sep, endpoint = value.partition("-")
        if not sep or not provider or not endpoint:
            raise ValueError(f"Invalid service key: {value!r}")
        return cls(provider, endpoint)


@dataclass
class RetryContext:
    """
    Context threaded through one execution of the retry executor.

    The executor resets ``start_time``, ``attempt`` and ``last_error`` when an
    execution starts, so a context can be reused; ``attempt`` runs
    1..total_attempts.
    """
    endpoint: str
    provider: str
    attempt: int = 0
    total_attempts: int = 0
    last_error: Optional[BaseException] = None
    start_time: float = field(default_factory=time.time)

    @property
    def service_key(self) -> ServiceKey:
        return ServiceKey(self.provider, self.endpoint)

    def elapsed(self) -> float:
        """Seconds since the execution started."""
        return time.time() - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "provider": self.provider,
            "attempt": self.attempt,
            "total_attempts": self.total_attempts,
            "last_error": str(self.last_error) if self.last_error else None,
            "start_time": self.start_time,
        }


class CancellationToken:
    """
    Cooperative cancellation signal for a retry execution.

    The executor checks the token before every attempt and wakes up early
    from backoff and rate-limit waits. An operation that is already running
    is never interrupted.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None):
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait_cancelled(self):
        """Block until the token is cancelled."""
        await self._event.wait()
