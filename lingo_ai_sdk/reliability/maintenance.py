"""Periodic eviction of idle rate-limit windows, usage stats and breaker state."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .circuit_breaker import CircuitBreakerRegistry
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL = 5 * 60.0


class MaintenanceTask:
    """
    Background sweeper for the shared registries.

    Runs ``cleanup()`` on the breaker registry and the rate limiter every
    ``interval`` seconds while started. ``run_once`` performs a single sweep
    and is what the loop calls.
    """

    def __init__(
        self,
        breakers: CircuitBreakerRegistry,
        rate_limiter: RateLimiter,
        interval: float = CLEANUP_INTERVAL,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.breakers = breakers
        self.rate_limiter = rate_limiter
        self.interval = interval
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.sweeps = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> Dict[str, int]:
        evicted = {
            "circuit_breakers": self.breakers.cleanup(),
            "rate_limits": self.rate_limiter.cleanup(),
        }
        self.sweeps += 1
        logger.debug("Maintenance sweep finished", extra={"evicted": evicted})
        return evicted

    async def start(self) -> None:
        """Start the sweep loop on the running event loop."""
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the sweep loop and wait for it to exit."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while True:
            await self._sleep(self.interval)
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Error in maintenance sweep: {e}")
