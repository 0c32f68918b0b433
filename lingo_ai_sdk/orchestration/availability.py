"""Cached provider availability probing."""

import asyncio
import logging
import time
from typing import Callable, Dict, Mapping, Optional

from ..providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

AVAILABILITY_TTL = 5 * 60.0


class AvailabilityCache:
    """
    Probes providers with their minimal call and caches the booleans.

    A probe that raises counts as unavailable. All providers are re-probed
    together once the cached snapshot is older than ``ttl`` seconds.
    """

    def __init__(
        self,
        providers: Mapping[str, ProviderAdapter],
        ttl: float = AVAILABILITY_TTL,
        clock: Callable[[], float] = time.time
    ):
        self.providers = providers
        self.ttl = ttl
        self._clock = clock
        self._status: Dict[str, bool] = {}
        self._last_checked: Optional[float] = None
        self._lock: Optional[asyncio.Lock] = None

    @property
    def last_checked(self) -> Optional[float]:
        return self._last_checked

    def _get_lock(self) -> asyncio.Lock:
        # Created on first use so it binds to the running loop
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def is_stale(self) -> bool:
        if self._last_checked is None:
            return True
        return self._clock() - self._last_checked >= self.ttl

    async def check(self, force: bool = False) -> Dict[str, bool]:
        """
        Return ``{provider: bool, ..., "overall": bool}``, probing if stale.

        Concurrent callers share a single probe round.
        """
        async with self._get_lock():
            if force or self.is_stale():
                names = list(self.providers)
                results = await asyncio.gather(
                    *(self._probe(name) for name in names)
                )
                self._status = dict(zip(names, results))
                self._last_checked = self._clock()
                logger.info("Provider availability refreshed", extra={"availability": self._status})

        return self.snapshot()

    def snapshot(self) -> Dict[str, bool]:
        """Last known availability without probing; unprobed providers read as available."""
        status = {name: self._status.get(name, True) for name in self.providers}
        status["overall"] = any(status.values())
        return status

    def invalidate(self):
        self._last_checked = None

    async def _probe(self, name: str) -> bool:
        try:
            return bool(await self.providers[name].check_availability())
        except Exception as e:
            logger.warning(f"Availability probe for {name} failed: {e}")
            return False
