"""
Per-service rate limiting and cost budgeting.

Each configured ServiceKey gets a fixed window of ``window`` seconds during
which at most ``max_requests`` calls and, optionally, ``max_cost`` abstract
cost units are admitted. Cost is estimated per endpoint before the call, so
the same limiter also acts as a coarse cost governor.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Mapping, Optional

from .locks import KeyedLocks
from .types import ServiceKey

logger = logging.getLogger(__name__)

USAGE_MAX_AGE = 24 * 60 * 60.0

REQUEST_LIMIT_EXCEEDED = "Request limit exceeded"
COST_LIMIT_EXCEEDED = "Cost limit exceeded"


@dataclass
class RateLimitConfig:
    """Admission budget for one service."""
    max_requests: int
    window: float = 60.0
    max_cost: Optional[float] = None


@dataclass
class RateLimitWindow:
    count: int = 0
    cost: float = 0.0
    reset_time: float = 0.0


@dataclass
class UsageStats:
    """Reporting-only usage counters; never consulted for admission."""
    requests: int = 0
    cost: float = 0.0
    errors: int = 0
    denials: int = 0
    successes: int = 0
    actual_cost: float = 0.0
    last_request: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: Optional[int] = None
    reason: Optional[str] = None


@dataclass
class RemainingLimit:
    requests: float
    cost: float
    reset_time: float


CostEstimator = Callable[[Mapping[str, Any]], float]


def _text_length(params: Mapping[str, Any], key: str) -> int:
    return len(params.get(key) or "")


def _messages_length(params: Mapping[str, Any]) -> int:
    total = 0
    for message in params.get("messages") or []:
        if isinstance(message, Mapping):
            content = message.get("content")
        else:
            content = getattr(message, "content", None)
        total += len(content or "")
    if not total:
        total = _text_length(params, "prompt")
    return total


DEFAULT_RATE_LIMITS: Dict[ServiceKey, RateLimitConfig] = {
    ServiceKey("openai", "tts"): RateLimitConfig(max_requests=50, window=60.0, max_cost=100),
    ServiceKey("openai", "transcription"): RateLimitConfig(max_requests=30, window=60.0, max_cost=200),
    ServiceKey("openai", "conversation"): RateLimitConfig(max_requests=100, window=60.0, max_cost=500),
    ServiceKey("gemini", "conversation"): RateLimitConfig(max_requests=60, window=60.0, max_cost=300),
    ServiceKey("gemini", "translation"): RateLimitConfig(max_requests=80, window=60.0, max_cost=400),
}

DEFAULT_COST_ESTIMATORS: Dict[ServiceKey, CostEstimator] = {
    # 1 unit per 1000 characters of synthesized text
    ServiceKey("openai", "tts"): lambda p: math.ceil(_text_length(p, "text") / 1000),
    # Transcription is billed flat per request
    ServiceKey("openai", "transcription"): lambda p: 10,
    # ~1 unit per 100 characters (rough token estimate)
    ServiceKey("openai", "conversation"): lambda p: math.ceil(_messages_length(p) / 100),
    ServiceKey("gemini", "conversation"): lambda p: math.ceil(_text_length(p, "prompt") / 100),
    ServiceKey("gemini", "translation"): lambda p: math.ceil(_text_length(p, "text") / 200),
}

DEFAULT_COST = 1


class RateLimiter:
    """
    Sliding window admission control keyed by ServiceKey.

    Unconfigured services are always admitted. Construct one limiter at
    startup and share it between executors.
    """

    def __init__(
        self,
        configs: Optional[Mapping[ServiceKey, RateLimitConfig]] = None,
        cost_estimators: Optional[Mapping[ServiceKey, CostEstimator]] = None,
        clock: Callable[[], float] = time.time
    ):
        self._configs: Dict[ServiceKey, RateLimitConfig] = dict(
            DEFAULT_RATE_LIMITS if configs is None else configs
        )
        self._estimators: Dict[ServiceKey, CostEstimator] = dict(DEFAULT_COST_ESTIMATORS)
        if cost_estimators:
            self._estimators.update(cost_estimators)
        self._clock = clock
        self._windows: Dict[ServiceKey, RateLimitWindow] = {}
        self._usage: Dict[ServiceKey, UsageStats] = {}
        self._locks = KeyedLocks()
        self._map_lock = threading.Lock()

    def check_and_reserve(self, key: ServiceKey, estimated_cost: float = 1) -> RateLimitDecision:
        """
        Admit or deny one call to ``key`` and reserve its estimated cost.

        Returns:
            RateLimitDecision; denials carry the seconds left in the window
            (rounded up) and the reason
        """
        config = self._configs.get(key)
        if config is None:
            return RateLimitDecision(allowed=True)

        with self._locks(key):
            now = self._clock()
            window = self._windows.get(key)
            if window is None:
                window = RateLimitWindow(reset_time=now + config.window)
                with self._map_lock:
                    self._windows[key] = window

            if now >= window.reset_time:
                window.count = 0
                window.cost = 0.0
                window.reset_time = now + config.window

            retry_after = max(0, math.ceil(window.reset_time - now))

            if window.count + 1 > config.max_requests:
                logger.info(
                    f"Rate limit denied {key}: {REQUEST_LIMIT_EXCEEDED}",
                    extra={"service": str(key), "count": window.count, "retry_after": retry_after}
                )
                return RateLimitDecision(False, retry_after, REQUEST_LIMIT_EXCEEDED)

            if config.max_cost is not None and window.cost + estimated_cost > config.max_cost:
                logger.info(
                    f"Rate limit denied {key}: {COST_LIMIT_EXCEEDED}",
                    extra={"service": str(key), "cost": window.cost, "retry_after": retry_after}
                )
                return RateLimitDecision(False, retry_after, COST_LIMIT_EXCEEDED)

            window.count += 1
            window.cost += estimated_cost

            stats = self._stats_for(key)
            stats.requests += 1
            stats.cost += estimated_cost
            stats.last_request = now

        return RateLimitDecision(allowed=True)

    def record_usage(self, key: ServiceKey, actual_cost: float, success: bool):
        """Record the outcome of a call after it completes."""
        with self._locks(key):
            stats = self._stats_for(key)
            if success:
                stats.successes += 1
                stats.actual_cost += actual_cost
            else:
                stats.errors += 1
            stats.last_request = self._clock()

    def record_denial(self, key: ServiceKey):
        """Count a local denial; denied calls never reached the service so they are not errors."""
        with self._locks(key):
            stats = self._stats_for(key)
            stats.denials += 1
            stats.last_request = self._clock()

    def _stats_for(self, key: ServiceKey) -> UsageStats:
        stats = self._usage.get(key)
        if stats is None:
            stats = UsageStats()
            with self._map_lock:
                self._usage[key] = stats
        return stats

    def estimate_cost(self, key: ServiceKey, params: Optional[Mapping[str, Any]] = None) -> float:
        """Estimate the cost units of a call to ``key`` with the given request params."""
        estimator = self._estimators.get(key)
        if estimator is None:
            return DEFAULT_COST
        return estimator(params or {})

    def register_cost_estimator(self, key: ServiceKey, estimator: CostEstimator):
        self._estimators[key] = estimator

    def get_usage_stats(self, key: ServiceKey) -> UsageStats:
        stats = self._usage.get(key)
        return UsageStats(**asdict(stats)) if stats else UsageStats()

    def get_all_usage_stats(self) -> Dict[str, Dict[str, Any]]:
        with self._map_lock:
            items = list(self._usage.items())
        return {str(key): stats.to_dict() for key, stats in items}

    def get_remaining_limit(self, key: ServiceKey) -> RemainingLimit:
        config = self._configs.get(key)
        window = self._windows.get(key)
        if config is None or window is None or self._clock() >= window.reset_time:
            return RemainingLimit(
                requests=config.max_requests if config else math.inf,
                cost=config.max_cost if config and config.max_cost is not None else math.inf,
                reset_time=0.0,
            )

        max_cost = config.max_cost if config.max_cost is not None else math.inf
        return RemainingLimit(
            requests=max(0, config.max_requests - window.count),
            cost=max(0.0, max_cost - window.cost),
            reset_time=window.reset_time,
        )

    def get_recommended_delay(self, key: ServiceKey) -> int:
        """Seconds to wait before the next call so the remaining budget lasts the window."""
        remaining = self.get_remaining_limit(key)
        if key not in self._configs or remaining.requests > 10:
            return 0

        time_left = remaining.reset_time - self._clock()
        if remaining.requests == 0:
            return max(0, math.ceil(time_left))

        # Spread remaining requests over remaining time
        return max(0, math.ceil(time_left / remaining.requests))

    def is_high_error_rate(self, key: ServiceKey, threshold: float = 0.5) -> bool:
        stats = self._usage.get(key)
        if not stats or stats.requests == 0:
            return False
        return stats.errors / stats.requests > threshold

    def get_daily_usage(self, provider: Optional[str] = None) -> Dict[str, UsageStats]:
        """Usage of every service touched in the last 24 hours."""
        day_ago = self._clock() - USAGE_MAX_AGE
        with self._map_lock:
            items = list(self._usage.items())
        return {
            str(key): UsageStats(**asdict(stats))
            for key, stats in items
            if stats.last_request >= day_ago and (provider is None or key.provider == provider)
        }

    def update_config(self, key: ServiceKey, config: RateLimitConfig):
        self._configs[key] = config

    def get_configs(self) -> Dict[ServiceKey, RateLimitConfig]:
        return dict(self._configs)

    def cleanup(self) -> int:
        """Evict expired windows and usage older than 24 hours; return evicted count."""
        now = self._clock()
        day_ago = now - USAGE_MAX_AGE
        with self._map_lock:
            expired = [key for key, window in self._windows.items() if now >= window.reset_time]
            for key in expired:
                del self._windows[key]
            stale = [key for key, stats in self._usage.items() if stats.last_request < day_ago]
            for key in stale:
                del self._usage[key]
        return len(expired) + len(stale)
