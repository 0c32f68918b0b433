"""
Circuit breaker registry for upstream AI services.

This module keeps one closed/open/half-open state machine per ServiceKey and
short-circuits calls to a service that keeps failing, giving it a cooldown
period before a probe call is let through again.
"""

from enum import Enum
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional
import logging
import threading
import time

from .locks import KeyedLocks
from .types import ServiceKey

logger = logging.getLogger(__name__)

# Breaker entries without a failure for this long are evicted by cleanup()
STATE_MAX_AGE = 24 * 60 * 60.0


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration."""
    failure_threshold: int = 5          # Failures before opening
    reset_timeout: float = 60.0         # Seconds before a probe is allowed
    monitoring_period: float = 300.0    # Failure count restarts after this much quiet
    half_open_max_probes: Optional[int] = 1  # None admits every half-open call

    # Optional callbacks, called with (service_key, state)
    on_open: Optional[Callable] = None
    on_close: Optional[Callable] = None
    on_half_open: Optional[Callable] = None


@dataclass
class CircuitBreakerState:
    """Breaker state for one service."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float = 0.0
    next_attempt_time: float = 0.0
    half_open_in_flight: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time,
            "next_attempt_time": (
                self.next_attempt_time if self.state == CircuitState.OPEN else None
            ),
        }


class CircuitBreakerRegistry:
    """
    Per-service circuit breakers.

    State is created lazily on the first failure of a service; a service
    without state is treated as closed. Construct one registry at startup
    and pass it to the executors that share it.
    """

    def __init__(
        self,
        default_config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        self.default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: Dict[ServiceKey, CircuitBreakerState] = {}
        self._configs: Dict[ServiceKey, CircuitBreakerConfig] = {}
        self._locks = KeyedLocks()
        self._map_lock = threading.Lock()

    def _resolve_config(
        self, key: ServiceKey, config: Optional[CircuitBreakerConfig]
    ) -> CircuitBreakerConfig:
        if config is not None:
            self._configs[key] = config
            return config
        return self._configs.get(key, self.default_config)

    def is_allowed(self, key: ServiceKey, config: Optional[CircuitBreakerConfig] = None) -> bool:
        """
        Check whether a call to ``key`` may proceed.

        An open breaker whose cooldown has elapsed moves to half-open as a
        side effect of this call, and the call is admitted as a probe.
        """
        config = self._resolve_config(key, config)
        with self._locks(key):
            breaker = self._breakers.get(key)
            if breaker is None or breaker.state == CircuitState.CLOSED:
                return True

            if breaker.state == CircuitState.OPEN:
                if self._clock() >= breaker.next_attempt_time:
                    self._transition_to_half_open(key, breaker, config)
                    breaker.half_open_in_flight = 1
                    return True
                return False

            # Half-open: admit up to the configured number of concurrent probes
            limit = config.half_open_max_probes
            if limit is None or breaker.half_open_in_flight < limit:
                breaker.half_open_in_flight += 1
                return True
            return False

    def on_success(self, key: ServiceKey):
        """Record a successful call; closes a half-open breaker."""
        with self._locks(key):
            breaker = self._breakers.get(key)
            if breaker is None or breaker.state != CircuitState.HALF_OPEN:
                return
            config = self._configs.get(key, self.default_config)
            self._transition_to_closed(key, breaker, config)

    def on_failure(self, key: ServiceKey, config: Optional[CircuitBreakerConfig] = None):
        """Record a failed call; may open the breaker."""
        config = self._resolve_config(key, config)
        with self._locks(key):
            now = self._clock()
            breaker = self._breakers.get(key)
            if breaker is None:
                breaker = CircuitBreakerState(last_failure_time=now)
                with self._map_lock:
                    self._breakers[key] = breaker

            if (breaker.state == CircuitState.CLOSED
                    and breaker.failure_count > 0
                    and now - breaker.last_failure_time > config.monitoring_period):
                breaker.failure_count = 0

            breaker.failure_count += 1
            breaker.last_failure_time = now

            if breaker.state == CircuitState.HALF_OPEN:
                # Single failure in half-open goes back to open
                self._transition_to_open(key, breaker, config, now)
            elif breaker.state == CircuitState.OPEN:
                breaker.next_attempt_time = now + config.reset_timeout
            elif breaker.failure_count >= config.failure_threshold:
                self._transition_to_open(key, breaker, config, now)

            logger.warning(
                f"Circuit breaker {key} recorded failure",
                extra={
                    "circuit_breaker": str(key),
                    "state": breaker.state.value,
                    "failure_count": breaker.failure_count,
                }
            )

    def release_probe(self, key: ServiceKey):
        """Give back a half-open probe slot whose call never reported an outcome."""
        with self._locks(key):
            breaker = self._breakers.get(key)
            if breaker is not None and breaker.half_open_in_flight > 0:
                breaker.half_open_in_flight -= 1

    def _transition_to_open(self, key: ServiceKey, breaker: CircuitBreakerState,
                            config: CircuitBreakerConfig, now: float):
        previous_state = breaker.state
        breaker.state = CircuitState.OPEN
        breaker.next_attempt_time = now + config.reset_timeout
        breaker.half_open_in_flight = 0

        logger.error(
            f"Circuit breaker {key} opened",
            extra={
                "circuit_breaker": str(key),
                "previous_state": previous_state.value,
                "failure_count": breaker.failure_count,
                "next_attempt_time": breaker.next_attempt_time,
            }
        )
        self._call_callback(config.on_open, key, breaker)

    def _transition_to_closed(self, key: ServiceKey, breaker: CircuitBreakerState,
                              config: CircuitBreakerConfig):
        previous_state = breaker.state
        breaker.state = CircuitState.CLOSED
        breaker.failure_count = 0
        breaker.next_attempt_time = 0.0
        breaker.half_open_in_flight = 0

        logger.info(
            f"Circuit breaker {key} closed",
            extra={"circuit_breaker": str(key), "previous_state": previous_state.value}
        )
        self._call_callback(config.on_close, key, breaker)

    def _transition_to_half_open(self, key: ServiceKey, breaker: CircuitBreakerState,
                                 config: CircuitBreakerConfig):
        previous_state = breaker.state
        breaker.state = CircuitState.HALF_OPEN
        breaker.half_open_in_flight = 0

        logger.info(
            f"Circuit breaker {key} half-open",
            extra={"circuit_breaker": str(key), "previous_state": previous_state.value}
        )
        self._call_callback(config.on_half_open, key, breaker)

    def _call_callback(self, callback: Optional[Callable], key: ServiceKey,
                       breaker: CircuitBreakerState):
        if callback is None:
            return
        try:
            callback(key, replace(breaker))
        except Exception as e:
            logger.error(f"Error in circuit breaker callback for {key}: {e}")

    def get_status(self, key: ServiceKey) -> CircuitBreakerState:
        """Snapshot of a service's breaker; closed with no failures if unknown."""
        with self._locks(key):
            breaker = self._breakers.get(key)
            return replace(breaker) if breaker else CircuitBreakerState()

    def get_all_statuses(self) -> Dict[str, Dict[str, Any]]:
        with self._map_lock:
            items = list(self._breakers.items())
        return {str(key): breaker.to_dict() for key, breaker in items}

    def reset(self, key: ServiceKey):
        """Forget a service's breaker state."""
        with self._locks(key):
            with self._map_lock:
                self._breakers.pop(key, None)
        logger.info(f"Circuit breaker {key} reset")

    def reset_all(self):
        with self._map_lock:
            self._breakers.clear()
        logger.info("All circuit breakers reset")

    def cleanup(self, max_age: float = STATE_MAX_AGE) -> int:
        """Evict breakers whose last failure is older than ``max_age`` seconds."""
        now = self._clock()
        with self._map_lock:
            stale = [
                key for key, breaker in self._breakers.items()
                if now - breaker.last_failure_time > max_age
            ]
            for key in stale:
                del self._breakers[key]
        if stale:
            logger.debug(f"Evicted {len(stale)} idle circuit breakers")
        return len(stale)

    def __len__(self) -> int:
        return len(self._breakers)
