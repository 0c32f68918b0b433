"""Rate-limit table loading with environment overrides."""

import os
import json
import logging
from typing import Any, Dict, Mapping, Optional

from ..reliability.rate_limiter import DEFAULT_RATE_LIMITS, RateLimitConfig
from ..reliability.types import ServiceKey

logger = logging.getLogger(__name__)


def parse_rate_limits(raw: Mapping[str, Any]) -> Dict[ServiceKey, RateLimitConfig]:
    """
    Parse a ``{"provider-endpoint": {max_requests, window, max_cost}}`` mapping.

    Raises:
        ValueError: A key or an entry is malformed
    """
    table = {}
    for name, entry in raw.items():
        key = ServiceKey.parse(name)
        if not isinstance(entry, Mapping) or "max_requests" not in entry:
            raise ValueError(f"Rate limit for {name} must be an object with max_requests")
        max_cost = entry.get("max_cost")
        table[key] = RateLimitConfig(
            max_requests=int(entry["max_requests"]),
            window=float(entry.get("window", 60.0)),
            max_cost=float(max_cost) if max_cost is not None else None,
        )
    return table


def load_rate_limit_overrides() -> Dict[ServiceKey, RateLimitConfig]:
    """
    Load rate-limit overrides from environment variable or file.

    Priority order:
    1. LINGO_RATE_LIMITS_JSON environment variable (JSON string)
    2. LINGO_RATE_LIMITS_FILE environment variable (path to JSON file)

    Returns:
        Dict mapping ServiceKey to its overriding RateLimitConfig
    """
    json_str = os.getenv("LINGO_RATE_LIMITS_JSON")
    if json_str:
        try:
            overrides = parse_rate_limits(json.loads(json_str))
            logger.info(f"Loaded rate limit overrides for {len(overrides)} services from environment")
            return overrides
        except ValueError as e:
            # json.JSONDecodeError is a ValueError
            logger.error(f"Failed to parse LINGO_RATE_LIMITS_JSON: {e}")

    file_path = os.getenv("LINGO_RATE_LIMITS_FILE")
    if file_path:
        try:
            with open(file_path, 'r') as f:
                overrides = parse_rate_limits(json.load(f))
            logger.info(f"Loaded rate limit overrides for {len(overrides)} services from {file_path}")
            return overrides
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load rate limit overrides from {file_path}: {e}")

    return {}


def load_rate_limits(
    overrides: Optional[Mapping[ServiceKey, RateLimitConfig]] = None
) -> Dict[ServiceKey, RateLimitConfig]:
    """Default table merged with overrides (explicit, else from the environment)."""
    table = dict(DEFAULT_RATE_LIMITS)
    table.update(load_rate_limit_overrides() if overrides is None else overrides)
    return table
