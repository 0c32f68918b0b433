"""
Provider Adapters Layer

Adapters translate between the orchestrator's capability calls and one
provider's API. Concrete adapters live with the application; this package
holds the adapter contract and payload normalization.
"""

from .base import DEFAULT_ENDPOINTS, ProviderAdapter
from .normalization import NormalizedPayload, normalize_payload, normalize_usage, parse_translation

__all__ = [
    "DEFAULT_ENDPOINTS",
    "ProviderAdapter",
    "NormalizedPayload",
    "normalize_payload",
    "normalize_usage",
    "parse_translation",
]
