"""Capability orchestration across AI providers."""

from .availability import AvailabilityCache
from .orchestrator import DEFAULT_PREFERENCES, ProviderOrchestrator

__all__ = [
    "AvailabilityCache",
    "DEFAULT_PREFERENCES",
    "ProviderOrchestrator",
]
