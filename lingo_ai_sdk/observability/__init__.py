"""Observability layer: structured logging for reliability events."""

from .logging import ReliabilityLogger

__all__ = ["ReliabilityLogger"]
