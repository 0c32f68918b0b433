"""Data models for the Lingo AI SDK."""

from .responses import Capability, CapabilityResponse, ConversationMessage, ProviderType

__all__ = [
    "Capability",
    "CapabilityResponse",
    "ConversationMessage",
    "ProviderType",
]
