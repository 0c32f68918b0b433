"""
Base Provider Adapter Interface

This module defines the abstract base class for AI provider adapters.
Concrete adapters own transport, authentication and payload shaping for one
provider; the orchestrator only sees this interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, List, Optional

from ..models.responses import Capability, ConversationMessage


# Rate-limit/breaker endpoint used for each capability unless an adapter overrides it
DEFAULT_ENDPOINTS: Dict[Capability, str] = {
    Capability.CONVERSATION: "conversation",
    Capability.TRANSLATION: "translation",
    Capability.GRAMMAR: "conversation",
    Capability.SPEECH: "tts",
    Capability.TRANSCRIPTION: "transcription",
}


class ProviderAdapter(ABC):
    """
    Abstract base class for AI provider adapters.

    Subclasses declare ``name`` and the ``capabilities`` they implement, and
    override the matching coroutine methods. Each method returns the raw
    provider payload (decoded JSON dict, SDK object, audio bytes or plain
    text); normalization happens in the orchestrator.

    Errors should be raised as they come from the transport (httpx, openai
    SDK exceptions, or anything with ``status_code``/``message``); the
    reliability layer classifies them.
    """

    name: str = ""
    capabilities: FrozenSet[Capability] = frozenset()
    endpoints: Dict[Capability, str] = DEFAULT_ENDPOINTS

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def endpoint_for(self, capability: Capability) -> str:
        """Endpoint name used to key rate limits and breaker state."""
        return self.endpoints.get(capability, capability.value)

    def get_provider_name(self) -> str:
        """
        Get the name of this provider.

        Returns ``name`` when set, otherwise the class name without the
        'Provider' suffix.
        """
        if self.name:
            return self.name
        class_name = self.__class__.__name__
        if class_name.endswith("Provider"):
            return class_name[:-8].lower()
        return class_name.lower()

    async def converse(
        self,
        prompt: str,
        messages: Optional[List[ConversationMessage]] = None,
        **options: Any
    ) -> Any:
        raise NotImplementedError(f"{self.get_provider_name()} does not support conversation")

    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        include_explanation: bool = False,
        **options: Any
    ) -> Any:
        raise NotImplementedError(f"{self.get_provider_name()} does not support translation")

    async def check_grammar(self, text: str, language: Optional[str] = None, **options: Any) -> Any:
        raise NotImplementedError(f"{self.get_provider_name()} does not support grammar checks")

    async def synthesize_speech(self, text: str, voice: Optional[str] = None, **options: Any) -> Any:
        raise NotImplementedError(f"{self.get_provider_name()} does not support speech synthesis")

    async def transcribe(self, audio: bytes, language: Optional[str] = None, **options: Any) -> Any:
        raise NotImplementedError(f"{self.get_provider_name()} does not support transcription")

    @abstractmethod
    async def check_availability(self) -> bool:
        """
        Probe the provider with a minimal representative call.

        Returns:
            bool: True if the provider answered, False otherwise
        """
        pass
