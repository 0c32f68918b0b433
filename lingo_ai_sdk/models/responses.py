from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from enum import Enum


class ProviderType(str, Enum):
    """Known AI providers."""
    OPENAI = "openai"
    GEMINI = "gemini"


class Capability(str, Enum):
    """Capabilities the orchestrator can route between providers."""
    CONVERSATION = "conversation"
    TRANSLATION = "translation"
    GRAMMAR = "grammar"
    SPEECH = "speech"
    TRANSCRIPTION = "transcription"


class ConversationMessage(BaseModel):
    """One turn of prior conversation passed along with a prompt."""
    role: str = Field(..., description="Speaker role: system, user or assistant")
    content: str = Field(..., description="Turn text")


class CapabilityResponse(BaseModel):
    """
    Provider-agnostic result of one capability call.

    Callers never see provider payloads; ``usage_metadata`` carries whatever
    usage block the provider returned, and ``provider_used`` names the
    provider that actually served the call.
    """
    text: str = Field(default="", description="Text result (reply, translation, transcript)")
    provider_used: str = Field(..., description="Provider that served the call")
    capability: Capability
    usage_metadata: Dict[str, Any] = Field(default_factory=dict, description="Provider usage block")
    fallback_used: bool = Field(default=False, description="True when a non-primary provider served it")
    audio: Optional[bytes] = Field(None, description="Synthesized audio (speech only)")
    explanation: Optional[str] = Field(None, description="Translation explanation, when requested")
    errors: List[str] = Field(default_factory=list, description="Failures of providers tried before this one")
