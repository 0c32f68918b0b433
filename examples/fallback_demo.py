"""
Example: Provider Fallback

Wires an OpenAI adapter (openai SDK) and a Gemini adapter (httpx against the
REST API) into a ProviderOrchestrator and runs a few capability calls.
Needs OPENAI_API_KEY and GEMINI_API_KEY in the environment or a .env file.
"""

import asyncio
import json
import os
from typing import Any, List, Optional

import httpx
from dotenv import load_dotenv
from openai import AsyncOpenAI

from lingo_ai_sdk import Capability, ProviderAdapter, ProviderOrchestrator
from lingo_ai_sdk.reliability import CapabilityUnavailableError

load_dotenv()

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"


def _messages(prompt: str, history: Optional[List[Any]]) -> List[dict]:
    messages = [{"role": m.role, "content": m.content} for m in history or []]
    messages.append({"role": "user", "content": prompt})
    return messages


class OpenAIProvider(ProviderAdapter):
    """Conversation, translation, grammar, speech and transcription over the openai SDK."""

    name = "openai"
    capabilities = frozenset(Capability)

    def __init__(self, model: str = "gpt-4o-mini"):
        self.model = model
        self._client: Optional[AsyncOpenAI] = None
        self._api_key = os.getenv("OPENAI_API_KEY")

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise RuntimeError("OpenAI API key not found in environment variables")
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=60.0)
        return self._client

    async def _chat(self, messages: List[dict]) -> Any:
        return await self.client.chat.completions.create(model=self.model, messages=messages)

    async def converse(self, prompt, messages=None, **options):
        return await self._chat(_messages(prompt, messages))

    async def translate(self, text, source_language, target_language,
                        include_explanation=False, **options):
        instruction = f"Translate from {source_language} to {target_language}."
        if include_explanation:
            instruction += ' Reply as JSON: {"translation": ..., "explanation": ...}'
        return await self._chat([
            {"role": "system", "content": instruction},
            {"role": "user", "content": text},
        ])

    async def check_grammar(self, text, language=None, **options):
        return await self._chat([
            {"role": "system", "content": f"Correct the grammar of this {language or ''} text."},
            {"role": "user", "content": text},
        ])

    async def synthesize_speech(self, text, voice=None, **options):
        response = await self.client.audio.speech.create(
            model="tts-1", voice=voice or "alloy", input=text
        )
        return response.content

    async def transcribe(self, audio, language=None, **options):
        kwargs = {"language": language} if language else {}
        return await self.client.audio.transcriptions.create(
            model="whisper-1", file=("speech.wav", audio), **kwargs
        )

    async def check_availability(self) -> bool:
        await self.client.models.list()
        return True


class GeminiProvider(ProviderAdapter):
    """Conversation, translation and grammar over the Gemini REST API."""

    name = "gemini"
    capabilities = frozenset({Capability.CONVERSATION, Capability.TRANSLATION, Capability.GRAMMAR})

    def __init__(self):
        self._api_key = os.getenv("GEMINI_API_KEY")

    async def _generate(self, text: str) -> dict:
        async with httpx.AsyncClient(timeout=60.0) as client:
            response = await client.post(
                GEMINI_URL,
                params={"key": self._api_key},
                json={"contents": [{"parts": [{"text": text}]}]},
            )
            # HTTPStatusError carries the response the classifier reads
            response.raise_for_status()
            return response.json()

    async def converse(self, prompt, messages=None, **options):
        transcript = "\n".join(f"{m['role']}: {m['content']}" for m in _messages(prompt, messages))
        return await self._generate(transcript)

    async def translate(self, text, source_language, target_language,
                        include_explanation=False, **options):
        instruction = f"Translate from {source_language} to {target_language}:"
        if include_explanation:
            instruction = 'Reply as JSON {"translation": ..., "explanation": ...}. ' + instruction
        return await self._generate(f"{instruction}\n{text}")

    async def check_grammar(self, text, language=None, **options):
        return await self._generate(f"Correct the grammar of this text:\n{text}")

    async def check_availability(self) -> bool:
        await self._generate("ping")
        return True


async def main():
    async with ProviderOrchestrator([OpenAIProvider(), GeminiProvider()]) as orchestrator:
        print("Availability:", await orchestrator.check_availability())

        try:
            reply = await orchestrator.converse("Hallo! Wie geht es dir?", user_level="A2")
            print(f"\n[{reply.provider_used}] {reply.text}")

            translation = await orchestrator.translate(
                "Where is the train station?", "en", "de", include_explanation=True
            )
            print(f"\n[{translation.provider_used}] {translation.text}")
            if translation.explanation:
                print(f"  why: {translation.explanation}")
            if translation.fallback_used:
                print(f"  fallback after: {translation.errors}")
        except CapabilityUnavailableError as e:
            print(f"\n{e}")
            for provider, error in e.errors.items():
                print(f"  {provider}: {error}")

        print("\nReliability:")
        print(json.dumps(orchestrator.get_reliability_metrics(), indent=2, default=str))


if __name__ == "__main__":
    asyncio.run(main())
