"""Capability-level orchestrator with provider fallback.

The orchestrator picks a provider for each capability call, runs the call
through the shared RetryExecutor, and falls back to the next provider that
implements the same capability when the call fails with a classified error.
Responses are normalized so callers never see provider payloads.
"""

import functools
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ..config.rate_limits import load_rate_limits
from ..config.settings import ReliabilitySettings
from ..models.responses import Capability, CapabilityResponse, ConversationMessage
from ..observability.logging import ReliabilityLogger
from ..providers.base import ProviderAdapter
from ..providers.normalization import NormalizedPayload, normalize_payload, parse_translation
from ..reliability.circuit_breaker import CircuitBreakerRegistry
from ..reliability.errors import CapabilityUnavailableError, ClassifiedError
from ..reliability.maintenance import MaintenanceTask
from ..reliability.rate_limiter import RateLimiter
from ..reliability.retry import RetryExecutor
from ..reliability.types import CancellationToken, RetryContext
from .availability import AvailabilityCache


# Language analysis prefers gemini; dialogue and audio prefer openai
DEFAULT_PREFERENCES: Dict[Capability, Tuple[str, ...]] = {
    Capability.CONVERSATION: ("openai", "gemini"),
    Capability.TRANSLATION: ("gemini", "openai"),
    Capability.GRAMMAR: ("gemini", "openai"),
    Capability.SPEECH: ("openai", "gemini"),
    Capability.TRANSCRIPTION: ("openai", "gemini"),
}


class ProviderOrchestrator:
    """Routes capability calls across providers.

    The orchestrator is responsible for:
    1. Ordering providers per capability (explicit preference, availability,
       capability default)
    2. Running each provider call through the RetryExecutor
    3. Falling back to each remaining provider at most once
    4. Normalizing provider payloads into CapabilityResponse
    """

    def __init__(
        self,
        providers: Iterable[ProviderAdapter],
        executor: Optional[RetryExecutor] = None,
        settings: Optional[ReliabilitySettings] = None,
        preferences: Optional[Mapping[Capability, Tuple[str, ...]]] = None,
        availability: Optional[AvailabilityCache] = None,
        clock: Callable[[], float] = time.time
    ):
        # Explicit settings override an injected executor's policies
        explicit = settings is not None
        self.settings = settings if explicit else ReliabilitySettings.from_env()
        self.providers: Dict[str, ProviderAdapter] = {
            adapter.get_provider_name(): adapter for adapter in providers
        }
        if executor is None:
            executor = RetryExecutor(
                rate_limiter=RateLimiter(load_rate_limits(), clock=clock),
                breakers=CircuitBreakerRegistry(self.settings.breaker_config(), clock=clock),
                default_config=self.settings.retry_config(),
            )
        self.executor = executor
        self.retry_config = self.settings.retry_config() if explicit else None
        self.breaker_config = self.settings.breaker_config() if explicit else None
        self.preferences = dict(DEFAULT_PREFERENCES)
        if preferences:
            self.preferences.update(preferences)
        self.availability = availability or AvailabilityCache(
            self.providers, ttl=self.settings.availability_ttl, clock=clock
        )
        self.maintenance = MaintenanceTask(
            self.executor.breakers, self.executor.rate_limiter,
            interval=self.settings.cleanup_interval
        )
        self.logger = ReliabilityLogger("orchestrator")

    async def __aenter__(self) -> "ProviderOrchestrator":
        await self.maintenance.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.maintenance.stop()

    def providers_for(self, capability: Capability) -> List[str]:
        """Providers implementing ``capability``, in default preference order."""
        preferred = self.preferences.get(capability, ())
        supporting = [name for name, adapter in self.providers.items() if adapter.supports(capability)]
        ranked = [name for name in preferred if name in supporting]
        return ranked + [name for name in supporting if name not in ranked]

    async def _provider_order(self, capability: Capability, provider: Optional[str]) -> List[str]:
        order = self.providers_for(capability)
        if provider is not None and provider in order:
            order.remove(provider)
            return [provider] + order

        availability = await self.availability.check()
        # Stable: available providers first, default order otherwise kept
        return sorted(order, key=lambda name: not availability.get(name, True))

    async def _run(
        self,
        capability: Capability,
        call: Callable[[ProviderAdapter], Awaitable[Any]],
        cost_params: Dict[str, Any],
        provider: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> Tuple[str, NormalizedPayload, bool, List[str]]:
        order = await self._provider_order(capability, provider)
        if not order:
            raise CapabilityUnavailableError(capability.value)

        errors: Dict[str, BaseException] = {}
        for index, name in enumerate(order):
            adapter = self.providers[name]
            context = RetryContext(endpoint=adapter.endpoint_for(capability), provider=name)
            cost = self.executor.rate_limiter.estimate_cost(context.service_key, cost_params)

            try:
                with self.logger.track_request(capability.value, name):
                    payload = await self.executor.execute_with_retry(
                        functools.partial(call, adapter),
                        context,
                        self.retry_config,
                        self.breaker_config,
                        estimated_cost=cost,
                        cancel_token=cancel_token,
                    )
            except ClassifiedError as error:
                errors[name] = error
                if index + 1 < len(order):
                    self.logger.warning(
                        f"Falling back to {order[index + 1]}",
                        provider=name, endpoint=context.endpoint, kind=error.kind.value
                    )
                continue

            failures = [f"{failed}: {error}" for failed, error in errors.items()]
            return name, normalize_payload(payload), index > 0, failures

        raise CapabilityUnavailableError(capability.value, errors, tried=list(errors))

    def _response(
        self,
        capability: Capability,
        result: Tuple[str, NormalizedPayload, bool, List[str]],
        **fields: Any
    ) -> CapabilityResponse:
        name, normalized, fallback_used, failures = result
        usage = dict(normalized.usage)
        usage["provider"] = name
        return CapabilityResponse(
            text=fields.pop("text", normalized.text),
            provider_used=name,
            capability=capability,
            usage_metadata=usage,
            fallback_used=fallback_used,
            audio=normalized.audio,
            errors=failures,
            **fields,
        )

    async def converse(
        self,
        prompt: str,
        messages: Optional[List[ConversationMessage]] = None,
        provider: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        **options: Any
    ) -> CapabilityResponse:
        """
        Generate a conversational reply.

        Args:
            prompt: The user's latest message
            messages: Prior conversation turns
            provider: Provider to try first
            cancel_token: Aborts between attempts when cancelled
            **options: Passed through to the adapter (language, user_level, ...)

        Raises:
            CapabilityUnavailableError: Every conversation provider failed
        """
        history = list(messages or [])
        cost_params = {
            "prompt": prompt,
            "messages": history + [{"role": "user", "content": prompt}],
        }

        async def call(adapter: ProviderAdapter) -> Any:
            return await adapter.converse(prompt, messages=history, **options)

        result = await self._run(Capability.CONVERSATION, call, cost_params, provider, cancel_token)
        return self._response(Capability.CONVERSATION, result)

    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        include_explanation: bool = False,
        provider: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        **options: Any
    ) -> CapabilityResponse:
        """Translate text; with ``include_explanation`` a JSON reply is split into translation and explanation."""
        async def call(adapter: ProviderAdapter) -> Any:
            return await adapter.translate(
                text, source_language, target_language,
                include_explanation=include_explanation, **options
            )

        result = await self._run(Capability.TRANSLATION, call, {"text": text}, provider, cancel_token)
        translation, explanation = parse_translation(result[1].text, include_explanation)
        return self._response(Capability.TRANSLATION, result, text=translation, explanation=explanation)

    async def check_grammar(
        self,
        text: str,
        language: Optional[str] = None,
        provider: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        **options: Any
    ) -> CapabilityResponse:
        async def call(adapter: ProviderAdapter) -> Any:
            return await adapter.check_grammar(text, language=language, **options)

        cost_params = {"text": text, "prompt": text, "messages": [{"role": "user", "content": text}]}
        result = await self._run(Capability.GRAMMAR, call, cost_params, provider, cancel_token)
        return self._response(Capability.GRAMMAR, result)

    async def synthesize_speech(
        self,
        text: str,
        voice: Optional[str] = None,
        provider: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        **options: Any
    ) -> CapabilityResponse:
        async def call(adapter: ProviderAdapter) -> Any:
            return await adapter.synthesize_speech(text, voice=voice, **options)

        result = await self._run(Capability.SPEECH, call, {"text": text}, provider, cancel_token)
        return self._response(Capability.SPEECH, result)

    async def transcribe(
        self,
        audio: bytes,
        language: Optional[str] = None,
        provider: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        **options: Any
    ) -> CapabilityResponse:
        async def call(adapter: ProviderAdapter) -> Any:
            return await adapter.transcribe(audio, language=language, **options)

        result = await self._run(Capability.TRANSCRIPTION, call, {}, provider, cancel_token)
        return self._response(Capability.TRANSCRIPTION, result)

    async def check_availability(self, force: bool = False) -> Dict[str, bool]:
        """Cached availability per provider plus ``overall``."""
        return await self.availability.check(force=force)

    def get_service_stats(self) -> Dict[str, Any]:
        return {
            "availability": self.availability.snapshot(),
            "last_checked": self.availability.last_checked,
            "capabilities": {
                capability.value: self.providers_for(capability) for capability in Capability
            },
        }

    def get_reliability_metrics(self) -> Dict[str, Any]:
        return {
            "retry": self.executor.get_metrics(),
            "circuit_breakers": self.executor.breakers.get_all_statuses(),
            "usage": self.executor.rate_limiter.get_all_usage_stats(),
        }

    def reset_reliability(self):
        """Reset every breaker and force the next call to re-probe availability."""
        self.executor.breakers.reset_all()
        self.availability.invalidate()
