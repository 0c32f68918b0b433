"""
Response normalization for provider payloads.

Adapters return whatever their upstream API returns; these helpers map the
known payload shapes into one NormalizedPayload so the orchestrator never
branches on provider. Payloads may be plain dicts (decoded JSON) or SDK
objects exposing the same fields as attributes.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass
class NormalizedPayload:
    text: str = ""
    usage: Dict[str, Any] = field(default_factory=dict)
    audio: Optional[bytes] = None


def _get(obj: Any, key: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _first(items: Any) -> Any:
    try:
        return items[0] if items else None
    except (IndexError, KeyError, TypeError):
        return None


def _as_dict(usage: Any) -> Dict[str, Any]:
    if usage is None:
        return {}
    if isinstance(usage, dict):
        return dict(usage)
    # pydantic models from the openai SDK
    if hasattr(usage, "model_dump"):
        return usage.model_dump()
    return dict(vars(usage))


def normalize_usage(usage_data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Normalize usage data into standard token counts.

    Recognizes OpenAI (``prompt_tokens``/``completion_tokens``) and Gemini
    (``promptTokenCount``/``candidatesTokenCount``) field names. The raw
    block is kept under ``raw``.

    Returns:
        Dict with prompt_tokens, completion_tokens, total_tokens and raw
    """
    normalized = {
        "prompt_tokens": 0,
        "completion_tokens": 0,
        "total_tokens": 0,
        "raw": usage_data or {},
    }
    if not usage_data:
        return normalized

    for prompt_field in ("prompt_tokens", "promptTokenCount", "input_tokens"):
        if prompt_field in usage_data:
            normalized["prompt_tokens"] = int(usage_data[prompt_field] or 0)
            break

    for completion_field in ("completion_tokens", "candidatesTokenCount", "output_tokens"):
        if completion_field in usage_data:
            normalized["completion_tokens"] = int(usage_data[completion_field] or 0)
            break

    total = usage_data.get("total_tokens", usage_data.get("totalTokenCount", 0))
    normalized["total_tokens"] = int(total or 0)
    if normalized["total_tokens"] == 0:
        normalized["total_tokens"] = normalized["prompt_tokens"] + normalized["completion_tokens"]

    return normalized


def normalize_openai_chat(payload: Any) -> NormalizedPayload:
    """``choices[0].message.content`` plus ``usage``."""
    message = _get(_first(_get(payload, "choices")), "message")
    text = _get(message, "content") or ""
    return NormalizedPayload(text=text, usage=normalize_usage(_as_dict(_get(payload, "usage"))))


def normalize_gemini(payload: Any) -> NormalizedPayload:
    """``candidates[0].content.parts[0].text`` plus ``usageMetadata``."""
    content = _get(_first(_get(payload, "candidates")), "content")
    text = _get(_first(_get(content, "parts")), "text") or ""
    return NormalizedPayload(
        text=text, usage=normalize_usage(_as_dict(_get(payload, "usageMetadata")))
    )


def normalize_transcription(payload: Any) -> NormalizedPayload:
    return NormalizedPayload(text=_get(payload, "text") or "")


def normalize_payload(payload: Any) -> NormalizedPayload:
    """
    Dispatch on payload shape.

    Raises:
        TypeError: The payload matches none of the known shapes
    """
    if isinstance(payload, NormalizedPayload):
        return payload
    if isinstance(payload, (bytes, bytearray)):
        return NormalizedPayload(audio=bytes(payload))
    if isinstance(payload, str):
        return NormalizedPayload(text=payload)
    if _get(payload, "choices") is not None:
        return normalize_openai_chat(payload)
    if _get(payload, "candidates") is not None:
        return normalize_gemini(payload)
    if _get(payload, "text") is not None:
        return normalize_transcription(payload)
    raise TypeError(f"Unrecognized provider payload: {type(payload).__name__}")


def parse_translation(text: str, include_explanation: bool) -> Tuple[str, Optional[str]]:
    """
    Split a translation reply into (translation, explanation).

    With ``include_explanation`` the reply is expected to be a JSON object
    ``{"translation": ..., "explanation": ...}``; anything else is taken
    verbatim as the translation.
    """
    if not include_explanation:
        return text, None
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        return text, None
    if not isinstance(parsed, dict):
        return text, None
    return parsed.get("translation") or text, parsed.get("explanation")
