"""
Inbound host events.

Normalizes message-completion events from the host into CompletedMessage
objects. Anything that is not a completed assistant message with token
data is ignored.
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from usage_tracker.core.token_counter import TokenUsage

MESSAGE_UPDATED = "message.updated"
UNKNOWN_MODEL = "unknown"


@dataclass(frozen=True)
class FlatModelRef:
    """Model given as a single string, e.g. "anthropic/claude-sonnet-4-5"."""
    name: str

    @property
    def canonical(self) -> str:
        return self.name or UNKNOWN_MODEL


@dataclass(frozen=True)
class StructuredModelRef:
    """Model given as a provider id and a model id."""
    provider_id: str
    model_id: str

    @property
    def canonical(self) -> str:
        if not self.model_id:
            return UNKNOWN_MODEL
        if not self.provider_id:
            return self.model_id
        return f"{self.provider_id}/{self.model_id}"


ModelRef = Union[FlatModelRef, StructuredModelRef]


@dataclass(frozen=True)
class CompletedMessage:
    """A finished assistant message carrying token usage."""
    message_id: str
    session_id: str
    model: ModelRef
    tokens: TokenUsage
    completed_at: float
    cost: Optional[float] = None


def _count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return max(int(value), 0)


def parse_model_ref(message: Mapping[str, Any]) -> ModelRef:
    """Pick the model reference out of a message, whichever shape it has."""
    model = message.get("model")
    if isinstance(model, str):
        return FlatModelRef(model)
    if isinstance(model, Mapping) and isinstance(model.get("modelID"), str):
        return StructuredModelRef(str(model.get("providerID") or ""), model["modelID"])
    if isinstance(message.get("modelID"), str):
        return StructuredModelRef(str(message.get("providerID") or ""), message["modelID"])
    return FlatModelRef(UNKNOWN_MODEL)


def parse_tokens(tokens: Mapping[str, Any]) -> TokenUsage:
    """Read token counts; missing or malformed counts are zero."""
    cache = tokens.get("cache")
    if not isinstance(cache, Mapping):
        cache = {}
    return TokenUsage(
        input_tokens=_count(tokens.get("input")),
        output_tokens=_count(tokens.get("output")),
        cache_read_tokens=_count(cache.get("read")),
        cache_write_tokens=_count(cache.get("write"))
    )


def parse_message_event(event: Mapping[str, Any]) -> Optional[CompletedMessage]:
    """Extract a completed assistant message from a host event.

    Args:
        event: Raw host event, {"type": ..., "properties": {"info": {...}}}

    Returns:
        CompletedMessage, or None if the event should be ignored
    """
    if not isinstance(event, Mapping) or event.get("type") != MESSAGE_UPDATED:
        return None

    properties = event.get("properties")
    if not isinstance(properties, Mapping):
        return None
    message = properties.get("info")
    if not isinstance(message, Mapping) or message.get("role") != "assistant":
        return None

    time_info = message.get("time")
    completed_at = time_info.get("completed") if isinstance(time_info, Mapping) else None
    tokens = message.get("tokens")
    message_id = message.get("id")
    session_id = message.get("sessionID")
    if not completed_at or not isinstance(tokens, Mapping) or not tokens:
        return None
    if not isinstance(message_id, str) or not message_id:
        return None
    if not isinstance(session_id, str) or not session_id:
        return None

    cost = message.get("cost")
    if isinstance(cost, bool) or not isinstance(cost, (int, float)) or not math.isfinite(cost):
        cost = None

    return CompletedMessage(
        message_id=message_id,
        session_id=session_id,
        model=parse_model_ref(message),
        tokens=parse_tokens(tokens),
        completed_at=completed_at,
        cost=cost
    )
