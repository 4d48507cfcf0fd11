"""
Data models for storage layer.

Defines database entities and data structures.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

UNKNOWN_PROVIDER = "unknown"


def provider_from_model(model: str) -> str:
    """Derive the provider from a "<provider>/<model>" identifier."""
    provider, separator, _ = model.partition("/")
    if not separator or not provider:
        return UNKNOWN_PROVIDER
    return provider


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of token usage for one completed assistant message.

    Write-once rows keyed by message_id. Once written, these records must
    never be modified. A cost of None means the cost is unknown, which is
    not the same as zero.
    """
    id: str
    session_id: str
    message_id: str
    model: str
    provider: str
    input_tokens: int
    output_tokens: int
    cache_read_tokens: int
    cache_write_tokens: int
    cost: Optional[float]
    created_at: datetime
    machine_id: str

    def __post_init__(self):
        """Validate token counts and cost are non-negative."""
        for name in ("input_tokens", "output_tokens", "cache_read_tokens", "cache_write_tokens"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.cost is not None and self.cost < 0:
            raise ValueError("cost cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Total tokens across input, output and cache categories."""
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_read_tokens
            + self.cache_write_tokens
        )


@dataclass(frozen=True)
class RangeQueryResult:
    """Records matched by a time-range query plus their distinct session count."""
    records: List[UsageRecord] = field(default_factory=list)
    session_count: int = 0
