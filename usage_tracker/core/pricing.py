"""
Pricing resolution and cost calculation.

Maps model identifiers to rate cards and turns token counts into cost.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Mapping, Optional

from .token_counter import TokenUsage

TOKENS_PER_RATE_UNIT = Decimal("1000000")


@dataclass(frozen=True)
class RateCard:
    """Per-model pricing, expressed per one million tokens."""
    input: Decimal
    output: Decimal
    cache_read: Decimal = Decimal("0")
    cache_write: Decimal = Decimal("0")

    def __post_init__(self):
        """Validate rates are non-negative."""
        for name in ("input", "output", "cache_read", "cache_write"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} rate cannot be negative")


# Built-in rates; configured overrides replace entries one model at a time
DEFAULT_PRICING: Dict[str, RateCard] = {
    # Anthropic
    "anthropic/claude-sonnet-4-5": RateCard(
        input=Decimal("3.00"),
        output=Decimal("15.00"),
        cache_read=Decimal("0.30"),
        cache_write=Decimal("3.75")
    ),
    "anthropic/claude-opus-4-5": RateCard(
        input=Decimal("5.00"),
        output=Decimal("25.00"),
        cache_read=Decimal("0.50"),
        cache_write=Decimal("6.25")
    ),
    # OpenAI GPT-5 family
    "openai/gpt-5": RateCard(
        input=Decimal("1.25"),
        output=Decimal("10.00"),
        cache_read=Decimal("0.125")
    ),
    "openai/gpt-5.1": RateCard(
        input=Decimal("1.25"),
        output=Decimal("10.00"),
        cache_read=Decimal("0.125")
    ),
    "openai/gpt-5.2": RateCard(
        input=Decimal("1.75"),
        output=Decimal("14.00"),
        cache_read=Decimal("0.175")
    ),
    "openai/gpt-5-mini": RateCard(
        input=Decimal("0.25"),
        output=Decimal("2.00"),
        cache_read=Decimal("0.025")
    ),
}


def merge_pricing(
    overrides: Mapping[str, RateCard],
    defaults: Mapping[str, RateCard] = DEFAULT_PRICING
) -> Dict[str, RateCard]:
    """Layer configured overrides on top of the defaults, entry by entry."""
    merged = dict(defaults)
    merged.update(overrides)
    return merged


def _matches_bare_name(key: str, model_name: str) -> bool:
    return key == model_name or key.endswith(f"/{model_name}")


def resolve_pricing(
    model: str,
    overrides: Mapping[str, RateCard],
    defaults: Mapping[str, RateCard] = DEFAULT_PRICING
) -> Optional[RateCard]:
    """Resolve the rate card for a model identifier.

    Lookup order:
    1. Exact key in the merged table (an override wins over a default)
    2. Bare model name (text after the last "/") against the bare name of
       every configured key, overrides first, then defaults

    Matching is exact; casing and whitespace are not normalized.

    Args:
        model: Model identifier, usually "<provider>/<model>"
        overrides: Configured pricing table
        defaults: Built-in pricing table

    Returns:
        Matching RateCard, or None when no table knows the model
    """
    merged = merge_pricing(overrides, defaults)
    if model in merged:
        return merged[model]

    model_name = model.rsplit("/", 1)[-1]
    for key, pricing in overrides.items():
        if _matches_bare_name(key, model_name):
            return pricing
    for key, pricing in defaults.items():
        if key not in overrides and _matches_bare_name(key, model_name):
            return pricing

    return None


def calculate_cost(
    usage: TokenUsage,
    pricing: Optional[RateCard],
    fallback_cost: Optional[float] = None
) -> Optional[float]:
    """Calculate the cost of a message.

    Precedence:
    1. A resolved rate card is always used, even when the result is zero
       and even when the host supplied its own cost
    2. Otherwise a strictly positive host-supplied cost is used verbatim
    3. Otherwise the cost is unknown

    Args:
        usage: Token counts for the message
        pricing: Resolved rate card, if any
        fallback_cost: Cost reported by the host, if any

    Returns:
        Cost in currency units, or None when unknown
    """
    if pricing is not None:
        total = (
            Decimal(usage.input_tokens) * pricing.input
            + Decimal(usage.output_tokens) * pricing.output
            + Decimal(usage.cache_read_tokens) * pricing.cache_read
            + Decimal(usage.cache_write_tokens) * pricing.cache_write
        ) / TOKENS_PER_RATE_UNIT
        return float(total)

    # A zero cost from the host means "not priced", not "free"
    if fallback_cost is not None and fallback_cost > 0:
        return float(fallback_cost)

    return None
