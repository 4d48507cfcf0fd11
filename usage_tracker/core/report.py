"""
Text reports for session and global usage.

Produces the compact and detailed layouts returned to the host's command
layer.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Mapping, Optional

from .aggregation import AggregateStats, Period
from .session import SessionStats

HEAVY_RULE = "━" * 50
LIGHT_RULE = "─" * 50

PERIOD_LABELS = {
    Period.TODAY: ("Today", "Today"),
    Period.WEEK: ("Week", "This Week"),
    Period.MONTH: ("Month", "This Month"),
    Period.YEAR: ("Year", "This Year"),
    Period.ALL_TIME: ("All", "All Time"),
}


def _round_half_up(n: int, unit: int, places: str) -> Decimal:
    # Half-up: 2500 -> 3K
    return (Decimal(n) / unit).quantize(Decimal(places), rounding=ROUND_HALF_UP)


def format_tokens(n: int) -> str:
    """Abbreviate a token count: 1.2M, 12K, 999."""
    if n >= 1_000_000:
        return f"{_round_half_up(n, 1_000_000, '0.1')}M"
    if n >= 1_000:
        return f"{_round_half_up(n, 1_000, '1')}K"
    return f"{n:,}"


def format_cost(cost: Optional[float]) -> str:
    """Format a cost to four decimals, "-" when unknown."""
    if cost is None:
        return "-"
    return f"${cost:.4f}"


def format_duration(start_time: datetime, now: Optional[datetime] = None) -> str:
    """Format elapsed time since start as "42m" or "1h 5m"."""
    now = now or datetime.now(timezone.utc)
    minutes = max(int((now - start_time).total_seconds() // 60), 0)
    if minutes < 60:
        return f"{minutes}m"
    return f"{minutes // 60}h {minutes % 60}m"


def short_model_name(model: str) -> str:
    return model.rsplit("/", 1)[-1]


def format_session_compact(stats: SessionStats, now: Optional[datetime] = None) -> str:
    """One summary line for the session plus one line per model."""
    cost = format_cost(stats.total_cost) if stats.total_cost > 0 else "-"
    duration = format_duration(stats.start_time, now)
    lines = [
        f"Session: {format_tokens(stats.total_tokens)} tokens | {cost} | "
        f"{stats.message_count} msgs | {duration}"
    ]

    for model, data in stats.by_model.items():
        lines.append(
            f"  {short_model_name(model)}: {format_tokens(data.total_tokens)} tk / "
            f"{format_cost(data.cost)}"
        )

    return "\n".join(lines)


def format_session_full(stats: SessionStats) -> str:
    """Per-model breakdown by token category.

    The cost of each category is the model's cost split in proportion to
    the category's share of the model's tokens.
    """
    lines = ["Session Usage", HEAVY_RULE]

    for model, data in stats.by_model.items():
        total = data.total_tokens

        def share(tokens: int) -> str:
            if data.cost is None:
                return "-"
            return format_cost(data.cost * tokens / total if total else 0.0)

        lines.append(short_model_name(model))
        lines.append(f"  Input:       {data.input_tokens:>10,} tk    {share(data.input_tokens)}")
        lines.append(f"  Output:      {data.output_tokens:>10,} tk    {share(data.output_tokens)}")
        lines.append(f"  Cache Read:  {data.cache_read_tokens:>10,} tk    {share(data.cache_read_tokens)}")
        lines.append(f"  Cache Write: {data.cache_write_tokens:>10,} tk    {share(data.cache_write_tokens)}")
        lines.append(f"  {'─' * 40}")
        lines.append(f"  Subtotal:    {total:>10,} tk    {format_cost(data.cost)}")
        lines.append("")

    lines.append(HEAVY_RULE)
    lines.append(
        f"Total: {format_tokens(stats.total_tokens)} tokens | "
        f"{format_cost(stats.total_cost)} | {stats.message_count} msgs"
    )
    return "\n".join(lines)


def format_global_compact(periods: Mapping[Period, AggregateStats]) -> str:
    """One line per period: tokens, cost and session count."""
    lines = []
    for period, stats in periods.items():
        label = f"{PERIOD_LABELS[period][0]}:"
        lines.append(
            f"{label:<7} {format_tokens(stats.tokens)} tk | "
            f"{format_cost(stats.cost)} | {stats.sessions} sess"
        )
    return "\n".join(lines)


def format_global_full(periods: Mapping[Period, AggregateStats]) -> str:
    """Per-model table for every period."""
    lines: List[str] = ["Global Token Usage", HEAVY_RULE, ""]

    for period, stats in periods.items():
        lines.append(PERIOD_LABELS[period][1])
        lines.append(LIGHT_RULE)

        for model, data in stats.by_model.items():
            lines.append(
                f"  {short_model_name(model):<30} {format_tokens(data.tokens):>10} tk  "
                f"{format_cost(data.cost):>8}"
            )

        lines.append(f"  {'─' * 48}")
        lines.append(
            f"  {'Total':<30} {format_tokens(stats.tokens):>10} tk  {format_cost(stats.cost):>8}"
        )
        lines.append(f"  Sessions: {stats.sessions} | Messages: {stats.messages}")
        lines.append("")

    return "\n".join(lines)
