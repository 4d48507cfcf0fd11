"""
Period rollups over the usage ledger.

Computes today/week/month/year/all-time statistics for one machine.
Window boundaries follow the local wall clock of the querying process.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Iterable, Optional

from usage_tracker.storage.models import UsageRecord
from usage_tracker.storage.repository import UsageRepository

from .session import add_known_cost

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Open-ended window end, so records arriving after "now" are still counted
FAR_FUTURE = datetime(2100, 1, 1, tzinfo=timezone.utc)


class Period(Enum):
    """Aggregation windows, each running from its start until FAR_FUTURE."""
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL_TIME = "all"


@dataclass
class ModelTotals:
    """Token and cost totals for one model within a window."""
    tokens: int = 0
    cost: Optional[float] = None


@dataclass
class AggregateStats:
    """Rollup of every record in a window.

    Unlike per-model cost, the total cost is always a number: 0.0 when no
    record in the window has a known cost.
    """
    tokens: int = 0
    cost: float = 0.0
    sessions: int = 0
    messages: int = 0
    by_model: Dict[str, ModelTotals] = field(default_factory=dict)


def _local_naive(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now()
    if now.tzinfo is not None:
        return now.astimezone().replace(tzinfo=None)
    return now


def window_start(period: Period, now: Optional[datetime] = None) -> datetime:
    """Compute the start of an aggregation window.

    Boundaries are computed on the naive local wall clock and then
    localized, so the UTC offset in effect at the boundary itself is used
    (a DST change between the boundary and now does not shift it).

    Args:
        period: Window to compute
        now: Reference time (defaults to the current local time)

    Returns:
        Timezone-aware start of the window
    """
    if period is Period.ALL_TIME:
        return EPOCH

    local = _local_naive(now)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)

    if period is Period.TODAY:
        start = midnight
    elif period is Period.WEEK:
        # Weeks start on Monday
        start = midnight - timedelta(days=midnight.weekday())
    elif period is Period.MONTH:
        start = midnight.replace(day=1)
    elif period is Period.YEAR:
        start = midnight.replace(month=1, day=1)
    else:
        raise ValueError(f"Unsupported period: {period}")

    return start.astimezone()


def aggregate_records(records: Iterable[UsageRecord], session_count: int) -> AggregateStats:
    """Fold records into window statistics.

    Only known costs are summed; unknown-cost records still count towards
    tokens and messages.
    """
    stats = AggregateStats(sessions=session_count)

    for record in records:
        tokens = record.total_tokens
        stats.tokens += tokens
        stats.messages += 1
        if record.cost is not None:
            stats.cost += record.cost

        model = stats.by_model.setdefault(record.model, ModelTotals())
        model.tokens += tokens
        model.cost = add_known_cost(model.cost, record.cost)

    return stats


def aggregate_usage(
    repository: UsageRepository,
    machine_id: str,
    start: datetime,
    model_filter: Optional[str] = None
) -> AggregateStats:
    """Aggregate one machine's usage from ``start`` onwards.

    Args:
        repository: Usage ledger to query
        machine_id: Machine whose records are included
        start: Inclusive window start
        model_filter: Optional case-sensitive model substring

    Returns:
        AggregateStats for the window

    Raises:
        sqlite3.Error: If the ledger cannot be read
    """
    result = repository.query_by_range(machine_id, start, FAR_FUTURE, model_filter)
    return aggregate_records(result.records, result.session_count)


def collect_periods(
    repository: UsageRepository,
    machine_id: str,
    periods: Iterable[Period],
    model_filter: Optional[str] = None,
    now: Optional[datetime] = None
) -> "OrderedDict[Period, AggregateStats]":
    """Aggregate several windows against the same reference time."""
    results: "OrderedDict[Period, AggregateStats]" = OrderedDict()
    for period in periods:
        results[period] = aggregate_usage(
            repository,
            machine_id,
            window_start(period, now),
            model_filter
        )
    return results
