"""
Unit tests for period aggregation.

Tests window boundaries, folding of known/unknown costs and model filtering.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from usage_tracker.core.aggregation import (
    EPOCH,
    FAR_FUTURE,
    Period,
    aggregate_records,
    aggregate_usage,
    collect_periods,
    window_start,
)
from usage_tracker.storage.models import UsageRecord, provider_from_model
from usage_tracker.storage.repository import UsageRepository

# Monday 4 March 2024, 10:00 local time
MONDAY_MORNING = datetime(2024, 3, 4, 10, 0, 0)
MONDAY_MIDNIGHT = datetime(2024, 3, 4, 0, 0, 0)


def _record(message_id, created_at, session_id="ses_1", model="anthropic/claude-sonnet-4-5",
            input_tokens=1000, output_tokens=500, cost=0.01, machine_id="laptop"):
    return UsageRecord(
        id=f"id_{message_id}",
        session_id=session_id,
        message_id=message_id,
        model=model,
        provider=provider_from_model(model),
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_read_tokens=0,
        cache_write_tokens=0,
        cost=cost,
        created_at=created_at,
        machine_id=machine_id
    )


@pytest.fixture
def repository():
    """Create a repository backed by a fresh temporary database."""
    with tempfile.TemporaryDirectory() as temp_dir:
        repo = UsageRepository(os.path.join(temp_dir, "usage.db"))
        repo.initialize_schema()
        yield repo


def _local(value: datetime) -> datetime:
    return value.astimezone().replace(tzinfo=None)


class TestWindowStart:
    """Test local wall-clock window boundaries."""

    def test_today(self):
        """Verify today starts at local midnight."""
        assert _local(window_start(Period.TODAY, MONDAY_MORNING)) == MONDAY_MIDNIGHT

    def test_week_starts_monday(self):
        """Verify the week starts on Monday for every day of the week."""
        for offset in range(7):
            now = MONDAY_MORNING + timedelta(days=offset)
            assert _local(window_start(Period.WEEK, now)) == MONDAY_MIDNIGHT

    def test_sunday_belongs_to_previous_week(self):
        """Verify Sunday is the last day of the week, not the first."""
        sunday = datetime(2024, 3, 10, 23, 0, 0)
        assert _local(window_start(Period.WEEK, sunday)) == MONDAY_MIDNIGHT

    def test_week_can_start_in_previous_month(self):
        """Verify a week spanning a month boundary starts in the earlier month."""
        friday = datetime(2024, 3, 1, 8, 0, 0)
        assert _local(window_start(Period.WEEK, friday)) == datetime(2024, 2, 26)

    def test_month(self):
        """Verify the month starts on the first at midnight."""
        assert _local(window_start(Period.MONTH, MONDAY_MORNING)) == datetime(2024, 3, 1)

    def test_year(self):
        """Verify the year starts on 1 January at midnight."""
        assert _local(window_start(Period.YEAR, MONDAY_MORNING)) == datetime(2024, 1, 1)

    def test_all_time(self):
        """Verify all time starts at the Unix epoch."""
        assert window_start(Period.ALL_TIME, MONDAY_MORNING) == EPOCH

    def test_aware_reference_time(self):
        """Verify an aware reference time is converted to local time first."""
        aware = MONDAY_MORNING.astimezone(timezone.utc)
        assert window_start(Period.TODAY, aware) == window_start(Period.TODAY, MONDAY_MORNING)

    def test_windows_are_timezone_aware(self):
        """Verify returned boundaries carry an offset."""
        assert window_start(Period.MONTH, MONDAY_MORNING).tzinfo is not None


class TestAggregateRecords:
    """Test folding of records into window statistics."""

    def test_only_known_costs_are_summed(self):
        """Verify unknown costs add tokens and messages but not cost."""
        stats = aggregate_records([
            _record("msg_1", MONDAY_MORNING, input_tokens=1000, output_tokens=500, cost=0.01),
            _record("msg_2", MONDAY_MORNING, input_tokens=2000, output_tokens=0, cost=None),
        ], session_count=1)

        assert stats.tokens == 3500
        assert stats.cost == pytest.approx(0.01)
        assert stats.messages == 2
        assert stats.sessions == 1

    def test_all_unknown_cost_totals_zero(self):
        """Verify the window total is 0.0 while the model cost stays unknown."""
        stats = aggregate_records([_record("msg_1", MONDAY_MORNING, cost=None)], session_count=1)
        assert stats.cost == 0.0
        assert stats.by_model["anthropic/claude-sonnet-4-5"].cost is None

    def test_per_model_breakdown(self):
        """Verify tokens and cost are split by model."""
        stats = aggregate_records([
            _record("msg_1", MONDAY_MORNING, model="openai/gpt-5", cost=0.02),
            _record("msg_2", MONDAY_MORNING, model="openai/gpt-5", cost=0.03),
            _record("msg_3", MONDAY_MORNING, model="local/llama", cost=None),
        ], session_count=1)

        assert stats.by_model["openai/gpt-5"].tokens == 3000
        assert stats.by_model["openai/gpt-5"].cost == pytest.approx(0.05)
        assert stats.by_model["local/llama"].cost is None

    def test_empty_window(self):
        """Verify an empty window has zero totals."""
        stats = aggregate_records([], session_count=0)
        assert (stats.tokens, stats.cost, stats.messages, stats.sessions) == (0, 0.0, 0, 0)


class TestAggregateUsage:
    """Test aggregation against the ledger."""

    def test_midnight_boundaries(self, repository):
        """Verify a record at Monday midnight is in today and this week, and one just before is not today."""
        repository.insert(_record("at_midnight", MONDAY_MIDNIGHT))
        repository.insert(_record("just_before", MONDAY_MIDNIGHT - timedelta(milliseconds=1)))

        today = aggregate_usage(repository, "laptop", window_start(Period.TODAY, MONDAY_MORNING))
        week = aggregate_usage(repository, "laptop", window_start(Period.WEEK, MONDAY_MORNING))
        month = aggregate_usage(repository, "laptop", window_start(Period.MONTH, MONDAY_MORNING))

        assert today.messages == 1
        assert week.messages == 1
        assert month.messages == 2

    def test_future_records_are_included(self, repository):
        """Verify the window is open-ended up to the far-future sentinel."""
        repository.insert(_record("later", MONDAY_MORNING + timedelta(days=30)))
        stats = aggregate_usage(repository, "laptop", window_start(Period.TODAY, MONDAY_MORNING))
        assert stats.messages == 1
        assert FAR_FUTURE.year == 2100

    def test_model_filter(self, repository):
        """Verify the model filter keeps matching models only."""
        repository.insert(_record("msg_1", MONDAY_MORNING, model="anthropic/claude-sonnet-4-5"))
        repository.insert(_record("msg_2", MONDAY_MORNING, model="openai/gpt-5", session_id="ses_2"))

        stats = aggregate_usage(repository, "laptop", EPOCH, model_filter="sonnet")
        assert list(stats.by_model) == ["anthropic/claude-sonnet-4-5"]
        assert stats.sessions == 1

    def test_other_machines_excluded(self, repository):
        """Verify only the given machine's usage is aggregated."""
        repository.insert(_record("msg_1", MONDAY_MORNING, machine_id="laptop"))
        repository.insert(_record("msg_2", MONDAY_MORNING, machine_id="desktop"))

        assert aggregate_usage(repository, "laptop", EPOCH).messages == 1

    def test_collect_periods(self, repository):
        """Verify each requested period is aggregated in order."""
        repository.insert(_record("today", MONDAY_MORNING - timedelta(hours=1), session_id="a"))
        repository.insert(_record("feb", datetime(2024, 2, 10, 12, 0), session_id="b"))
        repository.insert(_record("last_year", datetime(2023, 6, 1, 12, 0), session_id="c"))

        results = collect_periods(
            repository,
            "laptop",
            [Period.TODAY, Period.WEEK, Period.MONTH, Period.YEAR, Period.ALL_TIME],
            now=MONDAY_MORNING
        )

        assert list(results) == [
            Period.TODAY, Period.WEEK, Period.MONTH, Period.YEAR, Period.ALL_TIME
        ]
        assert [results[p].messages for p in results] == [1, 1, 1, 2, 3]
        assert results[Period.ALL_TIME].sessions == 3
