"""
Unit tests for report formatting.

Tests number formatting and the compact/full report layouts.
"""

from collections import OrderedDict
from datetime import datetime, timedelta, timezone

from usage_tracker.core.aggregation import AggregateStats, ModelTotals, Period
from usage_tracker.core.report import (
    format_cost,
    format_duration,
    format_global_compact,
    format_global_full,
    format_session_compact,
    format_session_full,
    format_tokens,
)
from usage_tracker.core.session import ModelUsage, SessionStats

START = datetime(2024, 3, 4, 9, 0, 0, tzinfo=timezone.utc)


class TestFormatting:
    """Test number and duration formatting."""

    def test_format_tokens(self):
        """Verify token counts are abbreviated."""
        assert format_tokens(999) == "999"
        assert format_tokens(12_345) == "12K"
        assert format_tokens(1_250_000) == "1.3M"
        assert format_tokens(0) == "0"

    def test_format_tokens_rounds_half_up(self):
        """Verify halves round up rather than to even."""
        assert format_tokens(2_500) == "3K"
        assert format_tokens(1_500) == "2K"
        assert format_tokens(2_450_000) == "2.5M"
        assert format_tokens(1_000_000) == "1.0M"

    def test_format_cost(self):
        """Verify costs show four decimals and unknown shows "-"."""
        assert format_cost(0.0105) == "$0.0105"
        assert format_cost(0.0) == "$0.0000"
        assert format_cost(None) == "-"

    def test_format_duration(self):
        """Verify durations below and above an hour."""
        assert format_duration(START, START + timedelta(minutes=42, seconds=30)) == "42m"
        assert format_duration(START, START + timedelta(hours=1, minutes=5)) == "1h 5m"


class TestSessionReports:
    """Test session report layouts."""

    def _stats(self):
        return SessionStats(
            total_tokens=4000,
            total_cost=0.02,
            message_count=3,
            start_time=START,
            by_model={
                "anthropic/claude-sonnet-4-5": ModelUsage(
                    input_tokens=1000, output_tokens=500, cache_read_tokens=400,
                    cache_write_tokens=100, cost=0.02
                ),
                "local/llama": ModelUsage(input_tokens=2000),
            }
        )

    def test_compact(self):
        """Verify the compact layout."""
        report = format_session_compact(self._stats(), now=START + timedelta(minutes=12))
        assert report.splitlines() == [
            "Session: 4K tokens | $0.0200 | 3 msgs | 12m",
            "  claude-sonnet-4-5: 2K tk / $0.0200",
            "  llama: 2K tk / -",
        ]

    def test_compact_without_cost(self):
        """Verify a session with no known cost shows "-"."""
        stats = SessionStats(total_tokens=10, message_count=1, start_time=START)
        assert " | - | " in format_session_compact(stats, now=START)

    def test_full_splits_cost_by_token_share(self):
        """Verify per-category cost is proportional to token share."""
        report = format_session_full(self._stats())
        assert "  Input:            1,000 tk    $0.0100" in report
        assert "  Output:             500 tk    $0.0050" in report
        assert "  Cache Read:         400 tk    $0.0040" in report
        assert "  Cache Write:        100 tk    $0.0010" in report
        assert "  Subtotal:         2,000 tk    $0.0200" in report
        assert "  Input:            2,000 tk    -" in report
        assert report.splitlines()[-1] == "Total: 4K tokens | $0.0200 | 3 msgs"

    def test_full_with_zero_tokens(self):
        """Verify a model with no tokens does not divide by zero."""
        stats = SessionStats(
            message_count=1,
            start_time=START,
            by_model={"openai/gpt-5": ModelUsage(cost=0.0)}
        )
        assert "  Input:                0 tk    $0.0000" in format_session_full(stats)


class TestGlobalReports:
    """Test global report layouts."""

    def _periods(self):
        today = AggregateStats(
            tokens=1500, cost=0.0105, sessions=1, messages=1,
            by_model={"anthropic/claude-sonnet-4-5": ModelTotals(tokens=1500, cost=0.0105)}
        )
        week = AggregateStats(
            tokens=2_500_000, cost=1.5, sessions=4, messages=20,
            by_model={
                "anthropic/claude-sonnet-4-5": ModelTotals(tokens=2_000_000, cost=1.5),
                "local/llama": ModelTotals(tokens=500_000),
            }
        )
        return OrderedDict([(Period.TODAY, today), (Period.WEEK, week)])

    def test_compact(self):
        """Verify one aligned line per period."""
        assert format_global_compact(self._periods()).splitlines() == [
            "Today:  2K tk | $0.0105 | 1 sess",
            "Week:   2.5M tk | $1.5000 | 4 sess",
        ]

    def test_full(self):
        """Verify per-model tables with totals."""
        lines = format_global_full(self._periods()).splitlines()
        assert lines[:3] == ["Global Token Usage", "━" * 50, ""]
        assert "This Week" in lines
        assert "  llama                                500K tk         -" in lines
        assert "  Sessions: 4 | Messages: 20" in lines
