"""
Per-session running totals.

Keeps an in-process cache of session statistics that is seeded from the
usage ledger and then updated as new records are ingested.
"""

import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from usage_tracker.storage.models import UsageRecord
from usage_tracker.storage.repository import UsageRepository


def add_known_cost(current: Optional[float], cost: Optional[float]) -> Optional[float]:
    """Add a cost to a running total, keeping None only while nothing is known."""
    if cost is None:
        return current
    return (current or 0.0) + cost


@dataclass
class ModelUsage:
    """Token and cost totals for one model within a session."""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    cost: Optional[float] = None

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_read_tokens
            + self.cache_write_tokens
        )


@dataclass
class SessionStats:
    """Running totals for a single session.

    Derived data only: everything here can be rebuilt from the session's
    records in the ledger.
    """
    total_tokens: int = 0
    total_cost: float = 0.0
    message_count: int = 0
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    by_model: Dict[str, ModelUsage] = field(default_factory=dict)

    def add(self, record: UsageRecord) -> None:
        """Fold one record into the totals.

        Tokens always count. Cost counts only when known, so a record with
        unknown cost never turns a known total back into unknown.
        """
        self.total_tokens += record.total_tokens
        if record.cost is not None:
            self.total_cost += record.cost
        self.message_count += 1

        model = self.by_model.setdefault(record.model, ModelUsage())
        model.input_tokens += record.input_tokens
        model.output_tokens += record.output_tokens
        model.cache_read_tokens += record.cache_read_tokens
        model.cache_write_tokens += record.cache_write_tokens
        model.cost = add_known_cost(model.cost, record.cost)


def build_session_stats(records: Iterable[UsageRecord]) -> SessionStats:
    """Rebuild session statistics from stored records (oldest first)."""
    records = list(records)
    stats = SessionStats()
    if records:
        stats.start_time = records[0].created_at
    for record in records:
        stats.add(record)
    return stats


class SessionCache:
    """Process-local cache of SessionStats keyed by session id.

    Entries are created lazily and live for the lifetime of the process.
    All access goes through one lock, so events and queries delivered on
    different threads see consistent totals.
    """

    def __init__(self, repository: UsageRepository):
        self.repository = repository
        self._lock = threading.Lock()
        self._sessions: Dict[str, SessionStats] = {}

    def _load(self, session_id: str) -> SessionStats:
        stats = self._sessions.get(session_id)
        if stats is None or stats.message_count == 0:
            stats = build_session_stats(self.repository.query_by_session(session_id))
            self._sessions[session_id] = stats
        return stats

    def get(self, session_id: str) -> SessionStats:
        """Get a snapshot of a session's totals.

        A missing or empty entry is rebuilt from the ledger first.

        Raises:
            sqlite3.Error: If the ledger cannot be read
        """
        with self._lock:
            return copy.deepcopy(self._load(session_id))

    def upsert(self, record: UsageRecord) -> SessionStats:
        """Add a newly ingested record to its session and return a snapshot."""
        with self._lock:
            stats = self._sessions.setdefault(record.session_id, SessionStats())
            stats.add(record)
            return copy.deepcopy(stats)
