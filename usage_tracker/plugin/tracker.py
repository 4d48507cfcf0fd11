"""
Usage tracker plugin.

Records token usage from host events and answers usage queries without
letting any failure escape to the host.
"""

import logging
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Set

from usage_tracker.config.loader import TrackerConfig
from usage_tracker.core.aggregation import Period, collect_periods, aggregate_usage, window_start
from usage_tracker.core.notifications import NotificationTrigger
from usage_tracker.core.pricing import calculate_cost, resolve_pricing
from usage_tracker.core.report import (
    format_cost,
    format_global_compact,
    format_global_full,
    format_session_compact,
    format_session_full,
    format_tokens,
)
from usage_tracker.core.session import SessionCache
from usage_tracker.storage.models import UsageRecord, provider_from_model
from usage_tracker.storage.repository import UsageRepository

from .events import parse_message_event

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (sqlite3.Error, OSError)

NO_ACTIVE_SESSION = "No active session"
NO_SESSION_DATA = "No usage data for this session yet"
NO_GLOBAL_DATA = "No usage data recorded yet"
TRACKER_DISABLED = "Usage tracking is disabled"


class NotificationVariant(Enum):
    """Severity tag attached to a notification."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """Short message for the host's UI layer."""
    message: str
    variant: NotificationVariant = NotificationVariant.INFO


class UsageTracker:
    """Ingests host events into the usage ledger and reports on it.

    Events are expected one at a time, in order. Queries may arrive on
    another thread; the session cache and processed-message set are
    guarded accordingly.
    """

    def __init__(
        self,
        config: TrackerConfig,
        notify: Optional[Callable[[Notification], Any]] = None,
        repository: Optional[UsageRepository] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """Initialize the tracker. Nothing touches the database until start().

        Args:
            config: Resolved tracker configuration
            notify: Callback receiving notifications for the host UI
            repository: Usage ledger (defaults to one at config.db_path)
            clock: Source of ingestion timestamps
        """
        self.config = config
        self.repository = repository or UsageRepository(config.db_path)
        self.sessions = SessionCache(self.repository)
        self.trigger = NotificationTrigger(config.notifications)
        self._notify = notify
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._processed: Set[str] = set()
        self._processed_lock = threading.Lock()
        self.active = False

    def start(self) -> bool:
        """Open and migrate the ledger.

        If the ledger cannot be opened the tracker disables itself and
        sends a single error notification.

        Returns:
            True if the tracker is ready to record usage
        """
        if not self.config.enabled:
            logger.info("Usage tracking disabled by configuration")
            return False

        try:
            self.repository.initialize_schema()
        except STORAGE_ERRORS as e:
            logger.error("Failed to open usage database %s: %s", self.repository.db_path, e)
            self._send(f"Usage tracker: Failed to open database: {e}", NotificationVariant.ERROR)
            self.active = False
            return False

        self.active = True
        logger.info("Recording token usage to %s", self.repository.db_path)
        return True

    def _send(self, message: str, variant: NotificationVariant) -> None:
        if self._notify is None:
            return
        try:
            self._notify(Notification(message, variant))
        except Exception:
            logger.exception("Notification delivery failed")

    def _is_processed(self, message_id: str) -> bool:
        with self._processed_lock:
            return message_id in self._processed

    def _mark_processed(self, message_id: str) -> None:
        with self._processed_lock:
            self._processed.add(message_id)

    def handle_event(self, event: Mapping[str, Any]) -> Optional[UsageRecord]:
        """Record usage for a completed assistant message.

        Ignored events (wrong type or role, incomplete, no tokens, already
        recorded, including by another process) return None without side
        effects. A failed write is reported once, but the session totals
        still include the message.

        Args:
            event: Raw host event

        Returns:
            The new UsageRecord, or None if the event was ignored
        """
        if not self.active:
            return None

        message = parse_message_event(event)
        if message is None or self._is_processed(message.message_id):
            return None

        try:
            if self.repository.exists(message.message_id):
                # Ingested before a restart
                self._mark_processed(message.message_id)
                return None
        except STORAGE_ERRORS as e:
            logger.warning("Could not check message %s: %s", message.message_id, e)

        model = message.model.canonical
        pricing = resolve_pricing(model, self.config.pricing)
        cost = calculate_cost(message.tokens, pricing, message.cost)

        record = UsageRecord(
            id=uuid.uuid4().hex,
            session_id=message.session_id,
            message_id=message.message_id,
            model=model,
            provider=provider_from_model(model),
            input_tokens=message.tokens.input_tokens,
            output_tokens=message.tokens.output_tokens,
            cache_read_tokens=message.tokens.cache_read_tokens,
            cache_write_tokens=message.tokens.cache_write_tokens,
            cost=cost,
            created_at=self._clock(),
            machine_id=self.config.machine_id
        )

        # Seed from earlier records before this one is stored
        try:
            self.sessions.get(record.session_id)
            seeded = True
        except STORAGE_ERRORS as e:
            logger.warning("Could not load session %s: %s", record.session_id, e)
            seeded = False

        inserted = self.repository.insert_new(record)
        self._mark_processed(record.message_id)
        if inserted is None:
            self._send("Usage tracker: Failed to save token usage", NotificationVariant.ERROR)
        elif not inserted:
            # Stored by another writer since the exists() check
            return None

        session_cost: Optional[float] = None
        if seeded:
            session_cost = self.sessions.upsert(record).total_cost
        # Otherwise the entry stays empty so the next read rebuilds it from the ledger
        logger.debug(
            "Recorded %d tokens for %s in session %s", record.total_tokens, model, record.session_id
        )

        self.trigger.record(cost)
        if self.trigger.should_fire():
            self._send(
                f"+{format_tokens(record.total_tokens)} tk | {format_cost(cost)} | "
                f"Total: {format_cost(session_cost)}",
                NotificationVariant.INFO
            )
            self.trigger.reset()

        return record

    def session_usage(self, session_id: Optional[str], full: bool = False) -> str:
        """Report usage for one session.

        Args:
            session_id: Current session, None if the host has none
            full: Show the per-category breakdown

        Returns:
            Formatted report or an explanatory message
        """
        if not self.active:
            return TRACKER_DISABLED
        if not session_id:
            return NO_ACTIVE_SESSION

        try:
            stats = self.sessions.get(session_id)
        except STORAGE_ERRORS as e:
            logger.error("Failed to read usage for session %s: %s", session_id, e)
            return f"Usage tracker: Failed to read usage data: {e}"

        if stats.message_count == 0:
            return NO_SESSION_DATA
        return format_session_full(stats) if full else format_session_compact(stats)

    def global_usage(
        self,
        full: bool = False,
        year: bool = False,
        all_time: bool = False,
        model: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> str:
        """Report usage on this machine for today, this week and this month.

        Args:
            full: Show per-model tables
            year: Include this year
            all_time: Include this year and all time
            model: Only count models containing this text
            now: Reference time for the windows

        Returns:
            Formatted report or an explanatory message
        """
        if not self.active:
            return TRACKER_DISABLED

        periods = [Period.TODAY, Period.WEEK, Period.MONTH]
        if year or all_time:
            periods.append(Period.YEAR)
        if all_time:
            periods.append(Period.ALL_TIME)

        machine_id = self.config.machine_id
        try:
            everything = aggregate_usage(
                self.repository, machine_id, window_start(Period.ALL_TIME), model
            )
            if everything.messages == 0:
                return NO_GLOBAL_DATA
            results = collect_periods(self.repository, machine_id, periods, model, now)
        except STORAGE_ERRORS as e:
            logger.error("Failed to read global usage: %s", e)
            return f"Usage tracker: Failed to read usage data: {e}"

        return format_global_full(results) if full else format_global_compact(results)
