"""
Repository pattern for data access.

Handles database operations and data persistence logic.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import RangeQueryResult, UsageRecord

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, session_id, message_id, model, provider, input_tokens, output_tokens, "
    "cache_read_tokens, cache_write_tokens, cost, created_at, machine_id"
)


def to_db_timestamp(value: datetime) -> str:
    """Serialize a datetime as a fixed-width UTC ISO-8601 string.

    Naive datetimes are taken to be local wall-clock time. The fixed width
    keeps lexical order in SQLite equal to chronological order.
    """
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _row_to_record(row: sqlite3.Row) -> UsageRecord:
    return UsageRecord(
        id=row["id"],
        session_id=row["session_id"],
        message_id=row["message_id"],
        model=row["model"],
        provider=row["provider"],
        input_tokens=row["input_tokens"],
        output_tokens=row["output_tokens"],
        cache_read_tokens=row["cache_read_tokens"],
        cache_write_tokens=row["cache_write_tokens"],
        cost=row["cost"],
        created_at=datetime.fromisoformat(row["created_at"]),
        machine_id=row["machine_id"]
    )


class UsageRepository:
    """Repository for the token usage ledger.

    One row per completed message, keyed by message_id. Rows are only ever
    inserted; no UPDATE or DELETE is performed on the table.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = get_connection(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize_schema(self) -> None:
        """Create the token_usage table and its indexes if they don't exist.

        Safe to call on an already initialized database.

        Raises:
            sqlite3.Error: If the database cannot be opened or migrated
        """
        conn = self._connect()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS token_usage (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    message_id TEXT NOT NULL UNIQUE,
                    model TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    input_tokens INTEGER NOT NULL DEFAULT 0,
                    output_tokens INTEGER NOT NULL DEFAULT 0,
                    cache_read_tokens INTEGER NOT NULL DEFAULT 0,
                    cache_write_tokens INTEGER NOT NULL DEFAULT 0,
                    cost REAL,
                    created_at TEXT NOT NULL,
                    machine_id TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_created_at ON token_usage(created_at);
                CREATE INDEX IF NOT EXISTS idx_session_id ON token_usage(session_id);
                CREATE INDEX IF NOT EXISTS idx_model ON token_usage(model);
                CREATE INDEX IF NOT EXISTS idx_machine_id ON token_usage(machine_id);
            """)
            conn.commit()
        finally:
            conn.close()

    def insert(self, record: UsageRecord) -> bool:
        """Insert a usage record unless its message_id is already stored.

        A duplicate message_id is a successful no-op, so replaying an event
        that was ingested before a restart is harmless.

        Args:
            record: The usage record to persist

        Returns:
            True if the record is stored (now or previously), False on a
            storage error
        """
        return self.insert_new(record) is not None

    def insert_new(self, record: UsageRecord) -> Optional[bool]:
        """Insert a usage record and report whether a new row was written.

        Args:
            record: The usage record to persist

        Returns:
            True if the row was written, False if the message_id was
            already stored (possibly by another writer), None on a storage
            error
        """
        try:
            conn = self._connect()
        except (sqlite3.Error, OSError):
            logger.exception("Could not open usage database %s", self.db_path)
            return None
        try:
            cursor = conn.execute(f"""
                INSERT OR IGNORE INTO token_usage ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.id,
                record.session_id,
                record.message_id,
                record.model,
                record.provider,
                record.input_tokens,
                record.output_tokens,
                record.cache_read_tokens,
                record.cache_write_tokens,
                record.cost,
                to_db_timestamp(record.created_at),
                record.machine_id
            ))
            conn.commit()
            return cursor.rowcount > 0
        except (sqlite3.Error, OverflowError):
            # OverflowError: an integer beyond SQLite's 64-bit range
            conn.rollback()
            logger.exception("Failed to store usage for message %s", record.message_id)
            return None
        finally:
            conn.close()

    def exists(self, message_id: str) -> bool:
        """Check whether a record for the message is already stored."""
        conn = self._connect()
        try:
            cursor = conn.execute(
                "SELECT 1 FROM token_usage WHERE message_id = ?", (message_id,)
            )
            return cursor.fetchone() is not None
        finally:
            conn.close()

    def query_by_session(self, session_id: str) -> List[UsageRecord]:
        """Get every record for a session.

        Args:
            session_id: Host session identifier

        Returns:
            Records ordered by created_at (oldest first)
        """
        conn = self._connect()
        try:
            cursor = conn.execute(f"""
                SELECT {_COLUMNS} FROM token_usage
                WHERE session_id = ?
                ORDER BY created_at ASC
            """, (session_id,))
            return [_row_to_record(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def query_by_range(
        self,
        machine_id: str,
        start: datetime,
        end: datetime,
        model_filter: Optional[str] = None
    ) -> RangeQueryResult:
        """Get records for one machine within a half-open time interval.

        Args:
            machine_id: Originating host to filter on
            start: Inclusive lower bound on created_at
            end: Exclusive upper bound on created_at
            model_filter: Optional case-sensitive substring of the model

        Returns:
            Matching records (oldest first) and their distinct session count
        """
        conn = self._connect()
        try:
            query = f"""
                SELECT {_COLUMNS} FROM token_usage
                WHERE machine_id = ?
                  AND created_at >= ?
                  AND created_at < ?
            """
            params = [machine_id, to_db_timestamp(start), to_db_timestamp(end)]

            if model_filter:
                # instr() is case-sensitive, unlike LIKE
                query += " AND instr(model, ?) > 0"
                params.append(model_filter)

            query += " ORDER BY created_at ASC"

            cursor = conn.execute(query, params)
            records = [_row_to_record(row) for row in cursor.fetchall()]
        finally:
            conn.close()

        session_count = len({record.session_id for record in records})
        return RangeQueryResult(records=records, session_count=session_count)
