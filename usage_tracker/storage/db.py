"""
Database connection management.

Provides SQLite connection for data persistence.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "~/.config/usage-tracker/token-usage.db"

# Upper bound on how long a connection waits for another writer's lock
DEFAULT_TIMEOUT_SECONDS = 5.0


def get_connection(
    db_path: str = DEFAULT_DB_PATH,
    timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    The parent directory is created if needed. Concurrent writers are
    serialized by SQLite's database lock; a blocked connection gives up
    after ``timeout`` seconds with ``sqlite3.OperationalError``.

    Args:
        db_path: Path to SQLite database file ("~" is expanded)
        timeout: Seconds to wait for a locked database

    Returns:
        SQLite connection
    """
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=timeout)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
