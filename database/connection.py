"""
Database connection and schema introspection.
"""
import os
import re
import sqlite3
import threading
from pathlib import Path
from typing import List, Union

from error_handler import SecurityError, tolerate_sqlite_errors
from logging_helper import LoggingHelper, LogType

# Get logger instance
logger = LoggingHelper.get_logger(LogType.MAIN)

MEMORY_DB = ':memory:'
DEFAULT_DB_PATH = os.getenv('CANVASTACK_DB_PATH', MEMORY_DB)

# SECURITY: SQL identifiers are alphanumeric and underscore only
_SQL_IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def validate_identifier(name: str, kind: str = 'identifier') -> str:
    """
    Validate a bare SQL identifier (table or column name).

    Raises:
        SecurityError: If the name contains anything but letters, digits and underscore
    """
    if not isinstance(name, str) or not _SQL_IDENTIFIER_PATTERN.match(name):
        raise SecurityError(f"Invalid {kind} name", {'value': str(name)[:50]})
    return name


def quote_identifier(name: str) -> str:
    """Quote a validated identifier with double quotes (standard SQL)."""
    return '"' + validate_identifier(name).replace('"', '""') + '"'


class DatabaseConnection:
    """Manages the SQLite connection shared by all table queries."""

    def __init__(self, db_path: Union[str, Path] = DEFAULT_DB_PATH) -> None:
        self.db_path = str(db_path)
        if self.db_path != MEMORY_DB:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()

        self._configure()

    def _configure(self) -> None:
        """Set SQLite pragmas for durability and concurrency."""
        with self._lock:
            try:
                if self.db_path != MEMORY_DB:
                    self._conn.execute("PRAGMA journal_mode=WAL;")
                self._conn.execute("PRAGMA synchronous=NORMAL;")
                self._conn.execute("PRAGMA busy_timeout=5000;")
            except sqlite3.DatabaseError as exc:
                logger.error(f"Failed to configure SQLite database: {exc}")

    def executescript(self, script: str) -> None:
        """Run a multi-statement SQL script inside a transaction."""
        with self._lock:
            with self._conn:
                self._conn.executescript(script)

    @tolerate_sqlite_errors('list table columns', fallback=[])
    def get_table_columns(self, table: str) -> List[str]:
        """
        Return the column names of a table in declaration order.

        Returns an empty list when the table does not exist or cannot be read.
        """
        with self._lock:
            cursor = self._conn.execute(f"PRAGMA table_info({quote_identifier(table)})")
            return [row['name'] for row in cursor.fetchall()]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @property
    def connection(self):
        """Get the database connection."""
        return self._conn

    @property
    def lock(self):
        """Get the thread lock."""
        return self._lock
