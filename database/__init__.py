"""
Database module for the datatables service.
Provides a unified interface for connections, query builders and models.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .connection import DatabaseConnection, DEFAULT_DB_PATH, quote_identifier, validate_identifier
from .query_builder import TableQueryBuilder
from .table_model import TableModel


class Database:
    """
    Unified database interface over one SQLite connection.
    """

    def __init__(self, db_path: Union[str, Path] = DEFAULT_DB_PATH) -> None:
        self._connection = DatabaseConnection(db_path)

        self.db_path = str(db_path)
        self._conn = self._connection.connection
        self._lock = self._connection.lock

    @property
    def connection(self) -> DatabaseConnection:
        return self._connection

    def table(self, name: str) -> TableQueryBuilder:
        """Fresh query builder on a table."""
        return TableQueryBuilder(self._connection, name)

    def model(self, name: str, conditions: Optional[Dict[str, Any]] = None) -> TableModel:
        return TableModel(self._connection, name, conditions)

    def table_columns(self, name: str) -> List[str]:
        return self._connection.get_table_columns(name)

    def executescript(self, script: str) -> None:
        self._connection.executescript(script)

    def close(self) -> None:
        self._connection.close()


# Singleton instance management
_db_instance: Optional[Database] = None


def get_database() -> Database:
    """Return singleton database instance."""
    global _db_instance
    if _db_instance is None:
        _db_instance = Database()
    return _db_instance


def set_database(db: Optional[Database]) -> None:
    """Replace the singleton (application factory and tests)."""
    global _db_instance
    _db_instance = db


# Export main classes and functions
__all__ = [
    'Database', 'DatabaseConnection', 'TableModel', 'TableQueryBuilder',
    'get_database', 'set_database', 'quote_identifier', 'validate_identifier',
    'DEFAULT_DB_PATH',
]
