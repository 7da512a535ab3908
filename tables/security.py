"""
Table access checks.
"""
from typing import Iterable, Mapping, Optional

from database.connection import validate_identifier
from error_handler import SecurityError


class TableAccessGuard:
    """
    Restricts which tables a render may read.

    An empty whitelist allows every table; identifiers are validated either way.
    """

    def __init__(self, allowed_tables: Optional[Iterable[str]] = None):
        self.allowed_tables = frozenset(allowed_tables or ())

    def check_table(self, table: str) -> str:
        """
        Raises:
            SecurityError: If the name is not a plain identifier or not whitelisted
        """
        validate_identifier(table, 'table')
        if self.allowed_tables and table not in self.allowed_tables:
            raise SecurityError("Access to table denied", {'table': table})
        return table

    def check_joins(self, table: str, foreign_keys: Mapping[str, str]) -> None:
        """Check the base table and every table named in the foreign-key map."""
        self.check_table(table)
        for left, right in foreign_keys.items():
            for reference in (left, right):
                joined = str(reference).split('.', 1)[0]
                if joined != table:
                    self.check_table(joined)
