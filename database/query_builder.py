"""
Query builder module for datatables queries.
Provides fluent interface for building SQL queries with parameterized values.
"""
import copy
import re
import sqlite3
from typing import Any, Dict, Iterable, List, Optional, Tuple

from database.connection import quote_identifier, validate_identifier
from error_handler import QueryBuildError, SecurityError, log_and_reraise
from logging_helper import LoggingHelper, LogType

logger = LoggingHelper.get_logger(LogType.MAIN)

ALLOWED_OPERATORS = ('=', '!=', '<>', '<', '<=', '>', '>=', 'LIKE', 'NOT LIKE')
ALLOWED_DIRECTIONS = ('ASC', 'DESC')

_PROJECTION_ALIAS = re.compile(r'^\s*(\S+)\s+as\s+(\S+)\s*$', re.IGNORECASE)


def column_sql(reference: str) -> str:
    """
    Render a column reference ("col", "table.col", "table.*" or "*") as quoted SQL.

    Raises:
        SecurityError: If any part of the reference is not a plain identifier
    """
    reference = str(reference).strip()
    if reference == '*':
        return '*'
    parts = reference.split('.')
    if len(parts) > 2:
        raise SecurityError("Invalid column reference", {'value': reference[:50]})
    if len(parts) == 2 and parts[1] == '*':
        return f"{quote_identifier(parts[0])}.*"
    return '.'.join(quote_identifier(part) for part in parts)


class TableQueryBuilder:
    """
    Fluent query builder over a single base table.

    Provides a chainable interface for building SELECT queries with:
    - LEFT JOINs on column equality
    - WHERE conditions (parameterized, identifiers validated)
    - ORDER BY clauses (direction whitelisted)
    - LIMIT and OFFSET

    Builders are mutable; callers that must not affect a shared query work
    on ``clone()``.

    Example usage:
        builder = TableQueryBuilder(db, 'orders')
        rows = (builder
            .left_join('customers', 'orders.customer_id', 'customers.id')
            .where('orders.status', 'paid')
            .order_by('orders.created_at', 'DESC')
            .take(50)
            .get())
    """

    def __init__(self, db, table: str):
        """
        Initialize query builder.

        Args:
            db: DatabaseConnection providing connection, lock and schema access
            table: Base table name
        """
        self._db = db
        self.table = validate_identifier(table, 'table')
        self._columns: List[str] = []
        self._joins: List[str] = []
        self._joined_tables: List[str] = []
        self._where_clauses: List[str] = []
        self._params: List[Any] = []
        self._orders: List[str] = []
        self._limit_value: Optional[int] = None
        self._offset_value: Optional[int] = None

    def clone(self) -> 'TableQueryBuilder':
        """Return an independent copy sharing only the database connection."""
        twin = copy.copy(self)
        twin._columns = list(self._columns)
        twin._joins = list(self._joins)
        twin._joined_tables = list(self._joined_tables)
        twin._where_clauses = list(self._where_clauses)
        twin._params = list(self._params)
        twin._orders = list(self._orders)
        return twin

    @property
    def db(self):
        return self._db

    @property
    def joined_tables(self) -> List[str]:
        return list(self._joined_tables)

    @property
    def limit_value(self) -> Optional[int]:
        return self._limit_value

    @property
    def offset_value(self) -> Optional[int]:
        return self._offset_value

    @property
    def is_paginated(self) -> bool:
        return self._limit_value is not None or self._offset_value is not None

    def select(self, *columns: str) -> 'TableQueryBuilder':
        """
        Specify projected columns (default: <table>.*).

        Each entry is a column reference optionally followed by ``AS alias``,
        e.g. ``"customers.id as customers_id"``.
        """
        rendered = []
        for column in columns:
            match = _PROJECTION_ALIAS.match(column)
            if match:
                rendered.append(
                    f"{column_sql(match.group(1))} AS {quote_identifier(match.group(2))}"
                )
            else:
                rendered.append(column_sql(column))
        self._columns = rendered
        return self

    def left_join(self, table: str, first: str, second: str,
                  operator: str = '=') -> 'TableQueryBuilder':
        """
        Add a LEFT JOIN ... ON first <operator> second.

        Args:
            table: Table to join
            first: Qualified column on one side
            second: Qualified column on the other side
            operator: Comparison operator (whitelisted)
        """
        operator = self._validate_operator(operator)
        self._joins.append(
            f"LEFT JOIN {quote_identifier(table)} "
            f"ON {column_sql(first)} {operator} {column_sql(second)}"
        )
        self._joined_tables.append(table)
        return self

    def where(self, column: str, value: Any, operator: str = '=') -> 'TableQueryBuilder':
        """
        Add WHERE column <operator> ? condition.

        Example:
            .where('status', 'paid')
            .where('total', 100, '>=')
        """
        operator = self._validate_operator(operator)
        self._where_clauses.append(f"{column_sql(column)} {operator} ?")
        self._params.append(value)
        return self

    def where_in(self, column: str, values: Iterable[Any]) -> 'TableQueryBuilder':
        values = list(values)
        if not values:
            # An empty IN list matches nothing
            self._where_clauses.append("0 = 1")
            return self
        placeholders = ', '.join('?' for _ in values)
        self._where_clauses.append(f"{column_sql(column)} IN ({placeholders})")
        self._params.extend(values)
        return self

    def where_not_null(self, column: str) -> 'TableQueryBuilder':
        self._where_clauses.append(f"{column_sql(column)} IS NOT NULL")
        return self

    def where_like(self, column: str, term: str) -> 'TableQueryBuilder':
        """Add a case-insensitive substring match on one column."""
        return self.where(column, f"%{term}%", 'LIKE')

    def where_any_like(self, columns: Iterable[str], term: str) -> 'TableQueryBuilder':
        """
        Add search condition across multiple columns (ORed together).

        Args:
            columns: Column references to search
            term: Search term, matched as a substring
        """
        columns = list(columns)
        if not columns:
            return self
        search_conditions = " OR ".join(f"{column_sql(col)} LIKE ?" for col in columns)
        self._where_clauses.append(f"({search_conditions})")
        self._params.extend([f"%{term}%"] * len(columns))
        return self

    def order_by(self, column: str, direction: str = "ASC") -> 'TableQueryBuilder':
        """
        Add an ORDER BY term; multiple calls order by several columns.

        Raises:
            ValueError: If direction is not ASC or DESC
        """
        direction = str(direction).strip().upper()
        if direction not in ALLOWED_DIRECTIONS:
            logger.warning(
                "Invalid sort direction detected: '%s' (possible attack attempt)",
                direction
            )
            raise ValueError(f"Invalid sort direction: {direction}")

        self._orders.append(f"{column_sql(column)} {direction}")
        return self

    def limit(self, limit: Optional[int]) -> 'TableQueryBuilder':
        self._limit_value = None if limit is None else int(limit)
        return self

    def offset(self, offset: Optional[int]) -> 'TableQueryBuilder':
        self._offset_value = None if offset is None else int(offset)
        return self

    # Query-builder style aliases used by the query factory
    take = limit
    skip = offset

    def _validate_operator(self, operator: str) -> str:
        operator = str(operator).strip().upper()
        if operator not in ALLOWED_OPERATORS:
            raise SecurityError("Invalid SQL operator", {'value': operator[:20]})
        return operator

    def _from_sql(self) -> str:
        parts = [f"FROM {quote_identifier(self.table)}"]
        parts.extend(self._joins)
        if self._where_clauses:
            parts.append("WHERE " + " AND ".join(self._where_clauses))
        return " ".join(parts)

    def build_query(self) -> Tuple[str, List[Any]]:
        """
        Build the SQL query and return it with parameters.

        Returns:
            Tuple of (query_string, parameters)
        """
        columns = ", ".join(self._columns) if self._columns else f"{quote_identifier(self.table)}.*"
        query_parts = [f"SELECT {columns}", self._from_sql()]
        params = list(self._params)

        if self._orders:
            query_parts.append("ORDER BY " + ", ".join(self._orders))

        if self._limit_value is not None or self._offset_value is not None:
            # SQLite requires LIMIT before OFFSET; -1 means no upper bound
            query_parts.append("LIMIT ?")
            params.append(self._limit_value if self._limit_value is not None else -1)
            if self._offset_value is not None:
                query_parts.append("OFFSET ?")
                params.append(self._offset_value)

        return " ".join(query_parts), params

    def build_count_query(self) -> Tuple[str, List[Any]]:
        """Build the COUNT query (ignores projection, ORDER BY, LIMIT and OFFSET)."""
        return f"SELECT COUNT(*) AS count {self._from_sql()}", list(self._params)

    def get(self) -> List[Dict[str, Any]]:
        """
        Execute the query and return results as list of dictionaries.

        Raises:
            QueryBuildError: If SQLite rejects the query
        """
        query, params = self.build_query()
        try:
            with self._db.lock:
                cursor = self._db.connection.execute(query, params)
                return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as exc:
            log_and_reraise(exc, f"Query on {self.table} failed", as_type=QueryBuildError)

    def first(self) -> Optional[Dict[str, Any]]:
        rows = self.clone().take(1).get()
        return rows[0] if rows else None

    def count(self) -> int:
        """
        Execute a COUNT query and return the count.

        Raises:
            QueryBuildError: If SQLite rejects the query
        """
        query, params = self.build_count_query()
        try:
            with self._db.lock:
                result = self._db.connection.execute(query, params).fetchone()
        except sqlite3.Error as exc:
            log_and_reraise(exc, f"Count on {self.table} failed", as_type=QueryBuildError)
        return result['count'] if result else 0

    def table_columns(self, table: Optional[str] = None) -> List[str]:
        """Column names of the base table (or another table) from the schema."""
        return self._db.get_table_columns(table or self.table)

    def __repr__(self) -> str:
        query, params = self.build_query()
        return f"<TableQueryBuilder {query!r} {params!r}>"
