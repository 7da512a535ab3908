"""
Model handles resolved from table configuration.

A TableModel names a base table and hands out fresh query builders for it.
Datatables configurations may point at a model instead of a raw table name;
the model then owns the default projection and base conditions.
"""
from typing import Any, Dict, Optional

from database.connection import validate_identifier
from database.query_builder import TableQueryBuilder


class TableModel:
    """A table-backed model with optional base conditions."""

    def __init__(self, db, table: str, conditions: Optional[Dict[str, Any]] = None):
        self._db = db
        self.table = validate_identifier(table, 'table')
        self.conditions = dict(conditions or {})

    def get_table(self) -> str:
        return self.table

    def new_query(self) -> TableQueryBuilder:
        """Fresh builder with the model's base conditions applied."""
        query = TableQueryBuilder(self._db, self.table)
        for column, value in self.conditions.items():
            if isinstance(value, (list, tuple, set)):
                query.where_in(column, value)
            else:
                query.where(column, value)
        return query

    def __repr__(self) -> str:
        return f"<TableModel {self.table}>"
