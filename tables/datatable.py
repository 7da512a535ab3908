"""
DataTable response builder.

Collects column edits, computed columns, row attributes and totals, then
serializes one page of rows to the server-side datatables JSON contract
``{draw, recordsTotal, recordsFiltered, data}``. Rows are fetched once;
per-row callbacks run lazily inside make().
"""
from typing import Any, Callable, Dict, Iterable, List, Optional

from helpers.sanitization import escape_cell, sanitize_html
from logging_helper import LoggingHelper

RowCallback = Callable[[Dict[str, Any]], Any]


class DataTable:
    """
    Builder over one paginated query.

    Example:
        payload = (DataTable.of(query)
            .set_total_records(120)
            .set_filtered_records(120)
            .blacklist(['password'])
            .add_column('action', render_actions)
            .raw_columns(['action'])
            .make(draw=3))
    """

    def __init__(self, query):
        self._query = query
        self._total: Optional[int] = None
        self._filtered: Optional[int] = None
        self._blacklist: set = set()
        self._raw_columns: List[str] = []
        self._edits: Dict[str, RowCallback] = {}
        self._additions: Dict[str, RowCallback] = {}
        self._row_attr: Dict[str, Any] = {}
        self._index_column = False
        self._order_callbacks: List[Callable] = []

    @classmethod
    def of(cls, query) -> 'DataTable':
        return cls(query)

    def set_total_records(self, total: int) -> 'DataTable':
        self._total = int(total)
        return self

    def set_filtered_records(self, filtered: int) -> 'DataTable':
        self._filtered = int(filtered)
        return self

    def blacklist(self, columns: Iterable[str]) -> 'DataTable':
        """Database columns that never reach the output rows."""
        self._blacklist.update(columns)
        return self

    def raw_columns(self, columns: Iterable[str]) -> 'DataTable':
        """Columns rendered as (sanitized) HTML instead of escaped text."""
        for column in columns:
            if column not in self._raw_columns:
                self._raw_columns.append(column)
        return self

    def edit_column(self, name: str, callback: RowCallback) -> 'DataTable':
        """Replace a column's value with callback(raw_row)."""
        self._edits[name] = callback
        return self

    def add_column(self, name: str, callback: RowCallback) -> 'DataTable':
        """Add a computed column; computed columns are not subject to the blacklist."""
        self._additions[name] = callback
        return self

    def set_row_attr(self, attributes: Dict[str, Any]) -> 'DataTable':
        """Row attributes; callable values are evaluated per row, None values are dropped."""
        self._row_attr.update(attributes)
        return self

    def add_index_column(self) -> 'DataTable':
        self._index_column = True
        return self

    def order(self, callback: Callable) -> 'DataTable':
        """Register callback(query) -> query applied before rows are fetched."""
        self._order_callbacks.append(callback)
        return self

    def _fetch(self) -> List[Dict[str, Any]]:
        query = self._query
        for callback in self._order_callbacks:
            query = callback(query) or query
        return query.get()

    def _row_attributes(self, row: Dict[str, Any]) -> Dict[str, Any]:
        attributes = {}
        for key, value in self._row_attr.items():
            if callable(value):
                value = value(row)
            if value is not None:
                attributes[key] = value
        return attributes

    def _render_cell(self, name: str, value: Any) -> Any:
        if name in self._raw_columns:
            return sanitize_html(value) if isinstance(value, str) else value
        return escape_cell(value)

    def _render_row(self, row: Dict[str, Any], index: int) -> Dict[str, Any]:
        output = {key: value for key, value in row.items() if key not in self._blacklist}

        for name, callback in self._edits.items():
            if name not in self._blacklist:
                output[name] = callback(row)
        for name, callback in self._additions.items():
            output[name] = callback(row)

        output = {name: self._render_cell(name, value) for name, value in output.items()}

        if self._index_column:
            output['DT_RowIndex'] = index
        attributes = self._row_attributes(row)
        if attributes:
            output['DT_RowAttr'] = attributes
        return output

    def make(self, draw: int = 0) -> Dict[str, Any]:
        """Fetch the page and serialize it."""
        rows = self._fetch()
        offset = getattr(self._query, 'offset_value', None) or 0
        data = [self._render_row(row, offset + position + 1) for position, row in enumerate(rows)]

        total = self._total if self._total is not None else len(data)
        filtered = self._filtered if self._filtered is not None else total

        LoggingHelper.log_debug("DataTable rendered", {
            'rows': len(data), 'recordsTotal': total, 'recordsFiltered': filtered,
        })
        return {
            'draw': int(draw),
            'recordsTotal': total,
            'recordsFiltered': filtered,
            'data': data,
        }
