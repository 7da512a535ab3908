"""
Query factory: turns a declarative table description into a query.

Every operation works on a clone of the query it receives, so the caller's
query is never modified. Building failures (bad join or filter configuration,
SQLite errors) propagate to the caller.
"""
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple
from urllib.parse import unquote_plus

from constants import PSEUDO_COLUMNS, RESERVED_FILTER_KEYS
from database.query_builder import TableQueryBuilder
from error_handler import QueryBuildError
from logging_helper import LoggingHelper
from tables.request_input import ColumnRequest, OrderRequest, base_key
from tables.table_config import TableConfig

_COLUMN_NAME = re.compile(r'^[A-Za-z0-9_.]+$')


def extract_filters(filters: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """
    Reduce request filters to field -> value equality conditions.

    Reserved datatables keys are dropped, values are URL-decoded, empty values
    are skipped and the last value per field wins.
    """
    conditions: Dict[str, str] = {}
    if not isinstance(filters, Mapping):
        return conditions

    for name, value in filters.items():
        if not isinstance(name, str) or base_key(name) in RESERVED_FILTER_KEYS:
            continue
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if item is None or item == '' or isinstance(item, (dict, list)):
                continue
            conditions[name] = unquote_plus(str(item))
    return conditions


class QueryFactory:
    """Builds joins, conditions, filters, search, ordering and pagination."""

    def build_query(self, base_query: TableQueryBuilder, table_config: TableConfig,
                    table_name: str, filters: Optional[Mapping[str, Any]] = None,
                    order_by: Optional[Dict[str, str]] = None,
                    start: Optional[int] = 0, length: Optional[int] = 10) -> Dict[str, Any]:
        """
        Orchestrate joins -> where conditions -> filters -> pagination -> totals.

        Returns:
            {'model': paginated query, 'limit': {start, length, total,
            total_unfiltered, filters_applied}, 'join_fields': projection or
            None, 'order_by': order_by}
        """
        model = base_query
        join_fields = None
        if table_config.foreign_keys:
            joined = self.apply_joins(model, table_config.foreign_keys, table_name)
            model = joined['model']
            join_fields = joined['join_fields']

        model = self.apply_where_conditions(model, table_config.where)

        total_unfiltered = model.count()
        filtered = self.apply_filters(model, filters, table_name, table_config.first_field)
        model = filtered['model']

        limit = {
            'start': start,
            'length': length,
            'total': int(filtered['limit_total']),
            'total_unfiltered': total_unfiltered,
            'filters_applied': filtered['filters_applied'],
        }

        return {
            'model': self.apply_pagination(model, start, length),
            'limit': limit,
            'join_fields': join_fields,
            'order_by': order_by,
        }

    def apply_joins(self, base_query: TableQueryBuilder, foreign_keys: Mapping[str, str],
                    table_name: str) -> Dict[str, Any]:
        """
        Left-join every foreign-key pair and project the joined columns.

        Each pair is two qualified columns (``orders.customer_id`` /
        ``customers.id``, in either order); the side whose table is not the
        base table is joined. A joined table's ``id`` is aliased
        ``<table>_id`` so it does not shadow the base id.

        Raises:
            QueryBuildError: If a pair is not two qualified columns, or both
                sides name the base table
        """
        join_fields = [f"{table_name}.*"]
        if not foreign_keys:
            return {'model': base_query, 'join_fields': join_fields}

        query = base_query.clone()
        joined_tables: List[str] = []
        for left, right in foreign_keys.items():
            left_table, right_table = self._table_of(left), self._table_of(right)
            if left_table != table_name:
                joined = left_table
            elif right_table != table_name:
                joined = right_table
            else:
                raise QueryBuildError(f"Foreign key {left} -> {right} does not join another table")

            query.left_join(joined, left, right)
            if joined not in joined_tables:
                joined_tables.append(joined)

        for joined in joined_tables:
            for column in query.table_columns(joined):
                if column == 'id':
                    join_fields.append(f"{joined}.{column} as {joined}_{column}")
                else:
                    join_fields.append(f"{joined}.{column}")

        query.select(*join_fields)
        LoggingHelper.log_debug("Joins applied", {'table': table_name, 'joined': joined_tables})
        return {'model': query, 'join_fields': join_fields}

    @staticmethod
    def _table_of(reference: str) -> str:
        parts = str(reference).split('.')
        if len(parts) != 2 or not all(parts):
            raise QueryBuildError(f"Foreign key column must be qualified as table.column: {reference}")
        return parts[0]

    def apply_where_conditions(self, query: TableQueryBuilder,
                               conditions: Optional[Sequence[Any]]) -> TableQueryBuilder:
        """
        Apply configured static conditions, ANDed.

        Each condition is ``{'field_name', 'operator', 'value'}`` (or a
        ``(field, operator, value)`` tuple). List values become ``IN``.
        An empty condition list returns the query itself.
        """
        if not conditions:
            return query

        model = query.clone()
        for condition in conditions:
            if isinstance(condition, Mapping):
                field = condition.get('field_name')
                operator = condition.get('operator') or '='
                value = condition.get('value')
            elif isinstance(condition, (list, tuple)) and len(condition) == 3:
                field, operator, value = condition
            else:
                continue
            if not field:
                continue

            if isinstance(value, (list, tuple, set)):
                model.where_in(field, value)
            else:
                model.where(field, value, operator)
        return model

    def apply_filters(self, query: TableQueryBuilder, filters: Optional[Mapping[str, Any]],
                      table_name: str, first_field: str) -> Dict[str, Any]:
        """
        Apply request filters as equality conditions.

        Filters on columns that exist in neither the base nor a joined table
        are ignored. Without any filter a ``<table>.<first_field> IS NOT NULL``
        predicate is added and ``limit_total`` is the unfiltered count.

        Returns:
            {'model': filtered query, 'limit_total': row count,
            'filters_applied': whether any request filter was used}
        """
        conditions = extract_filters(filters)
        if conditions:
            schema = self._schema(query)
            model = query.clone()
            applied = 0
            for field, value in conditions.items():
                column = self._resolve_column(field, table_name, schema)
                if column is None:
                    LoggingHelper.log_warning("Ignoring filter on unknown column", {'field': field})
                    continue
                model.where(column, value)
                applied += 1
            if applied:
                return {'model': model, 'limit_total': model.count(), 'filters_applied': True}

        base_columns = query.table_columns(table_name)
        if base_columns and first_field not in base_columns:
            first_field = base_columns[0]
        model = query.clone().where_not_null(f"{table_name}.{first_field}")
        return {'model': model, 'limit_total': query.count(), 'filters_applied': False}

    def apply_pagination(self, query: TableQueryBuilder, start: Optional[int],
                         length: Optional[int]) -> TableQueryBuilder:
        """
        Apply OFFSET/LIMIT. ``start=None, length=None`` returns the query
        unpaginated; ``length=None`` alone means no upper bound.
        """
        if start is None and length is None:
            return query
        return query.clone().skip(start or 0).take(length)

    def calculate_totals(self, filtered_query: Optional[TableQueryBuilder],
                         unfiltered_query: Optional[TableQueryBuilder] = None) -> int:
        """
        Row count for recordsFiltered.

        Pagination never affects the count. The unfiltered query is only
        counted when no filtered query exists; callers count it separately
        for recordsTotal.
        """
        query = filtered_query if filtered_query is not None else unfiltered_query
        if query is None:
            return 0
        return int(query.count())

    def apply_search(self, query: TableQueryBuilder, term: str,
                     columns: Iterable[str], table_name: Optional[str] = None) -> TableQueryBuilder:
        """Global search: substring match on any listed column (ORed)."""
        term = (term or '').strip()
        if not term:
            return query

        schema = self._schema(query)
        table_name = table_name or query.table
        searchable = []
        for column in columns:
            resolved = self._resolve_column(column, table_name, schema)
            if resolved and resolved not in searchable:
                searchable.append(resolved)
        if not searchable:
            return query
        return query.clone().where_any_like(searchable, term)

    def apply_column_search(self, query: TableQueryBuilder,
                            column_requests: Sequence[ColumnRequest],
                            allowed: Sequence[str],
                            table_name: Optional[str] = None) -> TableQueryBuilder:
        """Per-column search (ANDed), limited to whitelisted columns."""
        pending = [
            col for col in column_requests
            if col.search_value and col.searchable and col.data
            and _COLUMN_NAME.match(col.data) and col.data in allowed
        ]
        if not pending:
            return query

        schema = self._schema(query)
        table_name = table_name or query.table
        model = query.clone()
        for col in pending:
            resolved = self._resolve_column(col.data, table_name, schema)
            if resolved:
                model.where_like(resolved, col.search_value)
        return model

    def apply_ordering(self, query: TableQueryBuilder, order_requests: Sequence[OrderRequest],
                       column_requests: Sequence[ColumnRequest], allowed: Sequence[str],
                       schema_columns: Sequence[str], default_column: Optional[str] = None,
                       default_direction: str = 'asc') -> Tuple[TableQueryBuilder, List[Tuple[str, str]]]:
        """
        Apply request ordering, falling back to a default order.

        A requested column is used when it is whitelisted, or when its bare
        name exists in the base table schema. Pseudo columns
        (DT_RowIndex, action, no) are never ordered on. Without a usable
        order request the fallback is default_column (with
        default_direction), else ascending on the first usable request
        column, the first whitelisted column, then ``id`` or the first
        schema column.

        Returns:
            (ordered query, list of (column, direction) applied)
        """
        def usable(name: Optional[str]) -> bool:
            if not name or name in PSEUDO_COLUMNS or not _COLUMN_NAME.match(name):
                return False
            return name in allowed or name.split('.')[-1] in schema_columns

        applied: List[Tuple[str, str]] = []
        for order in order_requests:
            if order.column is None or not 0 <= order.column < len(column_requests):
                continue
            name = column_requests[order.column].data
            if usable(name):
                applied.append((name, order.direction))

        if not applied:
            direction = 'desc' if str(default_direction).lower() == 'desc' else 'asc'
            if default_column and usable(default_column):
                applied.append((default_column, direction))
            else:
                fallback = next((col.data for col in column_requests if usable(col.data)), None)
                if fallback is None and allowed:
                    fallback = allowed[0]
                if fallback is None and schema_columns:
                    fallback = 'id' if 'id' in schema_columns else schema_columns[0]
                if fallback:
                    applied.append((fallback, 'asc'))

        if not applied:
            return query, applied

        schema = self._schema(query)
        model = query.clone()
        used: List[Tuple[str, str]] = []
        for name, direction in applied:
            resolved = self._resolve_column(name, query.table, schema)
            if resolved is None:
                continue
            model.order_by(resolved, direction)
            used.append((name, direction))
        return model, used

    @staticmethod
    def _schema(query: TableQueryBuilder) -> Dict[str, Set[str]]:
        schema = {query.table: set(query.table_columns())}
        for joined in query.joined_tables:
            schema[joined] = set(query.table_columns(joined))
        return schema

    @staticmethod
    def _resolve_column(name: str, table_name: str, schema: Mapping[str, Set[str]]) -> Optional[str]:
        """
        Qualify a column against the known schema.

        ``table.col`` is kept when that table is part of the query and has
        the column; a bare name resolves to the base table first, then to
        the first joined table that has it. Unknown columns resolve to None.
        """
        if not isinstance(name, str) or not _COLUMN_NAME.match(name):
            return None
        if '.' in name:
            table, _, column = name.partition('.')
            return name if column in schema.get(table, ()) else None
        if name in schema.get(table_name, ()):
            return f"{table_name}.{name}"
        for table, columns in schema.items():
            if name in columns:
                return f"{table}.{name}"
        return None
