"""
Pipeline stages.

Each stage exposes execute(context) -> context and works on the copy the
pipeline hands it. Stages read configuration from the context and the
objects injected at construction; they never read ambient global state.
"""
from typing import Any, Dict, Iterable, List, Optional

from constants import DEFAULT_BLACKLISTS, UNKNOWN_TABLE
from helpers.sanitization import escape_cell, sanitize_html
from logging_helper import LoggingHelper
from tables.actions import ActionButtonsRenderer
from tables.columns import calculate_formula, format_row
from tables.context import DatatablesContext
from tables.model_bridge import ModelQueryBridge
from tables.query_factory import QueryFactory
from tables.row_attributes import row_attributes_for
from tables.security import TableAccessGuard
from tables.table_config import TableConfig


def empty_response(draw: int = 0) -> Dict[str, Any]:
    return {'draw': int(draw or 0), 'recordsTotal': 0, 'recordsFiltered': 0, 'data': []}


class PipelineStage:
    """Base class for pipeline stages."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def execute(self, context: DatatablesContext) -> DatatablesContext:
        raise NotImplementedError


class ResolveModelStage(PipelineStage):
    """
    Resolve the base query and fill the response with one page of rows.

    Steps: model resolution, table access check, unfiltered count, joins,
    where conditions, global and per-column search, request filters,
    filtered count, ordering, pagination, then formula columns and cell
    formatting.

    Raises:
        SecurityError: When the table or a joined table may not be read
    """

    def __init__(self, factory: Optional[QueryFactory] = None, db=None,
                 guard: Optional[TableAccessGuard] = None,
                 blacklists: Iterable[str] = DEFAULT_BLACKLISTS):
        self.factory = factory or QueryFactory()
        self.db = db
        self.guard = guard or TableAccessGuard()
        # id stays in pipeline rows: row links and action buttons need it
        self.blacklists = frozenset(blacklists) - {'id'}

    def execute(self, context: DatatablesContext) -> DatatablesContext:
        if not context.table_name or context.table_name == UNKNOWN_TABLE:
            LoggingHelper.log_debug("No table to resolve", {'table': context.table_name})
            return context

        resolved = ModelQueryBridge.resolve(context.datatables, context.table_name, self.db)
        base = resolved['model_data']
        if base is None:
            LoggingHelper.log_warning("No model resolved", {'table': context.table_name})
            return context

        table_name = resolved['table_name']
        config = context.datatables.table(table_name)
        self.guard.check_joins(table_name, config.foreign_keys)

        factory = self.factory
        model = base
        if config.foreign_keys:
            model = factory.apply_joins(model, config.foreign_keys, table_name)['model']
        model = factory.apply_where_conditions(model, config.where)
        total_unfiltered = model.count()

        request = context.request
        search_columns = config.lists or model.table_columns()
        model = factory.apply_search(model, request.search_value, search_columns, table_name)
        model = factory.apply_column_search(model, request.columns, config.lists, table_name)

        filters = context.filters or request.filter_params()
        filtered = factory.apply_filters(model, filters, table_name, config.first_field)
        model = filtered['model']
        records_filtered = factory.calculate_totals(model)
        records_total = records_filtered if filtered['filters_applied'] else total_unfiltered

        order_by = resolved['order_by']
        model, applied_order = factory.apply_ordering(
            model, request.order, request.columns, config.lists,
            model.table_columns(), order_by.get('column') or None,
            order_by.get('order', 'asc'),
        )
        page = factory.apply_pagination(model, context.start, context.length)

        rows = [self._render_row(row, config) for row in page.get()]
        actions = ActionButtonsRenderer.actions_for(context.datatables, table_name)

        context.table_name = table_name
        context.model_source = resolved['model_source'] or table_name
        context.payload = {
            'order': applied_order,
            'filters_applied': filtered['filters_applied'],
            'columns': config.display_columns(context.datatables.index_lists, bool(actions)),
        }
        context.response = {
            'draw': context.draw,
            'recordsTotal': records_total,
            'recordsFiltered': records_filtered,
            'data': rows,
        }
        LoggingHelper.log_debug("Model resolved", {
            'table': table_name,
            'recordsTotal': records_total,
            'recordsFiltered': records_filtered,
            'rows': len(rows),
        })
        return context

    def _render_row(self, row: Dict[str, Any], config: TableConfig) -> Dict[str, Any]:
        output = {key: value for key, value in row.items() if key not in self.blacklists}
        # formulas read the unformatted row; their results are formatted like any cell
        for formula in config.formula:
            output[formula['name']] = calculate_formula(formula, row)
        if config.format_data:
            format_row(output, config.format_data)
        return {key: escape_cell(value) for key, value in output.items()}


class FinalizeResponseStage(PipelineStage):
    """Guarantee the {draw, recordsTotal, recordsFiltered, data} shape."""

    def execute(self, context: DatatablesContext) -> DatatablesContext:
        if not isinstance(context.response, dict):
            context.response = empty_response(context.draw)
            return context

        response = context.response
        response.setdefault('draw', int(context.draw or 0))
        response.setdefault('recordsTotal', 0)
        response.setdefault('recordsFiltered', response['recordsTotal'])
        if not isinstance(response.get('data'), list):
            response['data'] = []
        return context


class EnrichRowsStage(PipelineStage):
    """
    Attach row attributes, action buttons and the optional row index.

    Attributes are recorded per row id in context.row_attributes and the
    rendered buttons in context.row_actions.
    """

    def __init__(self, salt: str = 'canvastack'):
        self.salt = salt

    def execute(self, context: DatatablesContext) -> DatatablesContext:
        rows: List[Dict[str, Any]] = context.data_rows()
        if not rows:
            return context

        config = context.datatables
        clickable = config.table(context.table_name).clickable
        actions = ActionButtonsRenderer.actions_for(config, context.table_name)
        offset = context.start or 0

        for position, row in enumerate(rows):
            row_id = row.get('id')
            attributes = row_attributes_for(row, clickable, self.salt)
            if attributes:
                row['DT_RowAttr'] = attributes
                context.row_attributes[str(row_id)] = attributes

            if actions:
                html = sanitize_html(ActionButtonsRenderer.render(
                    row, config, context.table_name, context.current_url, actions
                ))
                row['action'] = html
                context.row_actions[row_id] = html

            if config.index_lists:
                row['DT_RowIndex'] = offset + position + 1

        LoggingHelper.log_debug("Rows enriched", {
            'table': context.table_name,
            'rows': len(rows),
            'actions': actions,
        })
        return context
