"""
Legacy datatables processor.

Renders one table in a single pass: resolve the model, build the query,
then let a DataTable sink apply column options, row attributes, action
buttons and the index column while it serializes the page.
"""
from typing import Any, Mapping, Optional, Union

from constants import DEFAULT_BLACKLISTS, DEFAULT_RAW_COLUMNS, UNKNOWN_TABLE
from error_handler import TableNotFoundError
from logging_helper import LoggingHelper
from settings import DatatablesSettings
from tables.actions import ActionButtonsRenderer
from tables.columns import ColumnFactory
from tables.context import TableContext
from tables.context_adapter import ContextAdapter
from tables.datatable import DataTable
from tables.model_bridge import ModelQueryBridge
from tables.query_factory import QueryFactory
from tables.request_input import DatatablesRequest
from tables.row_attributes import RowAttributesBuilder
from tables.security import TableAccessGuard


class LegacyDatatables:
    """
    Single-pass table renderer.

    Args:
        db: Database used to resolve table keys
        settings: Injected configuration
        query_factory: QueryFactory instance (shared with the pipeline)
        guard: Table access guard; defaults to the settings whitelist
    """

    def __init__(self, db, settings: Optional[DatatablesSettings] = None,
                 query_factory: Optional[QueryFactory] = None,
                 guard: Optional[TableAccessGuard] = None,
                 column_factory: Optional[ColumnFactory] = None):
        self.db = db
        self.settings = settings or DatatablesSettings()
        self.factory = query_factory or QueryFactory()
        self.guard = guard or TableAccessGuard(self.settings.allowed_tables)
        self.columns = column_factory or ColumnFactory()
        self.adapter = ContextAdapter()

    def process(self, method: Any, data: Any, filters: Optional[Mapping[str, Any]] = None,
                filter_page: Optional[Mapping[str, Any]] = None,
                request: Union[DatatablesRequest, Mapping[str, Any], None] = None,
                current_url: Optional[str] = None):
        """
        Render one page of a table as a datatables payload.

        Raises:
            TableNotFoundError: When the table key resolves to no model
            SecurityError: When the table or a joined table may not be read
            QueryBuildError: When the configured joins or filters cannot be built
        """
        context = self.adapter.from_legacy_inputs(
            method, data, filters, filter_page, request, current_url
        )
        config = context.datatables

        resolved = ModelQueryBridge.resolve(config, context.table_name, self.db)
        if resolved['model_data'] is None:
            raise TableNotFoundError(f"No model found for table '{context.table_name or UNKNOWN_TABLE}'")

        table_name = resolved['table_name']
        table_config = config.table(table_name)
        self.guard.check_joins(table_name, table_config.foreign_keys)

        blacklists = set(DEFAULT_BLACKLISTS)
        if 'id' not in table_config.lists:
            blacklists.add('id')

        request_data = context.request
        built = self.factory.build_query(
            resolved['model_data'], table_config, table_name,
            filters=context.filters or request_data.filter_params(),
            order_by=resolved['order_by'], start=None, length=None,
        )
        model = built['model']
        limit = built['limit']

        search_columns = table_config.lists or model.table_columns()
        model = self.factory.apply_search(model, request_data.search_value, search_columns, table_name)
        model = self.factory.apply_column_search(model, request_data.columns, table_config.lists, table_name)

        records_filtered = self.factory.calculate_totals(model)
        records_total = records_filtered if limit['filters_applied'] else limit['total_unfiltered']
        page = self.factory.apply_pagination(model, context.start, context.length)

        table_context = TableContext(
            table_name=table_name,
            method=context.method,
            data=config,
            request=context.filters,
            index_lists=config.index_lists,
            blacklists=blacklists,
            route_path=config.route_path,
        )

        sink = (DataTable.of(page)
                .set_total_records(records_total)
                .set_filtered_records(records_filtered)
                .blacklist(table_context.blacklists)
                .raw_columns(DEFAULT_RAW_COLUMNS)
                .raw_columns(table_config.raw_columns_forced)
                .raw_columns(table_config.image_fields))

        self.columns.apply(sink, table_config, built['join_fields'])
        RowAttributesBuilder.apply(sink, table_context, self.settings.id_salt)
        ActionButtonsRenderer.apply(sink, table_context, context.current_url)

        order_by = built['order_by'] or {}
        if order_by.get('column'):
            sink.order(lambda query: self.factory.apply_ordering(
                query, [], [], table_config.lists, query.table_columns(),
                order_by['column'], order_by.get('order', 'asc'),
            )[0])
        else:
            sink.order(lambda query: self.factory.apply_ordering(
                query, request_data.order, request_data.columns,
                table_config.lists, query.table_columns(),
            )[0])

        if table_context.index_lists:
            sink.add_index_column()

        LoggingHelper.log_debug("Legacy render prepared", {
            'table': table_name,
            'recordsTotal': records_total,
            'recordsFiltered': records_filtered,
            'blacklists': sorted(blacklists),
        })
        return sink.make(context.draw)
