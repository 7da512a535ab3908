"""
Datatables service: the single entry point used by routes and callers.

Dispatch by configuration:
    pipeline disabled or mode legacy -> legacy processor
    mode pipeline                    -> staged pipeline response
    mode hybrid                      -> hybrid compare, legacy result returned
"""
from typing import Any, Dict, Mapping, Optional, Union

from constants import MODE_HYBRID, MODE_PIPELINE
from error_handler import SecurityError
from logging_helper import LoggingHelper, LogType, logger
from settings import DatatablesSettings
from tables.context_adapter import ContextAdapter
from tables.hybrid import HybridCompare
from tables.legacy import LegacyDatatables
from tables.pipeline import DatatablesPipeline
from tables.query_factory import QueryFactory
from tables.registry import TableRegistry
from tables.request_input import DatatablesRequest
from tables.security import TableAccessGuard
from tables.stages import empty_response

RequestArg = Union[DatatablesRequest, Mapping[str, Any], None]


class DatatablesService:
    """
    Wires settings, database and registry into the processors.

    Args:
        db: Database (see database.Database)
        settings: Injected configuration; loaded from the environment when omitted
        registry: Tables reachable through process_registered
    """

    def __init__(self, db, settings: Optional[DatatablesSettings] = None,
                 registry: Optional[TableRegistry] = None):
        self.db = db
        self.settings = settings or DatatablesSettings.from_env()
        self.registry = registry if registry is not None else TableRegistry()
        LoggingHelper.configure_environment(self.settings.environment)

        guard = TableAccessGuard(self.settings.allowed_tables)
        factory = QueryFactory()
        self.legacy = LegacyDatatables(db, self.settings, factory, guard)
        self.pipeline = DatatablesPipeline(self.settings, db, guard=guard)
        self.hybrid = HybridCompare(self.legacy, self.pipeline, self.settings)
        self.adapter = ContextAdapter()

    def process(self, method: Any, data: Any, filters: Optional[Mapping[str, Any]] = None,
                filter_page: Optional[Mapping[str, Any]] = None, request: RequestArg = None,
                current_url: Optional[str] = None) -> Dict[str, Any]:
        """Render a table in the configured mode and return the datatables payload."""
        settings = self.settings
        if not settings.pipeline_enabled or settings.mode not in (MODE_PIPELINE, MODE_HYBRID):
            return self.legacy.process(method, data, filters, filter_page, request, current_url)

        if settings.mode == MODE_PIPELINE:
            return self.run_pipeline(method, data, filters, filter_page, request, current_url)

        try:
            return self.hybrid.run(method, data, filters, filter_page, request, current_url)['legacy_result']
        except SecurityError:
            raise
        except Exception as exc:
            LoggingHelper.log_error_with_trace("Hybrid compare failed, using legacy", exc, LogType.PIPELINE)
            return self.legacy.process(method, data, filters, filter_page, request, current_url)

    def run_pipeline(self, method: Any, data: Any, filters: Optional[Mapping[str, Any]] = None,
                     filter_page: Optional[Mapping[str, Any]] = None, request: RequestArg = None,
                     current_url: Optional[str] = None) -> Dict[str, Any]:
        context = self.adapter.from_legacy_inputs(method, data, filters, filter_page, request, current_url)
        context = self.pipeline.run(context)
        if isinstance(context.response, dict):
            return context.response
        return empty_response(context.draw)

    def compare(self, method: Any, data: Any, filters: Optional[Mapping[str, Any]] = None,
                filter_page: Optional[Mapping[str, Any]] = None, request: RequestArg = None,
                current_url: Optional[str] = None) -> Dict[str, Any]:
        """Run the hybrid compare regardless of mode."""
        return self.hybrid.run(method, data, filters, filter_page, request, current_url)

    def process_registered(self, table_key: str, params: Optional[Mapping[str, Any]] = None,
                           current_url: Optional[str] = None, compare: bool = False) -> Dict[str, Any]:
        """
        Render a registered table from raw request parameters.

        Raises:
            TableNotFoundError: If table_key is not registered
        """
        entry = self.registry.get(table_key)
        request = DatatablesRequest.from_params(params or {})
        filters = request.filter_params()
        logger.debug(f"Rendering registered table {table_key} (mode={self.settings.mode})")

        if compare:
            return self.compare(entry.method, entry.datatables, filters, None, request, current_url)
        return self.process(entry.method, entry.datatables, filters, None, request, current_url)
