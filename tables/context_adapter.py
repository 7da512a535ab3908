"""
Builds a DatatablesContext from legacy inputs.
"""
from typing import Any, Mapping, Optional, Union

from constants import UNKNOWN_TABLE
from logging_helper import LoggingHelper
from tables.context import DatatablesContext, method_dict
from tables.request_input import DatatablesRequest
from tables.table_config import DatatablesConfig, legacy_get


class ContextAdapter:
    """Single entry point that turns loosely-shaped call-site input into a context."""

    def from_legacy_inputs(self, method: Any, datatables: Any,
                           filters: Optional[Mapping[str, Any]] = None,
                           filter_page: Optional[Mapping[str, Any]] = None,
                           request: Union[DatatablesRequest, Mapping[str, Any], None] = None,
                           current_url: Optional[str] = None) -> DatatablesContext:
        """
        Create the working context for one request. Malformed input degrades
        to defaults; nothing here raises.

        Args:
            method: Page descriptor (``difta.name`` selects the table)
            datatables: Datatables configuration (dict, object or DatatablesConfig)
            filters: Request filters (field -> value or list of values)
            filter_page: Filter page state, carried through untouched
            request: Parsed request or raw parameters; defaults to the current request
            current_url: Base URL for action links
        """
        config = DatatablesConfig.from_legacy(datatables)
        context = DatatablesContext(config)
        context.method = method_dict(method)
        context.filters = dict(filters) if isinstance(filters, Mapping) else {}
        context.filter_page = dict(filter_page) if isinstance(filter_page, Mapping) else {}

        context.table_name = self._table_name(context.method, config)
        context.connection = config.connection

        if isinstance(request, DatatablesRequest):
            parsed = request
        elif isinstance(request, Mapping):
            parsed = DatatablesRequest.from_params(request)
        else:
            parsed = DatatablesRequest.from_globals()

        context.request = parsed
        context.start = parsed.start
        context.length = parsed.length
        context.draw = parsed.draw
        context.current_url = current_url or config.route_path or '/'

        LoggingHelper.log_debug("Context adapted from legacy inputs", {
            'table': context.table_name,
            'start': context.start,
            'length': context.length,
            'filters': sorted(context.filters),
        })
        return context

    @staticmethod
    def _table_name(method: Mapping[str, Any], config: DatatablesConfig) -> str:
        name = legacy_get(method, 'difta', 'name')
        if isinstance(name, str) and name:
            return name
        if config.tables:
            return next(iter(config.tables))
        return UNKNOWN_TABLE
