"""
Server-side datatables: configuration, query building, rendering.
"""
from .context import DatatablesContext, TableContext
from .context_adapter import ContextAdapter
from .datatable import DataTable
from .hybrid import HybridCompare, json_diff
from .legacy import LegacyDatatables
from .pipeline import DatatablesPipeline
from .query_factory import QueryFactory
from .registry import TableRegistry
from .service import DatatablesService
from .table_config import DatatablesConfig, TableConfig

__all__ = [
    'ContextAdapter',
    'DataTable',
    'DatatablesConfig',
    'DatatablesContext',
    'DatatablesPipeline',
    'DatatablesService',
    'HybridCompare',
    'LegacyDatatables',
    'QueryFactory',
    'TableConfig',
    'TableContext',
    'TableRegistry',
    'json_diff',
]
