"""
Context objects passed between the datatables components.
"""
import copy
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from constants import DEFAULT_BLACKLISTS, DEFAULT_LENGTH, DEFAULT_START, UNKNOWN_TABLE
from logging_helper import LoggingHelper
from tables.request_input import DatatablesRequest
from tables.table_config import DatatablesConfig, legacy_get


def method_dict(method: Any) -> Dict[str, Any]:
    if isinstance(method, Mapping):
        return dict(method)
    if method is not None and hasattr(method, '__dict__'):
        return dict(vars(method))
    return {}


class TableContext:
    """
    Read-only snapshot of one table render.

    Built once through from_legacy; assigning an attribute afterwards raises
    AttributeError.
    """

    __slots__ = ('table_name', 'method', 'data', 'request', 'index_lists',
                 'blacklists', 'route_path', '_frozen')

    def __init__(self, table_name: str = UNKNOWN_TABLE, method: Optional[Dict[str, Any]] = None,
                 data: Optional[DatatablesConfig] = None, request: Optional[Dict[str, Any]] = None,
                 index_lists: bool = False, blacklists: Iterable[str] = DEFAULT_BLACKLISTS,
                 route_path: Optional[str] = None):
        object.__setattr__(self, '_frozen', False)
        self.table_name = table_name
        self.method = dict(method or {})
        self.data = data or DatatablesConfig()
        self.request = dict(request or {})
        self.index_lists = bool(index_lists)
        self.blacklists: FrozenSet[str] = frozenset(blacklists)
        self.route_path = route_path
        object.__setattr__(self, '_frozen', True)

    def __setattr__(self, name: str, value: Any) -> None:
        if self._frozen:
            raise AttributeError(f"TableContext is read-only (tried to set {name!r})")
        object.__setattr__(self, name, value)

    @classmethod
    def from_legacy(cls, method: Any, data: Any, request: Optional[Mapping[str, Any]] = None,
                    blacklists: Optional[Iterable[str]] = None) -> 'TableContext':
        """
        Build a snapshot from legacy inputs; never raises on malformed input.

        Args:
            method: Page descriptor; the table key is read from ``difta.name``
            data: Datatables configuration (dict, object or DatatablesConfig)
            request: Normalized request filters
            blacklists: Columns never exposed (default password/action/no)
        """
        method = method_dict(method)
        config = DatatablesConfig.from_legacy(data)
        name = legacy_get(method, 'difta', 'name')
        table_name = config.resolve_table_name(name if isinstance(name, str) else None)

        return cls(
            table_name=table_name,
            method=method,
            data=config,
            request=dict(request or {}),
            index_lists=config.index_lists,
            blacklists=DEFAULT_BLACKLISTS if blacklists is None else blacklists,
            route_path=config.route_path,
        )

    @property
    def table_config(self):
        return self.data.table(self.table_name)

    def __repr__(self) -> str:
        return f"<TableContext {self.table_name} index_lists={self.index_lists}>"


class DatatablesContext:
    """
    Mutable working state threaded through the pipeline stages.

    One context per request. Stages receive a copy() so that a failing stage
    cannot leave half-applied changes behind.
    """

    def __init__(self, datatables: Optional[DatatablesConfig] = None):
        self.method: Dict[str, Any] = {}
        self.datatables = datatables or DatatablesConfig()
        self.filters: Dict[str, Any] = {}
        self.filter_page: Dict[str, Any] = {}

        self.table_name: Optional[str] = None
        self.model_source: Any = None
        self.connection: Optional[str] = None
        self.current_url: str = '/'

        self.start: int = DEFAULT_START
        self.length: Optional[int] = DEFAULT_LENGTH
        self.draw: int = 0
        self.request = DatatablesRequest()

        self.response: Optional[Dict[str, Any]] = None
        self.payload: Any = None

        self.row_attributes: Dict[str, Any] = {}
        self.row_actions: Dict[Any, str] = {}

        LoggingHelper.log_debug("DatatablesContext created", {
            'tables': sorted(self.datatables.tables),
        })

    def copy(self) -> 'DatatablesContext':
        """
        Copy for one stage run.

        Output slots and filter maps are deep-copied; configuration, request
        and model source are shared because stages only read them.
        """
        twin = object.__new__(DatatablesContext)
        twin.__dict__.update(self.__dict__)
        twin.method = copy.deepcopy(self.method)
        twin.filters = copy.deepcopy(self.filters)
        twin.filter_page = copy.deepcopy(self.filter_page)
        twin.response = copy.deepcopy(self.response)
        twin.payload = copy.deepcopy(self.payload)
        twin.row_attributes = copy.deepcopy(self.row_attributes)
        twin.row_actions = dict(self.row_actions)
        return twin

    @property
    def table_config(self):
        return self.datatables.table(self.table_name)

    def data_rows(self) -> List[Dict[str, Any]]:
        if isinstance(self.response, dict) and isinstance(self.response.get('data'), list):
            return self.response['data']
        return []

    def __repr__(self) -> str:
        return f"<DatatablesContext {self.table_name} start={self.start} length={self.length}>"
