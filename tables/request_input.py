"""
Server-side datatables request parameters.

Clients post either flat bracket-notation keys (``columns[0][search][value]``)
or, for JSON bodies, nested dicts/lists. Both shapes parse to the same
DatatablesRequest.
"""
import re
from typing import Any, Dict, List, Mapping, Optional

from flask import has_request_context

from constants import DEFAULT_LENGTH, DEFAULT_START, MAX_LENGTH, RESERVED_FILTER_KEYS
from helpers.validation_helpers import clamp_length, coerce_int

_BRACKET_KEY = re.compile(r'^([^\[\]]+)((?:\[[^\[\]]*\])+)$')
_BRACKET_PART = re.compile(r'\[([^\[\]]*)\]')


def _last(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[-1] if value else None
    return value


def _collapse(key: str, value: Any) -> Any:
    """
    Reduce a multi-value entry to one value.

    ``columns`` and ``order`` may arrive as a JSON list of entries, which is
    kept whole; a list of such lists (multi-value wrapping) keeps the last.
    """
    if key in ('columns', 'order') and isinstance(value, list) and value:
        if all(isinstance(item, list) for item in value):
            return value[-1]
        if all(isinstance(item, dict) for item in value):
            return value
    return _last(value)


def _truthy_flag(value: Any, default: bool = True) -> bool:
    value = _last(value)
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() != 'false'


def base_key(key: str) -> str:
    """Strip bracket suffixes: ``columns[0][data]`` -> ``columns``."""
    return str(key).split('[', 1)[0]


def unflatten_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Expand bracket-notation keys into nested dicts.

    Multi-value entries collapse to their last value; numeric path segments
    stay string keys and are ordered by the callers that need lists.
    """
    nested: Dict[str, Any] = {}
    for key, value in params.items():
        match = _BRACKET_KEY.match(str(key))
        if not match:
            nested[key] = _collapse(key, value)
            continue
        head, tail = match.groups()
        path = [head] + _BRACKET_PART.findall(tail)
        node = nested
        for part in path[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[path[-1]] = _last(value)
    return nested


def _indexed(value: Any) -> List[Any]:
    """A list from either a JSON list or a dict keyed by ``"0"``, ``"1"``..."""
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        keyed = []
        for key, item in value.items():
            index = coerce_int(key)
            if index is not None:
                keyed.append((index, item))
        return [item for _, item in sorted(keyed, key=lambda pair: pair[0])]
    return []


class ColumnRequest:
    """One ``columns[i]`` entry."""

    def __init__(self, data: str = '', name: str = '', searchable: bool = True,
                 orderable: bool = True, search_value: str = ''):
        self.data = data
        self.name = name
        self.searchable = searchable
        self.orderable = orderable
        self.search_value = search_value

    @classmethod
    def from_raw(cls, raw: Any) -> 'ColumnRequest':
        if not isinstance(raw, Mapping):
            return cls()
        search = raw.get('search')
        search_value = _last(search.get('value')) if isinstance(search, Mapping) else ''
        return cls(
            data=str(_last(raw.get('data')) or ''),
            name=str(_last(raw.get('name')) or ''),
            searchable=_truthy_flag(raw.get('searchable')),
            orderable=_truthy_flag(raw.get('orderable')),
            search_value=str(search_value or ''),
        )


class OrderRequest:
    """One ``order[i]`` entry: column index and direction."""

    def __init__(self, column: Optional[int], direction: str = 'asc'):
        self.column = column
        self.direction = 'desc' if str(direction).strip().lower() == 'desc' else 'asc'

    @classmethod
    def from_raw(cls, raw: Any) -> 'OrderRequest':
        if not isinstance(raw, Mapping):
            return cls(None)
        return cls(coerce_int(raw.get('column')), str(_last(raw.get('dir')) or 'asc'))


class DatatablesRequest:
    """
    Parsed datatables parameters.

    ``length`` is None when the client asked for all rows (``length=-1``).
    """

    def __init__(self, draw: int = 0, start: int = DEFAULT_START,
                 length: Optional[int] = DEFAULT_LENGTH, search_value: str = '',
                 columns: Optional[List[ColumnRequest]] = None,
                 order: Optional[List[OrderRequest]] = None,
                 params: Optional[Dict[str, Any]] = None):
        self.draw = draw
        self.start = start
        self.length = length
        self.search_value = search_value
        self.columns = list(columns or [])
        self.order = list(order or [])
        self.params = dict(params or {})

    @classmethod
    def from_params(cls, params: Optional[Mapping[str, Any]],
                    max_length: int = MAX_LENGTH) -> 'DatatablesRequest':
        """Parse flat bracket-notation or nested parameters; malformed values fall back to defaults."""
        params = dict(params or {})
        nested = unflatten_params(params)

        start = coerce_int(nested.get('start'), DEFAULT_START)
        length = coerce_int(nested.get('length'), DEFAULT_LENGTH)

        search = nested.get('search')
        search_value = _last(search.get('value')) if isinstance(search, Mapping) else _last(search)

        return cls(
            draw=max(0, coerce_int(nested.get('draw'), 0)),
            start=max(0, start),
            length=clamp_length(length, max_length),
            search_value=str(search_value or '').strip(),
            columns=[ColumnRequest.from_raw(raw) for raw in _indexed(nested.get('columns'))],
            order=[OrderRequest.from_raw(raw) for raw in _indexed(nested.get('order'))],
            params=params,
        )

    @classmethod
    def from_globals(cls) -> 'DatatablesRequest':
        """Parse the current Flask request, or defaults outside a request."""
        if not has_request_context():
            return cls()
        from helpers.request_helpers import collect_request_params
        return cls.from_params(collect_request_params())

    def filter_params(self) -> Dict[str, Any]:
        """Request parameters that are not part of the datatables protocol."""
        return {
            key: value for key, value in self.params.items()
            if base_key(key) not in RESERVED_FILTER_KEYS
        }

    def column_data(self, index: Optional[int]) -> Optional[str]:
        if index is None or not 0 <= index < len(self.columns):
            return None
        return self.columns[index].data or None
