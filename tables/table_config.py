"""
Typed view over the loosely-shaped datatables configuration.

Call sites describe tables with nested dicts or attribute objects (or a mix of
both). DatatablesConfig.from_legacy is the one place that inspects that shape;
everything downstream works with DatatablesConfig / TableConfig instances.
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence

from constants import DEFAULT_ACTIONS, UNKNOWN_TABLE
from logging_helper import LoggingHelper
from tables.columns import set_formula_columns

_MISSING = object()


def legacy_get(source: Any, *path: Any, default: Any = None) -> Any:
    """
    Walk a path through dicts, attribute objects and sequences.

    Any missing key, attribute or index (or any error raised while looking it
    up) yields ``default``; a present ``None`` also yields ``default``.

    Example:
        legacy_get(method, 'difta', 'name', default='unknown')
    """
    current = source
    for key in path:
        if current is None:
            return default
        try:
            if isinstance(current, Mapping):
                current = current.get(key, _MISSING)
            elif isinstance(current, (list, tuple)) and isinstance(key, int):
                current = current[key] if -len(current) <= key < len(current) else _MISSING
            else:
                current = getattr(current, str(key), _MISSING)
        except Exception:
            return default
        if current is _MISSING:
            return default
    return default if current is None else current


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, Mapping):
        return dict(value)
    if value is None or isinstance(value, (str, bytes, int, float, bool)):
        return {}
    if hasattr(value, '__dict__'):
        return {key: val for key, val in vars(value).items() if not key.startswith('_')}
    return {}


def _as_list(value: Any) -> List[Any]:
    if value is None or value == '':
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    if isinstance(value, Mapping):
        return list(value.values())
    return [value]


def parse_formulas(value: Any) -> List[Dict[str, Any]]:
    """
    Normalize formula column definitions.

    Entries need a name and a non-empty field_lists; anything else is dropped.
    A single definition may be given without the surrounding list.
    """
    if isinstance(value, Mapping) and 'name' in value:
        value = [value]

    formulas = []
    for entry in _as_list(value):
        entry = _as_dict(entry)
        name = entry.get('name')
        field_lists = [str(field) for field in _as_list(entry.get('field_lists')) if field]
        if not name or not field_lists:
            continue
        formulas.append({
            'name': str(name),
            'label': entry.get('label') or str(name),
            'field_lists': field_lists,
            'logic': str(entry.get('logic') or '+'),
            'node_location': entry.get('node_location'),
            'node_after': bool(entry.get('node_after', False)),
        })
    return formulas


def is_clickable(value: Any) -> bool:
    """Clickable when configured as True or as a list with at least one entry."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (list, tuple, set)):
        return len(value) >= 1
    return False


def resolve_actions(actions: Any, removed: Sequence[str] = ()) -> List[str]:
    """
    Resolve the action list for a table.

    ``True`` means the default view/insert/edit/delete set; a list is merged
    after the defaults (duplicates dropped, order kept). Removed buttons are
    filtered out last.
    """
    if actions is True:
        resolved = list(DEFAULT_ACTIONS)
    elif isinstance(actions, (list, tuple)) and actions:
        resolved = list(DEFAULT_ACTIONS)
        for action in actions:
            if isinstance(action, str) and action not in resolved:
                resolved.append(action)
    else:
        return []
    removed = set(removed or ())
    return [action for action in resolved if action not in removed]


class TableConfig:
    """Per-table options (lists, joins, conditions, rendering hints)."""

    def __init__(self, name: str, lists: Optional[List[str]] = None,
                 foreign_keys: Optional[Dict[str, str]] = None,
                 clickable: Any = False, actions: Any = None,
                 button_removed: Optional[List[str]] = None,
                 format_data: Optional[Dict[str, Dict[str, Any]]] = None,
                 image_fields: Optional[List[str]] = None,
                 raw_columns_forced: Optional[List[str]] = None,
                 relations: Optional[Dict[str, Any]] = None,
                 orderby: Optional[Dict[str, str]] = None,
                 where: Optional[List[Dict[str, Any]]] = None,
                 formula: Optional[List[Dict[str, Any]]] = None):
        self.name = name
        self.lists = [column for column in (lists or []) if isinstance(column, str) and column]
        self.foreign_keys = dict(foreign_keys or {})
        self.clickable = clickable
        self.actions = actions
        self.button_removed = list(button_removed or [])
        self.format_data = dict(format_data or {})
        self.image_fields = list(image_fields or [])
        self.raw_columns_forced = list(raw_columns_forced or [])
        self.relations = dict(relations or {})
        self.orderby = dict(orderby or {})
        self.where = list(where or [])
        self.formula = list(formula or [])

    @classmethod
    def from_legacy(cls, name: str, columns_entry: Any, conditions_entry: Any = None,
                    formula: Any = None) -> 'TableConfig':
        entry = _as_dict(columns_entry)
        if not formula:
            formula = legacy_get(conditions_entry, 'formula') or entry.get('formula')

        format_data = {}
        for field, rule in _as_dict(entry.get('format_data')).items():
            rule = _as_dict(rule)
            if rule:
                rule.setdefault('field_name', field)
                format_data[str(field)] = rule

        orderby = _as_dict(entry.get('orderby'))
        if orderby:
            orderby = {
                'column': str(orderby.get('column', '')),
                'order': str(orderby.get('order', 'asc')),
            }

        where = [_as_dict(cond) for cond in _as_list(legacy_get(conditions_entry, 'where'))]

        return cls(
            name=name,
            lists=_as_list(entry.get('lists')),
            foreign_keys={str(k): str(v) for k, v in _as_dict(entry.get('foreign_keys')).items()},
            clickable=entry.get('clickable', False),
            actions=entry.get('actions'),
            button_removed=_as_list(entry.get('button_removed')),
            format_data=format_data,
            image_fields=_as_list(entry.get('image_fields')),
            raw_columns_forced=_as_list(entry.get('raw_columns_forced')),
            relations=_as_dict(entry.get('relations')),
            orderby=orderby,
            where=[cond for cond in where if cond],
            formula=parse_formulas(formula),
        )

    @property
    def is_clickable(self) -> bool:
        return is_clickable(self.clickable)

    @property
    def formula_names(self) -> List[str]:
        return [formula['name'] for formula in self.formula]

    def format_rule(self, column: str) -> Optional[Dict[str, Any]]:
        """The format_data rule that targets a column, if any."""
        for field, rule in self.format_data.items():
            if (rule.get('field_name') or field) == column:
                return rule
        return None

    def display_columns(self, index_lists: bool = False, with_action: bool = False) -> List[str]:
        """Listed columns in display order, formula columns inserted."""
        columns = list(self.lists)
        if index_lists:
            columns.insert(0, 'DT_RowIndex')
        if with_action:
            columns.append('action')
        if not self.formula:
            return columns
        return set_formula_columns(columns, self.formula)

    @property
    def first_field(self) -> str:
        """``id`` when listed (or nothing is listed), otherwise the first listed column."""
        if not self.lists or 'id' in self.lists:
            return 'id'
        return self.lists[0]

    def __repr__(self) -> str:
        return f"<TableConfig {self.name} lists={self.lists}>"


class ModelSource:
    """A configured model definition: ``type`` is model, table or sql."""

    def __init__(self, type: str, source: Any, connection: Optional[str] = None):
        self.type = type
        self.source = source
        self.connection = connection

    def table_name(self) -> Optional[str]:
        if self.type == 'sql':
            return None
        if hasattr(self.source, 'get_table'):
            return self.source.get_table()
        if isinstance(self.source, str) and self.source:
            return self.source
        return None


class DatatablesConfig:
    """
    Normalized datatables configuration for one render.

    Attributes:
        tables: TableConfig per table name
        models: ModelSource per table key
        index_lists: Add a DT_RowIndex column
        route_path: Base path for row links and action buttons
        use_field_target_url: Row field used as the action target (default id)
        button_removed: Buttons removed for every table
        connection: Optional connection hint
    """

    def __init__(self, tables: Optional[Dict[str, TableConfig]] = None,
                 models: Optional[Dict[str, ModelSource]] = None,
                 index_lists: bool = False, route_path: Optional[str] = None,
                 use_field_target_url: str = 'id',
                 button_removed: Optional[List[str]] = None,
                 connection: Optional[str] = None):
        self.tables = dict(tables or {})
        self.models = dict(models or {})
        self.index_lists = bool(index_lists)
        self.route_path = route_path
        self.use_field_target_url = use_field_target_url or 'id'
        self.button_removed = list(button_removed or [])
        self.connection = connection

    @classmethod
    def from_legacy(cls, datatables: Any) -> 'DatatablesConfig':
        """
        Build a config from a dict or attribute object; never raises.

        Recognised keys: columns, conditions, formula, model, records.index_lists,
        route_path, useFieldTargetURL / use_field_target_url, button_removed,
        connection, variables.connection.
        """
        if isinstance(datatables, DatatablesConfig):
            return datatables

        try:
            return cls._parse(datatables)
        except Exception as exc:
            LoggingHelper.log_warning(
                "Malformed datatables configuration, using defaults",
                {'error': str(exc)}
            )
            return cls()

    @classmethod
    def _parse(cls, datatables: Any) -> 'DatatablesConfig':
        columns = _as_dict(legacy_get(datatables, 'columns'))
        conditions = _as_dict(legacy_get(datatables, 'conditions'))

        formulas = _as_dict(legacy_get(datatables, 'formula'))
        tables = {
            str(name): TableConfig.from_legacy(str(name), entry, conditions.get(name), formulas.get(name))
            for name, entry in columns.items()
        }

        models = {}
        for name, definition in _as_dict(legacy_get(datatables, 'model')).items():
            definition = _as_dict(definition)
            source = definition.get('source')
            if source is None:
                continue
            models[str(name)] = ModelSource(
                type=str(definition.get('type', 'model')),
                source=source,
                connection=definition.get('connection'),
            )

        connection = legacy_get(datatables, 'connection')
        if not isinstance(connection, str):
            connection = legacy_get(datatables, 'variables', 'connection')
        if not isinstance(connection, str):
            connection = None

        target = (legacy_get(datatables, 'useFieldTargetURL')
                  or legacy_get(datatables, 'use_field_target_url', default='id'))

        return cls(
            tables=tables,
            models=models,
            index_lists=bool(legacy_get(datatables, 'records', 'index_lists', default=False)),
            route_path=legacy_get(datatables, 'route_path'),
            use_field_target_url=str(target),
            button_removed=_as_list(legacy_get(datatables, 'button_removed')),
            connection=connection,
        )

    def table(self, name: Optional[str]) -> TableConfig:
        """TableConfig for a table; an empty config when it is not declared."""
        if name and name in self.tables:
            return self.tables[name]
        return TableConfig(name or UNKNOWN_TABLE)

    def model(self, name: Optional[str]) -> Optional[ModelSource]:
        return self.models.get(name) if name else None

    def resolve_table_name(self, name: Optional[str]) -> str:
        """
        Resolve a table key to a real table name.

        A model source wins; otherwise a declared table key is used as-is;
        anything else resolves to ``unknown``.
        """
        model = self.model(name)
        if model is not None:
            resolved = model.table_name()
            if resolved:
                return resolved
        if name and name in self.tables:
            return name
        return UNKNOWN_TABLE

    def removed_buttons(self, table_name: Optional[str]) -> List[str]:
        removed = list(self.button_removed)
        for button in self.table(table_name).button_removed:
            if button not in removed:
                removed.append(button)
        return removed
