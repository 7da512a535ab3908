"""
Column formatting and the column option registry.

Table configurations carry per-column options (formula columns, number
formats, image columns, relation lookups, forced raw columns). Each option
name maps to one handler in COLUMN_OPTION_HANDLERS; validate_registry() runs
at application startup so that a missing handler fails fast instead of at
render time.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from markupsafe import escape

from constants import FORMULA_OPERATORS, IMAGE_EXTENSIONS, INDEX_COLUMN_NAMES
from error_handler import ConfigurationError
from logging_helper import LoggingHelper


def format_number(value: Any, decimals: int = 0, separator: str = '.',
                  format_type: str = 'number') -> Any:
    """
    Format a numeric value with grouping.

    separator ``.`` groups thousands with ``,`` and uses ``.`` for decimals;
    any other separator swaps the two. Halves round away from zero. The
    precision comes from decimals alone: ``decimal`` and ``number`` format
    types render the same, so ``decimal`` without a precision is an integer.
    Empty values give None; non-numeric values are returned unchanged.

    Examples:
        >>> format_number(1234567.891, 2)
        '1,234,567.89'
        >>> format_number(1234567, 0, ',')
        '1.234.567'
        >>> format_number(2.5)
        '3'
    """
    if value is None or value == '':
        return None
    decimals = max(0, int(decimals or 0))
    try:
        number = Decimal(str(value).strip()).quantize(
            Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP
        )
    except (InvalidOperation, ValueError):
        # non-numeric, infinite or beyond the decimal context precision
        return value
    rendered = f"{number:,.{decimals}f}"
    if separator == '.':
        return rendered
    return rendered.replace(',', '\0').replace('.', ',').replace('\0', '.')


def column_label(field: str) -> str:
    return ' '.join(part.capitalize() for part in field.replace('-', ' ').replace('_', ' ').split())


def render_image(value: Any, field: str) -> str:
    """
    Render an image cell.

    Paths ending in an image extension become an <img>; anything else shows
    its last path segment.
    """
    value = '' if value is None else str(value)
    if not value:
        return ''

    extension = value.rsplit('.', 1)[-1].lower() if '.' in value else ''
    if extension in IMAGE_EXTENSIONS:
        alt = f"imgsrc::{column_label(field)}"
        return (
            f'<div class="text-center"><img class="cdy-img-thumb" '
            f'src="{escape(value)}" alt="{escape(alt)}" /></div>'
        )
    return value.rsplit('/', 1)[-1]


def format_row(row: Dict[str, Any], format_rules: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    """Apply format_data rules to one row in place; a failing cell keeps its value."""
    for field, rule in format_rules.items():
        name = rule.get('field_name') or field
        if name not in row or row[name] is None or row[name] == '':
            continue
        try:
            row[name] = format_number(
                row[name],
                int(rule.get('decimal_endpoint') or 0),
                str(rule.get('separator') or '.'),
                str(rule.get('format_type') or 'number'),
            )
        except (TypeError, ValueError) as exc:
            LoggingHelper.log_warning("Cell formatting failed", {'field': name, 'error': str(exc)})
    return row


# =============================================================================
# Formula columns
# =============================================================================

def _numeric_node(node: Any) -> Optional[int]:
    if isinstance(node, bool) or node is None:
        return None
    try:
        return int(float(str(node).strip()))
    except (ValueError, OverflowError):
        return None


def set_formula_columns(columns: Sequence[str], formulas: Sequence[Any]) -> List[str]:
    """
    Insert formula column names into a column list.

    Each formula names a target through ``node_location``:
        None        after the last entry of its field_lists
        'first'     the first column (after an index column when present)
        'last'      the last column; with node_after and an ``action``
                    column the formula lands just before ``action``
        <name>      that column, before it or after it per ``node_after``
        <int>       a column position, when no column has that name

    Formulas without name or field_lists, or whose target cannot be found,
    are skipped.

    Example:
        >>> set_formula_columns(['id', 'name', 'action'],
        ...     [{'name': 'total', 'field_lists': ['id'], 'node_location': 'last', 'node_after': True}])
        ['id', 'name', 'total', 'action']
    """
    columns = list(columns)
    positions = {column: index for index, column in enumerate(columns)}
    has_action = 'action' in positions
    has_index = any(name in positions for name in INDEX_COLUMN_NAMES)

    # name -> (target, target_index, node_after, node_location)
    nodes: Dict[str, tuple] = {}
    for formula in formulas:
        if not isinstance(formula, Mapping):
            continue
        name = formula.get('name')
        field_lists = formula.get('field_lists')
        if not name or not isinstance(field_lists, (list, tuple)) or not field_lists:
            continue

        node = formula.get('node_location')
        if not node or node == '0':
            target = field_lists[-1]
        elif node == 'first':
            target = columns[0] if columns else name
        elif node == 'last':
            target = columns[-1] if columns else name
        else:
            target = node

        after = bool(formula.get('node_after', False))
        if target in positions:
            nodes[name] = (target, positions[target], after, node)
            continue
        index = _numeric_node(node)
        if index is not None and 0 <= index < len(columns):
            nodes[name] = (target, index, after, node)

    first = [(name, node) for name, node in nodes.items() if node[3] == 'first']
    last_after = [(name, node) for name, node in nodes.items() if node[3] == 'last' and node[2]]
    last_before = [(name, node) for name, node in nodes.items() if node[3] == 'last' and not node[2]]
    custom_before = [(name, node) for name, node in nodes.items()
                     if node[3] not in ('first', 'last') and not node[2]]
    custom_after = [(name, node) for name, node in nodes.items()
                    if node[3] not in ('first', 'last') and node[2]]

    def current_index(target, fallback):
        return columns.index(target) if target in columns else fallback

    for name, (_target, index, _after, _node) in first:
        columns.insert(max(0, index + 1 if has_index else index), name)

    for name, (_target, index, _after, _node) in last_after:
        if has_action:
            columns.insert(max(0, index), name)
        else:
            columns.append(name)

    for name, (target, index, _after, _node) in custom_before:
        position = current_index(target, index)
        if target == 'action' and last_after:
            position = max(0, position - len(last_after))
        columns.insert(max(0, position), name)

    for name, (target, index, _after, _node) in custom_after:
        columns.insert(max(0, current_index(target, index) + 1), name)

    # with custom-after formulas present, 'last' formulas move behind action
    if custom_after:
        for name, _node in last_after:
            columns.remove(name)
            columns.append(name)

    for name, _node in last_before:
        columns.insert(max(0, len(columns) - 1), name)

    return columns


def _formula_number(value: Any) -> Decimal:
    if value is None or value == '':
        return Decimal(0)
    if isinstance(value, bool):
        return Decimal(int(value))
    return Decimal(str(value).strip())


def calculate_formula(formula: Mapping[str, Any], row: Mapping[str, Any]) -> Any:
    """
    Evaluate a formula column for one row.

    The ``logic`` operator is applied left to right across the row values
    named in ``field_lists``. ``||`` and ``&&`` give booleans; arithmetic
    treats empty values as 0 and yields None for non-numeric input or a
    zero divisor.
    """
    logic = str(formula.get('logic') or '+').strip()
    values = [row.get(field) for field in formula.get('field_lists') or []]
    if not values:
        return None

    if logic == '||':
        return any(bool(value) for value in values)
    if logic == '&&':
        return all(bool(value) for value in values)
    if logic not in FORMULA_OPERATORS:
        LoggingHelper.log_warning("Unknown formula operator", {
            'formula': formula.get('name'), 'logic': logic,
        })
        return None

    try:
        numbers = [_formula_number(value) for value in values]
        result = numbers[0]
        for number in numbers[1:]:
            if logic == '+':
                result += number
            elif logic == '-':
                result -= number
            elif logic == '*':
                result *= number
            elif number == 0:
                return None
            elif logic == '/':
                result /= number
            else:
                result %= number
    except (InvalidOperation, ValueError):
        return None

    if result == result.to_integral_value():
        return int(result)
    return float(result)


# =============================================================================
# Option handlers: handler(datatable, table_config, join_fields)
# =============================================================================

def apply_formula(datatable, table_config, join_fields=None) -> None:
    """Compute formula columns; a format_data rule on a formula column formats its result."""
    for formula in table_config.formula:
        rule = table_config.format_rule(formula['name'])

        def compute(row, _formula=formula, _rule=rule):
            value = calculate_formula(_formula, row)
            if _rule is None or value is None or isinstance(value, bool):
                return value
            return format_row({_formula['name']: value}, {_formula['name']: _rule})[_formula['name']]

        datatable.edit_column(formula['name'], compute)


def apply_format_data(datatable, table_config, join_fields=None) -> None:
    formula_names = table_config.formula_names
    for field, rule in table_config.format_data.items():
        name = rule.get('field_name') or field
        if name in formula_names:
            continue

        def formatter(row, _name=name, _rule=rule):
            return format_row({_name: row.get(_name)}, {_name: _rule})[_name]

        datatable.edit_column(name, formatter)


def apply_image_fields(datatable, table_config, join_fields=None) -> None:
    for field in table_config.image_fields:
        datatable.edit_column(field, lambda row, _field=field: render_image(row.get(_field), _field))
    datatable.raw_columns(table_config.image_fields)


def apply_relations(datatable, table_config, join_fields=None) -> None:
    """
    Resolve relation columns from preloaded lookup data.

    ``relations: {field: {'relation_data': {row_id: {'field_value': ...}}}}``.
    Skipped when the query already joins the related tables.
    """
    if join_fields:
        return
    for field, relation in table_config.relations.items():
        lookup = relation.get('relation_data') if isinstance(relation, dict) else None
        if not isinstance(lookup, dict):
            continue

        def resolve(row, _lookup=lookup):
            row_id = row.get('id')
            entry = _lookup.get(row_id)
            if entry is None:
                entry = _lookup.get(str(row_id))
            if isinstance(entry, dict) and entry.get('field_value'):
                return entry['field_value']
            return None

        datatable.edit_column(field, resolve)


def apply_raw_columns(datatable, table_config, join_fields=None) -> None:
    datatable.raw_columns(table_config.raw_columns_forced)


# Applied in this order; formula columns exist before format_data runs
COLUMN_OPTIONS = ('formula', 'format_data', 'image_fields', 'relations', 'raw_columns_forced')

COLUMN_OPTION_HANDLERS: Dict[str, Callable] = {
    'formula': apply_formula,
    'format_data': apply_format_data,
    'image_fields': apply_image_fields,
    'relations': apply_relations,
    'raw_columns_forced': apply_raw_columns,
}


def validate_registry(handlers: Optional[Dict[str, Callable]] = None) -> None:
    """
    Check that every known column option has a callable handler.

    Raises:
        ConfigurationError: If an option is missing or not callable
    """
    handlers = COLUMN_OPTION_HANDLERS if handlers is None else handlers
    for option in COLUMN_OPTIONS:
        if not callable(handlers.get(option)):
            raise ConfigurationError(f"No handler registered for column option '{option}'")


class ColumnFactory:
    """Applies the configured column options of a table to a DataTable."""

    def __init__(self, handlers: Optional[Dict[str, Callable]] = None):
        self.handlers = COLUMN_OPTION_HANDLERS if handlers is None else handlers

    def apply(self, datatable, table_config, join_fields=None) -> None:
        for option, handler in self.handlers.items():
            if getattr(table_config, option, None):
                handler(datatable, table_config, join_fields)
