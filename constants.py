"""
Common constants used across the datatables service.
"""

# Values that are considered "false" for boolean environment variables
# Include empty string to handle unset or blank environment variables
FALSE_VALUES = {'false', '0', 'no', 'off', ''}
TRUE_VALUES = {'true', '1', 'yes', 'on'}

# Execution modes for the datatables service
MODE_LEGACY = 'legacy'
MODE_PIPELINE = 'pipeline'
MODE_HYBRID = 'hybrid'
EXECUTION_MODES = (MODE_LEGACY, MODE_PIPELINE, MODE_HYBRID)

# Documented stage sequence; only the first/last/enrich stages exist today
DEFAULT_PIPELINE_ORDER = (
    'ResolveModelStage',
    'BuildRelationsStage',
    'BuildFilterStage',
    'BuildOrderStage',
    'ApplyFormulaStage',
    'ApplyFormattingStage',
    'ApplyImageColumnsStage',
    'ApplyActionsStage',
    'FinalizeResponseStage',
)

UNKNOWN_TABLE = 'unknown'

# Columns never exposed in rendered rows
DEFAULT_BLACKLISTS = frozenset({'password', 'action', 'no'})

# Request keys that belong to the datatables protocol, never to field filters
RESERVED_FILTER_KEYS = frozenset({
    'renderDataTables', 'draw', 'columns', 'order', 'start', 'length',
    'search', 'difta', '_token', '_', 'filters',
})

# Pseudo columns the client may send but that do not exist in the database
PSEUDO_COLUMNS = frozenset({'DT_RowIndex', 'action', 'no'})

DEFAULT_START = 0
DEFAULT_LENGTH = 10
MAX_LENGTH = 1000

DEFAULT_ACTIONS = ('view', 'insert', 'edit', 'delete')
DEFAULT_RAW_COLUMNS = ('action', 'flag_status')

ROW_CLICKABLE_CLASS = 'row-list-url clickable'

IMAGE_EXTENSIONS = ('jpg', 'jpeg', 'png', 'gif')

# Offset added to primary keys when encoding row link parameters
ID_ENCODE_OFFSET = 80

# Formula columns
FORMULA_OPERATORS = ('+', '-', '*', '/', '%', '||', '&&')
INDEX_COLUMN_NAMES = ('number_lists', 'DT_RowIndex')
