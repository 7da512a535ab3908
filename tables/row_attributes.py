"""
Clickable-row attributes.
"""
from typing import Any, Dict, Optional

from constants import ROW_CLICKABLE_CLASS
from helpers.id_helpers import encode_id
from logging_helper import LoggingHelper
from tables.table_config import is_clickable


def row_link_parameter(row: Dict[str, Any], salt: str = 'canvastack') -> Optional[str]:
    """Encoded primary key for a row, or None when the row has no usable id."""
    return encode_id(row.get('id'), salt=salt)


def row_attributes_for(row: Dict[str, Any], clickable: Any, salt: str = 'canvastack') -> Dict[str, Any]:
    """Attributes for one row: class and rlp when clickable, else nothing."""
    if not is_clickable(clickable):
        return {}
    attributes = {'class': ROW_CLICKABLE_CLASS}
    rlp = row_link_parameter(row, salt)
    if rlp is not None:
        attributes['rlp'] = rlp
    return attributes


class RowAttributesBuilder:
    """Registers the clickable-row callback on a DataTable."""

    @staticmethod
    def apply(datatable, table_context, salt: str = 'canvastack') -> bool:
        """
        Register row attributes once per render.

        The rlp callback is evaluated per row while the table is serialized.

        Returns:
            True when the table is clickable and attributes were registered
        """
        clickable = table_context.data.table(table_context.table_name).clickable
        if not is_clickable(clickable):
            return False

        datatable.set_row_attr({
            'class': ROW_CLICKABLE_CLASS,
            'rlp': lambda row: row_link_parameter(row, salt),
        })
        LoggingHelper.log_debug("Row attributes registered", {'table': table_context.table_name})
        return True
