"""
Action button rendering for the ``action`` column.
"""
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from markupsafe import escape

from logging_helper import LoggingHelper
from tables.table_config import DatatablesConfig, resolve_actions


class ActionButtonsRenderer:
    """Renders view/insert/edit/delete (plus custom) links for a row."""

    @staticmethod
    def actions_for(config: DatatablesConfig, table: Optional[str]) -> List[str]:
        return resolve_actions(config.table(table).actions, config.removed_buttons(table))

    @classmethod
    def render(cls, row: Dict[str, Any], config: DatatablesConfig, table: Optional[str],
               current_url: str = '/', actions: Optional[List[str]] = None) -> str:
        """
        Render the buttons for one row.

        Links are ``<current_url>/<action>/<id>`` where the id comes from the
        configured target field (default ``id``). Rows without an id, and
        tables without actions, render an empty string.
        """
        if actions is None:
            actions = cls.actions_for(config, table)
        target = config.use_field_target_url or 'id'
        row_id = row.get(target, row.get('id'))
        if row_id is None or not actions:
            return ''

        base = (current_url or '/').rstrip('/')
        buttons = []
        for action in actions:
            href = f"{base}/{quote(str(action), safe='')}/{quote(str(row_id), safe='')}"
            buttons.append(
                f'<a class="btn btn-xs btn-action btn-{escape(action)}" '
                f'href="{escape(href)}">{escape(action.capitalize())}</a>'
            )
        return ' '.join(buttons)

    @classmethod
    def apply(cls, datatable, table_context, current_url: str = '/') -> List[str]:
        """
        Register the action column on a DataTable when the table has actions.

        Returns:
            The resolved action list (empty when nothing was registered)
        """
        config = table_context.data
        actions = cls.actions_for(config, table_context.table_name)
        if not actions:
            return []

        datatable.add_column(
            'action',
            lambda row: cls.render(row, config, table_context.table_name, current_url, actions)
        )
        datatable.raw_columns(['action'])
        LoggingHelper.log_debug("Action column registered", {
            'table': table_context.table_name, 'actions': actions,
        })
        return actions
