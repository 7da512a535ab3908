"""
Resolution of a table key to a base query.

Shared by the legacy processor and the pipeline so both read the same
model source, table name and configured ordering.
"""
from typing import Any, Dict, Optional

from logging_helper import LoggingHelper
from tables.table_config import DatatablesConfig


class ModelQueryBridge:

    @staticmethod
    def resolve(config: DatatablesConfig, name: Optional[str], db) -> Dict[str, Any]:
        """
        Resolve ``name`` to {'model_data', 'table_name', 'order_by', 'model_source'}.

        Model sources of type ``model`` (a TableModel or a table name) and
        ``table`` produce a query; ``sql`` sources are not supported and
        resolve to no model. Without a model source, a declared table key is
        queried directly. ``model_data`` is None when nothing resolves.
        """
        model_data = None
        table_name = ''
        source = config.model(name)

        if source is not None:
            if source.type == 'sql':
                LoggingHelper.log_warning("SQL model sources are not supported", {'table': name})
            elif hasattr(source.source, 'new_query'):
                model_data = source.source.new_query()
                table_name = source.source.get_table()
            elif isinstance(source.source, str) and source.source:
                model_data = db.table(source.source)
                table_name = source.source
        elif name and name in config.tables:
            model_data = db.table(name)
            table_name = name

        return {
            'model_data': model_data,
            'table_name': table_name,
            'order_by': dict(config.table(table_name).orderby) if table_name else {},
            'model_source': source,
        }
