"""
Registry of tables exposed over HTTP.

Each key maps to a datatables configuration (the same dict shape the
processors accept). The page descriptor selects the table through
``difta.name``, which defaults to the registry key.
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from error_handler import ConfigurationError, TableNotFoundError, log_and_reraise
from logging_helper import logger


class RegisteredTable:
    def __init__(self, key: str, datatables: Mapping[str, Any], method: Optional[Mapping[str, Any]] = None):
        self.key = key
        self.datatables = dict(datatables)
        self.method = dict(method) if method else {'difta': {'name': key}}

    def __repr__(self) -> str:
        return f"<RegisteredTable {self.key}>"


class TableRegistry:
    """
    Lookup of registered tables by URL key.

    Usage:
        registry = TableRegistry()
        registry.register('orders', {'columns': {'orders': {'lists': ['id', 'total']}}})
        entry = registry.get('orders')
    """

    def __init__(self):
        self._tables: Dict[str, RegisteredTable] = {}

    def register(self, key: str, datatables: Mapping[str, Any],
                 method: Optional[Mapping[str, Any]] = None) -> RegisteredTable:
        if not isinstance(datatables, Mapping):
            raise ConfigurationError(f"Table '{key}' must be configured with a mapping")
        entry = RegisteredTable(key, datatables, method)
        self._tables[key] = entry
        return entry

    def get(self, key: str) -> RegisteredTable:
        """
        Raises:
            TableNotFoundError: If no table is registered under key
        """
        entry = self._tables.get(key)
        if entry is None:
            raise TableNotFoundError(f"Table '{key}' is not registered")
        return entry

    def keys(self) -> List[str]:
        return sorted(self._tables)

    def __contains__(self, key: str) -> bool:
        return key in self._tables

    def __len__(self) -> int:
        return len(self._tables)

    @classmethod
    def from_file(cls, path: Optional[str] = None) -> 'TableRegistry':
        """
        Load registrations from a JSON file.

        The file maps keys to ``{"datatables": {...}, "method": {...}}`` or
        directly to a datatables configuration. The path defaults to
        CANVASTACK_DT_TABLES_FILE; without a path the registry is empty.

        Raises:
            ConfigurationError: If the file cannot be read or is not a JSON object
        """
        registry = cls()
        path = path or os.getenv('CANVASTACK_DT_TABLES_FILE')
        if not path:
            return registry

        try:
            content = json.loads(Path(path).read_text(encoding='utf-8'))
        except (OSError, ValueError) as exc:
            log_and_reraise(exc, f"Could not load table registry from {path}", as_type=ConfigurationError)

        if not isinstance(content, dict):
            raise ConfigurationError(f"Table registry {path} must contain a JSON object")

        for key, definition in content.items():
            if isinstance(definition, dict) and 'datatables' in definition:
                registry.register(key, definition['datatables'], definition.get('method'))
            else:
                registry.register(key, definition)
        logger.info(f"Loaded {len(registry)} datatables from {path}")
        return registry
