"""
Hybrid comparison of legacy and pipeline output.

The legacy processor stays the source of truth. The pipeline runs as a
preflight over the same input and the two payloads are diffed on their
counts and page size. A compact summary is written to the inspector
directory so that drift can be reviewed offline.
"""
import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from flask import has_request_context, request as flask_request

from error_handler import SecurityError, log_and_suppress
from logging_helper import LoggingHelper
from settings import DatatablesSettings
from tables.context_adapter import ContextAdapter
from tables.legacy import LegacyDatatables
from tables.pipeline import DatatablesPipeline
from tables.request_input import DatatablesRequest

_UNSAFE_FILENAME = re.compile(r'[:/\\]')


def normalize_payload(payload: Any) -> Dict[str, Any]:
    """Coerce a payload (dict, JSON string, Flask response or object) to a dict."""
    if isinstance(payload, Mapping):
        return dict(payload)
    if hasattr(payload, 'get_json'):
        decoded = payload.get_json(silent=True)
        return decoded if isinstance(decoded, dict) else {}
    if isinstance(payload, (str, bytes)):
        try:
            decoded = json.loads(payload)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    if payload is not None and hasattr(payload, '__dict__'):
        return dict(vars(payload))
    return {}


def _data_length(payload: Mapping[str, Any]) -> Optional[int]:
    data = payload.get('data')
    return len(data) if isinstance(data, list) else None


def json_diff(legacy: Any, pipeline: Any) -> Dict[str, Any]:
    """
    Shallow diff of two datatables payloads.

    ``draw``, ``recordsTotal`` and ``recordsFiltered`` are compared by value,
    ``data`` by length only. A ``summary`` of both sides is always attached;
    ``note`` is ``no_diff`` when nothing differs and
    ``pipeline_output_unavailable`` when the pipeline produced nothing.

    Example:
        >>> json_diff({'draw': 1, 'recordsTotal': 2, 'recordsFiltered': 2, 'data': [{}, {}]},
        ...           {'draw': 1, 'recordsTotal': 2, 'recordsFiltered': 2, 'data': [{}]})['data_length']
        {'legacy': 2, 'pipeline': 1}
    """
    legacy_data = normalize_payload(legacy)
    pipeline_data = normalize_payload(pipeline) if pipeline is not None else {}

    summary = {
        'recordsTotal': {
            'legacy': legacy_data.get('recordsTotal'),
            'pipeline': pipeline_data.get('recordsTotal'),
        },
        'recordsFiltered': {
            'legacy': legacy_data.get('recordsFiltered'),
            'pipeline': pipeline_data.get('recordsFiltered'),
        },
        'data_length': {
            'legacy': _data_length(legacy_data),
            'pipeline': _data_length(pipeline_data),
        },
    }

    if pipeline is None:
        return {'note': 'pipeline_output_unavailable', 'summary': summary}

    diff: Dict[str, Any] = {}
    for key in ('draw', 'recordsTotal', 'recordsFiltered'):
        if legacy_data.get(key) != pipeline_data.get(key):
            diff[key] = {'legacy': legacy_data.get(key), 'pipeline': pipeline_data.get(key)}
    if summary['data_length']['legacy'] != summary['data_length']['pipeline']:
        diff['data_length'] = summary['data_length']

    if not diff:
        diff['note'] = 'no_diff'
    diff['summary'] = summary
    return diff


class HybridCompare:
    """
    Runs legacy and pipeline side by side and reports the difference.

    Args:
        legacy: Legacy processor producing the returned result
        pipeline: Pipeline run as preflight
        settings: Injected configuration (inspector directory and switch)
    """

    def __init__(self, legacy: LegacyDatatables, pipeline: DatatablesPipeline,
                 settings: Optional[DatatablesSettings] = None):
        self.legacy = legacy
        self.pipeline = pipeline
        self.settings = settings or DatatablesSettings()
        self.adapter = ContextAdapter()

    def run(self, method: Any, data: Any, filters: Optional[Mapping[str, Any]] = None,
            filter_page: Optional[Mapping[str, Any]] = None,
            request: Union[DatatablesRequest, Mapping[str, Any], None] = None,
            current_url: Optional[str] = None) -> Dict[str, Any]:
        """
        Returns:
            {'legacy_result': legacy payload, 'diff': json_diff summary}

        Raises:
            SecurityError: Security violations are never downgraded to a diff
        """
        pipeline_output = None
        table_name = None
        try:
            context = self.adapter.from_legacy_inputs(
                method, data, filters, filter_page, request, current_url
            )
            table_name = context.table_name
            context = self.pipeline.run(context)
            table_name = context.table_name or table_name
            pipeline_output = context.response if context.response is not None else context.payload
        except SecurityError:
            raise
        except Exception as exc:
            log_and_suppress(exc, "Hybrid preflight failed", level="warning")

        legacy_result = self.legacy.process(method, data, filters, filter_page, request, current_url)
        diff = json_diff(legacy_result, pipeline_output)
        LoggingHelper.log_debug("Hybrid diff", {'table': table_name, 'diff': diff})

        if self.settings.inspector_enabled:
            self._write_inspector(table_name, diff)

        return {'legacy_result': legacy_result, 'diff': diff}

    def _write_inspector(self, table_name: Optional[str], diff: Dict[str, Any]) -> Optional[Path]:
        route_name, route_path = None, None
        if has_request_context():
            route_name = flask_request.endpoint
            route_path = flask_request.path

        now = datetime.now(timezone.utc)
        filename = table_name or 'unknown'
        route_part = route_name or (route_path or '').strip('/')
        if route_part:
            filename += '_' + _UNSAFE_FILENAME.sub('-', route_part)

        record = {
            'timestamp': now.isoformat(),
            'route': {'name': route_name, 'path': route_path},
            'table': table_name,
            'diff': diff,
        }
        try:
            directory = Path(self.settings.inspector_dir)
            directory.mkdir(parents=True, exist_ok=True)
            target = directory / f"{filename}_{now.strftime('%Y%m%d_%H%M%S')}.json"
            target.write_text(json.dumps(record, indent=2, default=str), encoding='utf-8')
            return target
        except OSError as exc:
            return log_and_suppress(exc, "Could not write inspector file", level="warning")
