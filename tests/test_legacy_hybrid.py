"""
Tests for the legacy processor, the hybrid diff and service dispatch.
"""
import json
from unittest.mock import Mock, patch

import pytest

from error_handler import SecurityError, TableNotFoundError
from settings import DatatablesSettings
from tables.hybrid import HybridCompare, json_diff, normalize_payload
from tables.legacy import LegacyDatatables
from tables.pipeline import DatatablesPipeline
from tables.registry import TableRegistry
from tables.service import DatatablesService


def _payload(total=5, filtered=5, rows=2, draw=1):
    return {'draw': draw, 'recordsTotal': total, 'recordsFiltered': filtered, 'data': [{}] * rows}


# =============================================================================
# Legacy processor
# =============================================================================

def test_legacy_renders_page(db, orders_config, make_params):
    legacy = LegacyDatatables(db, DatatablesSettings())
    payload = legacy.process({'difta': {'name': 'orders'}}, orders_config,
                             request=make_params(draw=9, length=2))

    assert payload['draw'] == 9
    assert payload['recordsTotal'] == 5
    assert payload['recordsFiltered'] == 5
    assert len(payload['data']) == 2
    row = payload['data'][0]
    assert row['DT_RowAttr']['class'] == 'row-list-url clickable'
    assert row['DT_RowIndex'] == 1
    assert 'href="/admin/orders/view/' in row['action']


def test_legacy_uses_configured_order(db, orders_config, make_params):
    orders_config['columns']['orders']['orderby'] = {'column': 'total', 'order': 'desc'}
    payload = LegacyDatatables(db).process({}, orders_config, request=make_params(length=-1))

    assert [row['id'] for row in payload['data']] == [3, 1, 5, 2, 4]


def test_legacy_computes_formula_columns(db, orders_config, make_params):
    orders_config['columns']['orders']['orderby'] = {'column': 'id', 'order': 'asc'}
    orders_config['conditions'] = {'orders': {'formula': [
        {'name': 'doubled', 'field_lists': ['total', 'total'], 'logic': '+'},
        {'name': 'is_paid', 'field_lists': ['status', 'image'], 'logic': '&&'},
    ]}}
    orders_config['columns']['orders']['format_data']['doubled'] = {'decimal_endpoint': 1}
    payload = LegacyDatatables(db).process({}, orders_config, request=make_params(length=-1))
    rows = payload['data']

    assert rows[0]['doubled'] == '2,501.0'
    assert rows[0]['total'] == '1,250.50'
    assert [row['is_paid'] for row in rows] == [True, False, True, False, False]
    assert payload['data'][0]['total'] == '15,000.00'


def test_legacy_blacklists_id_when_not_listed(db, customers_config, make_params):
    payload = LegacyDatatables(db).process({}, customers_config, request=make_params())

    for row in payload['data']:
        assert 'id' not in row
        assert 'password' not in row
        # Row links still encode the primary key
        assert 'rlp' in row['DT_RowAttr']


def test_legacy_filters_and_search(db, orders_config, make_params):
    legacy = LegacyDatatables(db)
    filtered = legacy.process({}, orders_config, filters={'status': 'paid'}, request=make_params())
    searched = legacy.process({}, orders_config, request=make_params(search='cancel'))

    assert (filtered['recordsTotal'], filtered['recordsFiltered']) == (3, 3)
    assert (searched['recordsTotal'], searched['recordsFiltered']) == (5, 1)


def test_legacy_join_scenario(db, make_params):
    config = {'columns': {'orders': {
        'lists': ['id', 'total', 'name'],
        'foreign_keys': {'orders.customer_id': 'customers.id'},
    }}}
    payload = LegacyDatatables(db).process({}, config, request=make_params(
        columns=['id', 'name'], order=[(0, 'asc')],
    ))

    assert payload['recordsTotal'] == 5
    assert payload['data'][0]['name'] == 'Ada'
    assert payload['data'][0]['customers_id'] == 1
    assert 'password' not in payload['data'][0]


def test_legacy_unknown_table_raises(db):
    with pytest.raises(TableNotFoundError):
        LegacyDatatables(db).process({}, {}, request={})


def test_legacy_guard_blocks_joined_table(db, make_params):
    config = {'columns': {'orders': {'foreign_keys': {'orders.customer_id': 'customers.id'}}}}
    legacy = LegacyDatatables(db, DatatablesSettings(allowed_tables=['orders']))
    with pytest.raises(SecurityError):
        legacy.process({}, config, request=make_params())


# =============================================================================
# Hybrid diff
# =============================================================================

def test_json_diff_no_diff():
    diff = json_diff(_payload(), _payload())
    assert diff['note'] == 'no_diff'
    assert diff['summary']['data_length'] == {'legacy': 2, 'pipeline': 2}


def test_json_diff_reports_differences():
    diff = json_diff(_payload(total=5, rows=2), _payload(total=4, rows=1))
    assert diff['recordsTotal'] == {'legacy': 5, 'pipeline': 4}
    assert diff['data_length'] == {'legacy': 2, 'pipeline': 1}
    assert 'note' not in diff
    assert 'summary' in diff


def test_json_diff_without_pipeline_output():
    diff = json_diff(_payload(), None)
    assert diff['note'] == 'pipeline_output_unavailable'
    assert diff['summary']['recordsTotal'] == {'legacy': 5, 'pipeline': None}


def test_normalize_payload_shapes():
    assert normalize_payload(json.dumps({'draw': 1})) == {'draw': 1}
    assert normalize_payload('not json') == {}
    assert normalize_payload(None) == {}


def test_hybrid_returns_legacy_result_and_writes_inspector(db, orders_config, make_params, tmp_path):
    settings = DatatablesSettings(mode='hybrid', pipeline_enabled=True, inspector_dir=str(tmp_path))
    compare = HybridCompare(LegacyDatatables(db, settings), DatatablesPipeline(settings, db), settings)

    result = compare.run({}, orders_config, request=make_params(length=3))

    assert len(result['legacy_result']['data']) == 3
    assert result['diff']['note'] == 'no_diff'
    files = list(tmp_path.glob('orders_*.json'))
    assert len(files) == 1
    record = json.loads(files[0].read_text(encoding='utf-8'))
    assert record['table'] == 'orders'
    assert record['diff']['note'] == 'no_diff'


def test_hybrid_preflight_failure_is_not_raised(db, orders_config, make_params, tmp_path):
    settings = DatatablesSettings(inspector_dir=str(tmp_path))
    pipeline = Mock()
    pipeline.run.side_effect = RuntimeError('boom')
    compare = HybridCompare(LegacyDatatables(db, settings), pipeline, settings)

    result = compare.run({}, orders_config, request=make_params())

    assert result['diff']['note'] == 'pipeline_output_unavailable'
    assert result['legacy_result']['recordsTotal'] == 5
    # production environment and legacy mode: no inspector file
    assert list(tmp_path.iterdir()) == []


def test_hybrid_security_error_propagates(db, orders_config, make_params):
    pipeline = Mock()
    pipeline.run.side_effect = SecurityError('denied')
    compare = HybridCompare(LegacyDatatables(db), pipeline)
    with pytest.raises(SecurityError):
        compare.run({}, orders_config, request=make_params())


# =============================================================================
# Service dispatch
# =============================================================================

@pytest.fixture
def registry(orders_config):
    registry = TableRegistry()
    registry.register('orders', orders_config)
    return registry


def test_service_legacy_when_pipeline_disabled(db, registry, make_params):
    service = DatatablesService(db, DatatablesSettings(mode='pipeline'), registry)
    with patch.object(service.pipeline, 'run') as run:
        payload = service.process_registered('orders', make_params())
    run.assert_not_called()
    assert payload['recordsTotal'] == 5


def test_service_pipeline_mode(db, registry, make_params):
    service = DatatablesService(db, DatatablesSettings(mode='pipeline', pipeline_enabled=True), registry)
    payload = service.process_registered('orders', make_params(length=2))
    assert len(payload['data']) == 2
    assert payload['data'][0]['DT_RowIndex'] == 1


def test_service_hybrid_falls_back_to_legacy(db, registry, make_params, tmp_path):
    settings = DatatablesSettings(mode='hybrid', pipeline_enabled=True, inspector_dir=str(tmp_path))
    service = DatatablesService(db, settings, registry)
    with patch.object(service.hybrid, 'run', side_effect=RuntimeError('harness broke')):
        payload = service.process_registered('orders', make_params())
    assert payload['recordsTotal'] == 5


def test_service_unknown_registered_table(db, registry):
    service = DatatablesService(db, DatatablesSettings(), registry)
    with pytest.raises(TableNotFoundError):
        service.process_registered('nope', {})


def test_registry_from_file(tmp_path, orders_config):
    path = tmp_path / 'tables.json'
    path.write_text(json.dumps({
        'orders': orders_config,
        'sales': {'datatables': orders_config, 'method': {'difta': {'name': 'orders'}}},
    }), encoding='utf-8')

    registry = TableRegistry.from_file(str(path))
    assert registry.keys() == ['orders', 'sales']
    assert registry.get('orders').method == {'difta': {'name': 'orders'}}
    assert registry.get('sales').datatables == orders_config
