"""
Tests for the legacy input boundary: configuration parsing, contexts,
the context adapter and datatables request parsing.
"""
import unittest
from types import SimpleNamespace

import pytest

from constants import DEFAULT_BLACKLISTS
from tables.context import DatatablesContext, TableContext
from tables.context_adapter import ContextAdapter
from tables.request_input import DatatablesRequest, unflatten_params
from tables.table_config import DatatablesConfig, legacy_get, resolve_actions


class TestTableContextFromLegacy(unittest.TestCase):
    """TableContext.from_legacy degrades to defaults on any input."""

    def test_defaults_for_empty_input(self):
        context = TableContext.from_legacy({}, {})
        self.assertEqual(context.table_name, 'unknown')
        self.assertFalse(context.index_lists)
        self.assertEqual(context.blacklists, DEFAULT_BLACKLISTS)

    def test_malformed_input_does_not_raise(self):
        for method, data in ((None, None), ('page', 42), ([], ['x']), ({'difta': 'x'}, {'columns': 'oops'})):
            context = TableContext.from_legacy(method, data)
            self.assertEqual(context.table_name, 'unknown')
            self.assertFalse(context.index_lists)

    def test_reads_name_and_index_lists_from_objects(self):
        method = SimpleNamespace(difta=SimpleNamespace(name='orders'))
        data = SimpleNamespace(
            columns={'orders': {'lists': ['id']}},
            records=SimpleNamespace(index_lists=True),
            route_path='/admin/orders',
        )
        context = TableContext.from_legacy(method, data)
        self.assertEqual(context.table_name, 'orders')
        self.assertTrue(context.index_lists)
        self.assertEqual(context.route_path, '/admin/orders')

    def test_is_read_only(self):
        context = TableContext.from_legacy({}, {})
        with self.assertRaises(AttributeError):
            context.table_name = 'orders'


def test_legacy_get_walks_mixed_shapes():
    source = {'a': SimpleNamespace(b=[{'c': 1}])}
    assert legacy_get(source, 'a', 'b', 0, 'c') == 1
    assert legacy_get(source, 'a', 'missing', default='x') == 'x'
    assert legacy_get(None, 'a', default=0) == 0


def test_resolve_actions():
    assert resolve_actions(True) == ['view', 'insert', 'edit', 'delete']
    assert resolve_actions(['export'], ['delete']) == ['view', 'insert', 'edit', 'export']
    assert resolve_actions(False) == []
    assert resolve_actions(None) == []


def test_config_resolves_model_source():
    config = DatatablesConfig.from_legacy({
        'columns': {'orders': {'lists': ['id']}},
        'model': {'sales': {'type': 'table', 'source': 'orders'}},
    })
    assert config.resolve_table_name('sales') == 'orders'
    assert config.resolve_table_name('orders') == 'orders'
    assert config.resolve_table_name('nope') == 'unknown'
    assert config.table('nope').lists == []


def test_first_field():
    config = DatatablesConfig.from_legacy({'columns': {
        'a': {'lists': ['name', 'id']},
        'b': {'lists': ['name', 'email']},
        'c': {},
    }})
    assert config.table('a').first_field == 'id'
    assert config.table('b').first_field == 'name'
    assert config.table('c').first_field == 'id'


# =============================================================================
# Context adapter
# =============================================================================

def test_adapter_table_name_fallbacks():
    adapter = ContextAdapter()
    config = {'columns': {'orders': {}, 'customers': {}}}

    assert adapter.from_legacy_inputs({'difta': {'name': 'customers'}}, config, request={}).table_name == 'customers'
    assert adapter.from_legacy_inputs({}, config, request={}).table_name == 'orders'
    assert adapter.from_legacy_inputs({}, {}, request={}).table_name == 'unknown'


def test_adapter_reads_server_params_and_connection(make_params):
    context = ContextAdapter().from_legacy_inputs(
        {'difta': {'name': 'orders'}},
        {'columns': {'orders': {}}, 'variables': {'connection': 'reporting'}},
        filters={'status': 'paid'},
        request=make_params(draw=4, start=20, length=5),
    )
    assert (context.start, context.length, context.draw) == (20, 5, 4)
    assert context.connection == 'reporting'
    assert context.filters == {'status': 'paid'}
    assert context.current_url == '/'


def test_adapter_defaults_outside_request():
    context = ContextAdapter().from_legacy_inputs(None, None)
    assert (context.start, context.length, context.draw) == (0, 10, 0)
    assert context.table_name == 'unknown'


def test_context_copy_isolates_output_slots():
    context = DatatablesContext()
    context.response = {'data': [{'id': 1}]}
    context.filters = {'status': 'paid'}

    twin = context.copy()
    twin.response['data'].append({'id': 2})
    twin.filters['status'] = 'open'
    twin.table_name = 'orders'

    assert context.response == {'data': [{'id': 1}]}
    assert context.filters == {'status': 'paid'}
    assert context.table_name is None
    assert twin.datatables is context.datatables


# =============================================================================
# Request parsing
# =============================================================================

def test_unflatten_bracket_keys():
    nested = unflatten_params({'columns[0][search][value]': ['a', 'b'], 'draw': ['2']})
    assert nested == {'columns': {'0': {'search': {'value': 'b'}}}, 'draw': '2'}


def test_request_from_flat_params(make_params):
    parsed = DatatablesRequest.from_params(make_params(
        draw=3, start=10, length=25, search=' ada ',
        columns=['id', 'name'], order=[(1, 'desc')],
    ))
    assert parsed.draw == 3
    assert parsed.start == 10
    assert parsed.length == 25
    assert parsed.search_value == 'ada'
    assert [col.data for col in parsed.columns] == ['id', 'name']
    assert parsed.order[0].column == 1
    assert parsed.order[0].direction == 'desc'
    assert parsed.column_data(1) == 'name'
    assert parsed.column_data(5) is None


def test_request_from_json_shape():
    parsed = DatatablesRequest.from_params({
        'draw': 1,
        'columns': [{'data': 'status', 'searchable': False, 'search': {'value': 'x'}}],
        'order': [{'column': 0, 'dir': 'DESC'}],
    })
    assert parsed.columns[0].data == 'status'
    assert parsed.columns[0].searchable is False
    assert parsed.columns[0].search_value == 'x'
    assert parsed.order[0].direction == 'desc'


@pytest.mark.parametrize('raw,expected', [
    ('-1', None),
    ('abc', 10),
    ('5000', 1000),
    ('0', 0),
])
def test_request_length(raw, expected):
    assert DatatablesRequest.from_params({'length': raw}).length == expected


def test_filter_params_exclude_protocol_keys(make_params):
    params = make_params(columns=['id'])
    params['status'] = 'paid'
    assert DatatablesRequest.from_params(params).filter_params() == {'status': 'paid'}
