"""
Tests for QueryFactory: joins, conditions, filters, pagination, totals,
search and ordering.
"""
import pytest

from error_handler import QueryBuildError
from tables.query_factory import QueryFactory, extract_filters
from tables.request_input import ColumnRequest, OrderRequest
from tables.table_config import TableConfig


@pytest.fixture
def factory():
    return QueryFactory()


# =============================================================================
# Joins
# =============================================================================

def test_empty_foreign_keys_return_base_query(factory, db):
    base = db.table('orders')
    result = factory.apply_joins(base, {}, 'orders')

    assert result['model'] is base
    assert result['join_fields'] == ['orders.*']


def test_orders_customers_join(factory, db):
    base = db.table('orders')
    result = factory.apply_joins(base, {'orders.customer_id': 'customers.id'}, 'orders')
    sql, _ = result['model'].build_query()

    assert 'LEFT JOIN "customers" ON "orders"."customer_id" = "customers"."id"' in sql
    assert result['join_fields'][0] == 'orders.*'
    assert 'customers.id as customers_id' in result['join_fields']
    assert 'customers.name' in result['join_fields']
    assert 'customers.email' in result['join_fields']
    # The base query is untouched
    assert base.build_query()[0] == 'SELECT "orders".* FROM "orders"'


def test_join_projection_returns_joined_columns(factory, db):
    model = factory.apply_joins(db.table('orders'), {'customers.id': 'orders.customer_id'}, 'orders')['model']
    row = model.clone().where('orders.id', 3).first()

    assert row['id'] == 3
    assert row['customers_id'] == 2
    assert row['name'] == 'Grace'


def test_join_requires_qualified_columns(factory, db):
    with pytest.raises(QueryBuildError):
        factory.apply_joins(db.table('orders'), {'customer_id': 'customers.id'}, 'orders')


def test_self_join_is_rejected(factory, db):
    with pytest.raises(QueryBuildError):
        factory.apply_joins(db.table('orders'), {'orders.customer_id': 'orders.id'}, 'orders')


# =============================================================================
# Where conditions and filters
# =============================================================================

def test_empty_conditions_are_identity(factory, db):
    query = db.table('orders')
    assert factory.apply_where_conditions(query, []) is query
    assert factory.apply_where_conditions(query, None) is query


def test_where_conditions_are_anded(factory, db):
    query = db.table('orders')
    result = factory.apply_where_conditions(query, [
        {'field_name': 'status', 'operator': '=', 'value': 'paid'},
        ('total', '>', 1000),
    ])
    assert result is not query
    assert sorted(row['id'] for row in result.get()) == [1, 3]


def test_list_condition_becomes_in(factory, db):
    result = factory.apply_where_conditions(db.table('orders'), [
        {'field_name': 'status', 'value': ['open', 'cancelled']},
    ])
    assert sorted(row['id'] for row in result.get()) == [2, 4]


def test_extract_filters_drops_reserved_keys():
    filters = extract_filters({
        'draw': '3',
        'columns[0][data]': 'id',
        'search[value]': 'x',
        '_token': 'abc',
        'renderDataTables': 'true',
        'status': ['open', 'paid'],
        'name': 'Ada%20Lovelace',
        'email': '',
    })
    assert filters == {'status': 'paid', 'name': 'Ada Lovelace'}


def test_no_filters_use_first_field_predicate(factory, db):
    result = factory.apply_filters(db.table('orders'), {}, 'orders', 'id')
    sql, _ = result['model'].build_query()

    assert '"orders"."id" IS NOT NULL' in sql
    assert result['limit_total'] == 5
    assert result['filters_applied'] is False


def test_filters_are_applied_and_counted(factory, db):
    result = factory.apply_filters(db.table('orders'), {'status': 'paid'}, 'orders', 'id')
    assert result['limit_total'] == 3
    assert result['filters_applied'] is True


def test_unknown_filter_columns_are_ignored(factory, db):
    result = factory.apply_filters(db.table('orders'), {'nope': '1'}, 'orders', 'id')
    assert result['limit_total'] == 5
    assert result['filters_applied'] is False


def test_filter_on_joined_column(factory, db):
    joined = factory.apply_joins(db.table('orders'), {'orders.customer_id': 'customers.id'}, 'orders')['model']
    result = factory.apply_filters(joined, {'customers.name': 'Ada'}, 'orders', 'id')
    assert result['limit_total'] == 2


# =============================================================================
# Pagination and totals
# =============================================================================

def test_null_pagination_is_unpaginated(factory, db):
    query = db.table('orders')
    result = factory.apply_pagination(query, None, None)

    assert result is query
    assert not result.is_paginated
    assert len(result.get()) == 5


def test_pagination_applies_offset_and_limit(factory, db):
    page = factory.apply_pagination(db.table('orders').order_by('id'), 2, 2)
    assert [row['id'] for row in page.get()] == [3, 4]


def test_totals_of_empty_results_are_zero(factory, db):
    empty_a = db.table('orders').where('status', 'missing')
    empty_b = db.table('customers').where('name', 'nobody')
    assert factory.calculate_totals(empty_a, empty_b) == 0


def test_totals_ignore_pagination(factory, db):
    page = db.table('orders').take(2)
    assert factory.calculate_totals(page, db.table('orders')) == 5


def test_build_query_orchestrates(factory, db):
    config = TableConfig('orders', lists=['id', 'status'],
                         where=[{'field_name': 'status', 'operator': '!=', 'value': 'cancelled'}])
    result = factory.build_query(db.table('orders'), config, 'orders',
                                 filters={'status': 'paid'}, start=0, length=2)

    assert result['join_fields'] is None
    assert result['limit']['total'] == 3
    assert result['limit']['total_unfiltered'] == 4
    assert result['limit']['filters_applied'] is True
    assert len(result['model'].get()) == 2


# =============================================================================
# Search and ordering
# =============================================================================

def test_global_search(factory, db):
    result = factory.apply_search(db.table('customers'), 'example', ['name', 'email'])
    assert result.count() == 2
    assert factory.apply_search(db.table('customers'), '  ', ['name']).count() == 3


def test_column_search_is_whitelisted(factory, db):
    columns = [
        ColumnRequest('status', search_value='pai'),
        ColumnRequest('image', search_value='png'),
    ]
    result = factory.apply_column_search(db.table('orders'), columns, ['status'])
    assert result.count() == 3


def test_ordering_follows_request(factory, db):
    columns = [ColumnRequest('id'), ColumnRequest('total')]
    query, applied = factory.apply_ordering(
        db.table('orders'), [OrderRequest(1, 'desc')], columns, ['id', 'total'], ['id', 'total']
    )
    assert applied == [('total', 'desc')]
    assert [row['id'] for row in query.get()] == [3, 1, 5, 2, 4]


def test_ordering_skips_pseudo_columns_and_falls_back(factory, db):
    columns = [ColumnRequest('DT_RowIndex'), ColumnRequest('status')]
    _, applied = factory.apply_ordering(
        db.table('orders'), [OrderRequest(0, 'desc')], columns, ['status'], ['id', 'status']
    )
    assert applied == [('status', 'asc')]


def test_ordering_uses_configured_default(factory, db):
    query, applied = factory.apply_ordering(
        db.table('orders'), [], [], ['id', 'total'], ['id', 'total'], 'total', 'desc'
    )
    assert applied == [('total', 'desc')]
    assert query.first()['id'] == 3
