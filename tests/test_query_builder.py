"""
Tests for the fluent SQLite query builder.
"""
import pytest

from database.query_builder import TableQueryBuilder, column_sql
from error_handler import QueryBuildError, SecurityError


def test_column_sql_quotes_identifiers():
    assert column_sql('status') == '"status"'
    assert column_sql('orders.status') == '"orders"."status"'
    assert column_sql('orders.*') == '"orders".*'
    assert column_sql('*') == '*'


def test_column_sql_rejects_injection():
    with pytest.raises(SecurityError):
        column_sql('status; DROP TABLE orders')
    with pytest.raises(SecurityError):
        column_sql('a.b.c')


def test_default_projection_is_table_wildcard(db):
    sql, params = db.table('orders').build_query()
    assert sql == 'SELECT "orders".* FROM "orders"'
    assert params == []


def test_where_and_pagination_are_parameterized(db):
    query = db.table('orders').where('status', 'paid').order_by('total', 'desc').take(2).skip(1)
    sql, params = query.build_query()

    assert 'WHERE "status" = ?' in sql
    assert 'ORDER BY "total" DESC' in sql
    assert sql.endswith('LIMIT ? OFFSET ?')
    assert params == ['paid', 2, 1]


def test_offset_without_limit_uses_unbounded_limit(db):
    sql, params = db.table('orders').skip(3).build_query()
    assert sql.endswith('LIMIT ? OFFSET ?')
    assert params == [-1, 3]
    assert [row['id'] for row in db.table('orders').order_by('id').skip(3).get()] == [4, 5]


def test_clone_is_independent(db):
    base = db.table('orders')
    filtered = base.clone().where('status', 'paid')

    assert base.count() == 5
    assert filtered.count() == 3


def test_where_in_empty_list_matches_nothing(db):
    assert db.table('orders').where_in('id', []).count() == 0
    assert db.table('orders').where_in('id', [1, 3]).count() == 2


def test_where_any_like_ors_columns(db):
    rows = db.table('customers').where_any_like(['name', 'email'], 'gra').get()
    assert [row['name'] for row in rows] == ['Grace']


def test_invalid_operator_raises_security_error(db):
    with pytest.raises(SecurityError):
        db.table('orders').where('status', 'paid', 'OR 1=1 --')


def test_invalid_direction_raises_value_error(db):
    with pytest.raises(ValueError):
        db.table('orders').order_by('id', 'sideways')


def test_invalid_table_name_raises_security_error(db):
    with pytest.raises(SecurityError):
        TableQueryBuilder(db.connection, 'orders; --')


def test_unknown_column_raises_query_build_error(db):
    with pytest.raises(QueryBuildError):
        db.table('orders').where('does_not_exist', 1).get()


def test_count_ignores_pagination(db):
    assert db.table('orders').take(2).skip(1).count() == 5


def test_select_with_alias(db):
    query = (db.table('orders')
             .left_join('customers', 'orders.customer_id', 'customers.id')
             .select('orders.id', 'customers.id as customers_id', 'customers.name')
             .where('orders.id', 3))
    assert query.first() == {'id': 3, 'customers_id': 2, 'name': 'Grace'}


def test_table_columns_from_schema(db):
    assert db.table('customers').table_columns() == ['id', 'name', 'email', 'password']
    assert db.table_columns('missing') == []
