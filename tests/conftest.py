"""
Shared fixtures: an in-memory shop database and datatables configurations.
"""
import pytest

from database import Database
from logging_helper import LoggingHelper

SCHEMA = """
CREATE TABLE customers (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    password TEXT
);
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    customer_id INTEGER,
    total REAL,
    status TEXT,
    image TEXT
);
INSERT INTO customers (id, name, email, password) VALUES
    (1, 'Ada', 'ada@example.com', 'secret-1'),
    (2, 'Grace', 'grace@example.com', 'secret-2'),
    (3, 'Linus', NULL, 'secret-3');
INSERT INTO orders (id, customer_id, total, status, image) VALUES
    (1, 1, 1250.5, 'paid', 'uploads/receipts/1.png'),
    (2, 1, 99.0, 'open', NULL),
    (3, 2, 15000, 'paid', 'uploads/receipts/3.pdf'),
    (4, 3, 42.25, 'cancelled', NULL),
    (5, 2, 310.0, 'paid', NULL);
"""


@pytest.fixture
def db():
    """Fresh in-memory database with customers and orders."""
    database = Database(':memory:')
    database.executescript(SCHEMA)
    yield database
    database.close()


@pytest.fixture(autouse=True)
def reset_log_environment():
    """Services pin the logging environment; unpin it after every test."""
    yield
    LoggingHelper.configure_environment(None)


@pytest.fixture
def debug_env(monkeypatch):
    """Enable environment-gated debug/warning logging."""
    monkeypatch.setenv('CANVASTACK_ENV', 'testing')


@pytest.fixture
def orders_config():
    """Datatables configuration for the orders table."""
    return {
        'columns': {
            'orders': {
                'lists': ['id', 'customer_id', 'total', 'status'],
                'clickable': True,
                'actions': True,
                'format_data': {'total': {'decimal_endpoint': 2, 'separator': '.'}},
            },
        },
        'records': {'index_lists': True},
        'route_path': '/admin/orders',
    }


@pytest.fixture
def customers_config():
    """Datatables configuration for customers without id in the listed columns."""
    return {
        'columns': {
            'customers': {
                'lists': ['name', 'email'],
                'clickable': ['name'],
            },
        },
    }


def dt_params(draw=1, start=0, length=10, search='', columns=(), order=()):
    """Flat bracket-notation parameters as a datatables client sends them."""
    params = {
        'draw': str(draw),
        'start': str(start),
        'length': str(length),
        'search[value]': search,
    }
    for index, name in enumerate(columns):
        params[f'columns[{index}][data]'] = name
        params[f'columns[{index}][searchable]'] = 'true'
        params[f'columns[{index}][orderable]'] = 'true'
        params[f'columns[{index}][search][value]'] = ''
    for index, (column, direction) in enumerate(order):
        params[f'order[{index}][column]'] = str(column)
        params[f'order[{index}][dir]'] = direction
    return params


@pytest.fixture
def make_params():
    return dt_params
