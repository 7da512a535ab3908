"""
Tests for settings loading, the error hierarchy and environment-gated logging.
"""
import logging

import pytest
from flask import Flask, g

from error_handler import (
    CanvastackTablesError, ConfigurationError, QueryBuildError, SecurityError,
    TableNotFoundError, log_and_reraise, log_and_suppress,
)
from logging_helper import LoggingHelper
from settings import DatatablesSettings
from tables.registry import TableRegistry
from tables.security import TableAccessGuard
from tables.service import DatatablesService


@pytest.fixture
def channel(caplog):
    """Attach caplog to a named logger that does not propagate."""
    attached = []

    def attach(name):
        target = logging.getLogger(name)
        target.addHandler(caplog.handler)
        attached.append(target)
        return caplog

    yield attach
    for target in attached:
        target.removeHandler(caplog.handler)


# =============================================================================
# Settings
# =============================================================================

def test_settings_defaults(monkeypatch):
    for name in ('CANVASTACK_DT_PIPELINE', 'CANVASTACK_DT_MODE', 'CANVASTACK_ENV',
                 'CANVASTACK_DT_ALLOWED_TABLES', 'CANVASTACK_ID_SALT'):
        monkeypatch.delenv(name, raising=False)

    settings = DatatablesSettings.from_env()
    assert settings.pipeline_enabled is False
    assert settings.mode == 'legacy'
    assert settings.environment == 'production'
    assert settings.allowed_tables == frozenset()
    assert settings.id_salt == 'canvastack'
    assert settings.inspector_enabled is False


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv('CANVASTACK_DT_PIPELINE', 'yes')
    monkeypatch.setenv('CANVASTACK_DT_MODE', 'Hybrid')
    monkeypatch.setenv('CANVASTACK_ENV', 'local')
    monkeypatch.setenv('CANVASTACK_DT_ALLOWED_TABLES', 'orders, customers,')

    settings = DatatablesSettings.from_env()
    assert settings.pipeline_enabled is True
    assert settings.mode == 'hybrid'
    assert settings.is_debug_environment is True
    assert settings.allowed_tables == frozenset({'orders', 'customers'})
    assert settings.inspector_enabled is True


def test_invalid_env_values_fall_back(monkeypatch):
    monkeypatch.setenv('CANVASTACK_DT_PIPELINE', 'maybe')
    monkeypatch.setenv('CANVASTACK_DT_MODE', 'turbo')

    settings = DatatablesSettings.from_env()
    assert settings.pipeline_enabled is False
    assert settings.mode == 'legacy'


def test_unknown_mode_in_constructor_raises():
    with pytest.raises(ConfigurationError):
        DatatablesSettings(mode='turbo')


def test_settings_to_dict():
    data = DatatablesSettings(allowed_tables=['b', 'a']).to_dict()
    assert data['allowed_tables'] == ['a', 'b']
    assert data['pipeline_order'][0] == 'ResolveModelStage'
    assert 'id_salt' not in data


# =============================================================================
# Errors
# =============================================================================

def test_error_hierarchy():
    for error_type in (QueryBuildError, ConfigurationError, SecurityError, TableNotFoundError):
        assert issubclass(error_type, CanvastackTablesError)


def test_security_error_is_logged_to_security_channel(channel):
    caplog = channel('canvastack_tables.security')
    error = SecurityError('Access to table denied', {'table': 'secrets'})

    assert error.status_code == 403
    assert error.context['table'] == 'secrets'
    assert error.context['ip'] == 'unknown'
    assert 'timestamp' in error.context
    assert any('SECURITY_EXCEPTION: Access to table denied' in record.getMessage()
               for record in caplog.records)


def test_security_error_captures_request_metadata():
    app = Flask(__name__)
    with app.test_request_context('/', headers={'User-Agent': 'pytest', 'X-Forwarded-For': '10.0.0.9, 10.0.0.1'}):
        g.user_id = 17
        error = SecurityError('denied')

    assert error.context['ip'] == '10.0.0.9'
    assert error.context['user_agent'] == 'pytest'
    assert error.context['user_id'] == 17


def test_guard_rejects_unsafe_identifiers():
    guard = TableAccessGuard()
    assert guard.check_table('orders') == 'orders'
    with pytest.raises(SecurityError):
        guard.check_table('orders;drop')


def test_log_and_suppress_returns_value():
    assert log_and_suppress(ValueError('x'), "Ignored", level='warning', return_value=[]) == []


def test_log_and_reraise_wraps_type():
    with pytest.raises(QueryBuildError) as info:
        log_and_reraise(ValueError('bad'), "Query failed", as_type=QueryBuildError)
    assert isinstance(info.value.__cause__, ValueError)


# =============================================================================
# Logging gates
# =============================================================================

def test_debug_logging_only_in_debug_environments(monkeypatch, channel):
    caplog = channel('canvastack_tables.pipeline')

    monkeypatch.setenv('CANVASTACK_ENV', 'production')
    LoggingHelper.log_warning('hidden warning')
    assert not any('hidden warning' in record.getMessage() for record in caplog.records)

    monkeypatch.setenv('CANVASTACK_ENV', 'testing')
    LoggingHelper.log_warning('visible warning', {'table': 'orders'})
    assert any("visible warning | table='orders'" in record.getMessage() for record in caplog.records)


def test_service_settings_drive_log_gating(monkeypatch, channel, db):
    caplog = channel('canvastack_tables.pipeline')
    monkeypatch.setenv('CANVASTACK_ENV', 'production')

    DatatablesService(db, DatatablesSettings(environment=' Local '), TableRegistry())
    assert LoggingHelper.current_environment() == 'local'
    LoggingHelper.log_warning('settings warning')
    assert any('settings warning' in record.getMessage() for record in caplog.records)

    DatatablesService(db, DatatablesSettings(environment='production'), TableRegistry())
    LoggingHelper.log_warning('production warning')
    assert not any('production warning' in record.getMessage() for record in caplog.records)


def test_cleared_environment_falls_back_to_env_var(monkeypatch):
    monkeypatch.setenv('CANVASTACK_ENV', 'testing')
    LoggingHelper.configure_environment('production')
    assert not LoggingHelper.is_debug_environment()

    LoggingHelper.configure_environment(None)
    assert LoggingHelper.is_debug_environment()
    assert DatatablesSettings(environment='TESTING').is_debug_environment
