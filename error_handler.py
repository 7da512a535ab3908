"""
Error types and error-logging helpers for the datatables service.

Every service error derives from CanvastackTablesError so routes can map the
whole family onto HTTP responses in one place.
"""

import os
import sqlite3
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Dict, Optional, Type

from flask import g, has_request_context, request

from logging_helper import LoggingHelper, LogType

logger = LoggingHelper.get_logger(LogType.MAIN)


class CanvastackTablesError(Exception):
    """Base exception for all datatables service errors."""
    pass


class QueryBuildError(CanvastackTablesError):
    """Query building or execution failed (bad join/filter configuration)."""
    pass


class ConfigurationError(CanvastackTablesError):
    """Invalid settings or table registry content."""
    pass


class TableNotFoundError(CanvastackTablesError):
    """Requested table is not registered."""
    pass


class SecurityError(CanvastackTablesError):
    """
    Security violation such as disallowed table access or an unsafe identifier.

    The exception captures request metadata (caller IP, user agent, user id and
    timestamp) and logs itself to the security channel as soon as it is raised.
    """

    status_code = 403

    def __init__(self, message: str = 'Security violation detected',
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = {**_request_metadata(), **(context or {})}
        LoggingHelper.log_security_event(message, self.context)


def _request_metadata() -> Dict[str, Any]:
    """Collect caller metadata for security events; safe outside a request."""
    metadata = {
        'ip': 'unknown',
        'user_agent': 'unknown',
        'user_id': None,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
    if not has_request_context():
        return metadata

    from helpers.request_helpers import get_real_ip

    metadata['ip'] = get_real_ip() or 'unknown'
    metadata['user_agent'] = request.headers.get('User-Agent', 'unknown')
    metadata['user_id'] = getattr(g, 'user_id', None)
    return metadata


def log_and_suppress(exc: Exception, message: str, level: str = "error",
                     return_value: Any = None) -> Any:
    """
    Log a recoverable failure and hand back a fallback value.

    Used where a failure must not break the request, e.g. the hybrid
    preflight or the inspector file writer.
    """
    emit = getattr(logger, level, logger.error)
    emit(f"{message}: {type(exc).__name__}: {exc}")
    logger.debug("Suppressed exception", exc_info=exc)
    return return_value


def log_and_reraise(exc: Exception, message: str, level: str = "error",
                    as_type: Optional[Type[Exception]] = None) -> None:
    """
    Log a failure and raise it again, optionally converted to a service error.

    Raises:
        as_type chained to exc when given, otherwise exc itself
    """
    emit = getattr(logger, level, logger.error)
    emit(f"{message}: {exc}")
    logger.debug("Exception details", exc_info=exc)

    if as_type is None:
        raise exc
    raise as_type(f"{message}: {exc}") from exc


def read_env_setting(name: str, default: Any,
                     converter: Optional[Callable[[str], Any]] = None,
                     validator: Optional[Callable[[Any], bool]] = None) -> Any:
    """
    Read one CANVASTACK_* environment variable.

    Unset variables, values the converter rejects and values failing the
    validator all resolve to ``default``; only the rejected ones are warned about.
    """
    raw = os.getenv(name)
    if raw is None:
        return default

    try:
        value = converter(raw) if converter else raw
    except (ValueError, TypeError) as exc:
        logger.warning(f"Ignoring {name}={raw!r} ({exc}); using {default!r}")
        return default

    if validator is not None and not validator(value):
        logger.warning(f"Ignoring {name}={raw!r}: not an accepted value; using {default!r}")
        return default
    return value


def tolerate_sqlite_errors(operation: str, fallback: Any = None) -> Callable:
    """
    Decorator for read-only schema lookups: sqlite3 errors are logged and
    ``fallback`` is returned. Any other exception propagates.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except sqlite3.Error as exc:
                logger.error(f"Failed to {operation} ({type(self).__name__}): {exc}")
                return fallback
        return wrapper
    return decorator
