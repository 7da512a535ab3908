"""
API endpoint decorator for datatables routes.

Maps the service's exceptions to JSON responses so route bodies only
describe the happy path.
"""
import sys
from functools import wraps
from typing import Callable

from error_handler import SecurityError, TableNotFoundError
from helpers.response_helpers import datatables_response, error_response
from helpers.validation_helpers import validate_table_key
from logging_helper import LoggingHelper, logger


def datatables_endpoint(error_message: str = "Failed to render table") -> Callable:
    """
    Decorator for endpoints that render a registered table.

    The wrapped function receives the service and the validated table key
    and returns a datatables payload:
    1. Read the service from the blueprint's module-level ``service``
    2. Validate the table key
    3. Call the route body and return its payload as JSON
    4. Map errors: SecurityError -> 403, TableNotFoundError -> 404,
       anything else -> 500 with a generic message

    Example usage:
        @bp.route('/datatables/<table_key>', methods=['GET', 'POST'])
        @datatables_endpoint('Failed to render table')
        def render_table(service, table_key):
            return service.process_registered(table_key, collect_request_params())
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(table_key: str, *args, **kwargs):
            # Get the service from the blueprint's module-level variable
            func_module = sys.modules[func.__module__]
            service = getattr(func_module, 'service', None)

            if service is None:
                logger.error(f"Datatables service not initialized for {func.__name__}")
                return error_response("Datatables service not available", 500)

            is_valid, error = validate_table_key(table_key)
            if not is_valid:
                return error

            try:
                return datatables_response(func(service, table_key, *args, **kwargs))
            except SecurityError as e:
                return error_response("Access denied", e.status_code)
            except TableNotFoundError as e:
                logger.info(f"Unknown table requested: {e}")
                return error_response("Table not found", 404)
            except Exception as e:
                LoggingHelper.log_error_with_trace(f"Error in {func.__name__}", e)
                return error_response(error_message, 500)

        return wrapper
    return decorator
