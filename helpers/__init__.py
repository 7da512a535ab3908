"""
Helper utilities for the datatables service.
Centralizes common patterns to reduce code duplication.
"""

# Export all helpers for easy importing
from .id_helpers import encode_id, decode_id
from .response_helpers import error_response, datatables_response
from .sanitization import sanitize_html, escape_cell
from .validation_helpers import clamp_length, coerce_int, validate_table_key

__all__ = [
    # Id helpers
    'encode_id',
    'decode_id',
    # Response helpers
    'error_response',
    'datatables_response',
    # Sanitization helpers
    'sanitize_html',
    'escape_cell',
    # Validation helpers
    'clamp_length',
    'coerce_int',
    'validate_table_key',
]
