"""
Parameter validation helper utilities.
"""
import re
from typing import Any, Optional, Tuple

from flask import Response

from helpers.response_helpers import error_response as create_error_response

# Pre-compiled regex patterns for performance
_TABLE_KEY_PATTERN = re.compile(r'^[a-z_][a-z0-9_]*$')


def coerce_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """Convert a request value to int, returning default when it is not numeric."""
    if isinstance(value, (list, tuple)):
        value = value[-1] if value else None
    if value is None or value == '':
        return default
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def clamp_length(length: Optional[int], max_length: int) -> Optional[int]:
    """
    Clamp a page length.

    Args:
        length: Requested length; -1 or None means "all rows"
        max_length: Upper bound for explicit lengths

    Returns:
        None for "all rows", otherwise a value in [0, max_length]
    """
    if length is None or length == -1:
        return None
    return max(0, min(length, max_length))


def validate_table_key(table_key: str) -> Tuple[bool, Optional[Tuple[Response, int]]]:
    """
    Validate a registered-table key taken from the URL.

    Returns:
        (True, None) if the key is well formed, else (False, error_response)
    """
    if not table_key or not isinstance(table_key, str):
        return False, create_error_response('Invalid table name')

    if not _TABLE_KEY_PATTERN.match(table_key):
        return False, create_error_response('Invalid table name')

    return True, None
