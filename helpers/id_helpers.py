"""
Row identifier encoding for clickable-row link parameters.

Encoded ids are the primary key shifted by a fixed offset followed by a
32-character hex suffix derived from the configured salt. The suffix makes
the parameter recognisable; it is not a signature.
"""
import hashlib
import re
from typing import Any, Optional

from constants import ID_ENCODE_OFFSET

_DEFAULT_SALT = 'canvastack'
_ENCODED_PATTERN = re.compile(r'^(-?\d+)([0-9a-f]{32})?$')


def hash_code_id(salt: str = _DEFAULT_SALT) -> str:
    return hashlib.md5(salt.encode('utf-8')).hexdigest()


def encode_id(row_id: Any, hashing: bool = True, salt: str = _DEFAULT_SALT) -> Optional[str]:
    """
    Encode a primary key into a link parameter.

    Args:
        row_id: Integer-like primary key
        hashing: Append the salt-derived suffix (default True)
        salt: Salt for the suffix

    Returns:
        The encoded parameter, or None when row_id is not integer-like
    """
    try:
        value = int(row_id)
    except (TypeError, ValueError):
        return None
    suffix = hash_code_id(salt) if hashing else ''
    return f"{value + ID_ENCODE_OFFSET}{suffix}"


def decode_id(encoded: Any, hashing: bool = True, salt: str = _DEFAULT_SALT) -> Optional[int]:
    """Reverse encode_id; returns None for anything that was not produced by it."""
    match = _ENCODED_PATTERN.match(str(encoded or '').strip())
    if not match:
        return None
    number, suffix = match.groups()
    if hashing and suffix != hash_code_id(salt):
        return None
    if not hashing and suffix:
        return None
    return int(number) - ID_ENCODE_OFFSET
