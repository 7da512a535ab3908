"""
Request helpers for handling HTTP request data safely.
"""
from typing import Any, Dict, List

from flask import request


def get_real_ip() -> str:
    """
    Get real client IP address, accounting for reverse proxies.

    Behind a reverse proxy request.remote_addr is the proxy's address, so the
    leftmost X-Forwarded-For entry is preferred when present.

    Security Notes:
        - X-Forwarded-For can be spoofed by malicious clients
        - Deployments behind a proxy should run with ProxyFix so that only the
          trusted hop is honoured
    """
    forwarded_for = request.headers.get('X-Forwarded-For')

    if forwarded_for:
        return forwarded_for.split(',')[0].strip()

    return request.remote_addr


def collect_request_params() -> Dict[str, List[Any]]:
    """
    Merge query-string, form and JSON parameters into one multi-value mapping.

    Datatables clients send GET or POST with bracket-notation keys
    (``columns[0][data]``); every key maps to the list of values received so
    that "last value wins" stays a caller decision.
    """
    params: Dict[str, List[Any]] = {}
    for source in (request.args, request.form):
        for key in source.keys():
            params.setdefault(key, []).extend(source.getlist(key))

    payload = request.get_json(silent=True) if request.is_json else None
    if isinstance(payload, dict):
        for key, value in payload.items():
            params.setdefault(key, []).append(value)

    return params
