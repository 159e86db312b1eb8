"""Helpers for safe debug logging.

The REST store authenticates every request with the project API key, both
as the ``apikey`` header and as a bearer token.  This module redacts those
values (and truncates bulky row payloads) before they reach DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "apikey",
        "authorization",
        "supabase_key",
        "password",
        "token",
        "cookie",
    }
)

_MAX_SEQUENCE_ITEMS = 5


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs.

    Long sequences (e.g. a 100 row insert batch) are cut down to their
    first few items plus a count marker.
    """
    if _depth > 20:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if key.lower() in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        items = [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value[:_MAX_SEQUENCE_ITEMS]]
        if len(value) > _MAX_SEQUENCE_ITEMS:
            items.append(f"<+{len(value) - _MAX_SEQUENCE_ITEMS} more>")
        return items

    return repr(value)
