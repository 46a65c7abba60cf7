from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Tuple, Union

_SENSITIVE_TOKENS = ("password", "secret", "token", "otp", "key", "passcode", "credential")


def serialize_value(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def _is_sensitive(name: str) -> bool:
    lower = name.lower()
    # foreign-key columns such as ``api_key_id`` are identifiers, not secrets
    if lower.endswith("_id"):
        return False
    return any(token in lower for token in _SENSITIVE_TOKENS)


def sanitize_payload(data: Union[Mapping[str, Any], Iterable[Tuple[str, Any]], None]) -> Dict[str, Any]:
    """Return a log-safe copy of ``data`` with sensitive values redacted."""

    if data is None:
        return {}
    items = data.items() if isinstance(data, Mapping) else data
    sanitized: Dict[str, Any] = {}
    for key, value in items:
        key = str(key)
        if _is_sensitive(key):
            sanitized[key] = "***REDACTED***"
        else:
            sanitized[key] = serialize_value(value)
    return sanitized
