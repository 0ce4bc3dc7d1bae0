"""
Masking of GitHub credentials in log records and user-facing payloads.

Free text is scrubbed by pattern; structured data is scrubbed by key name
and then by pattern for any remaining string values.
"""

from __future__ import annotations

import re
from typing import Any

SENSITIVE_PATTERNS = {
    "github_token": r"\b(gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,})\b",
    "bearer": r"(Bearer|token)\s+[A-Za-z0-9_\-\.]{20,}",
    "device_password": r"\bpwd_[0-9a-f]{32}\b",
}

_COMPILED_PATTERNS = [
    (re.compile(pattern, re.IGNORECASE), f"[REDACTED_{name.upper()}]")
    for name, pattern in SENSITIVE_PATTERNS.items()
]

SENSITIVE_KEYS = {
    "token",
    "github_token",
    "access_token",
    "authorization",
    "password",
    "device_password",
    "secret",
    "app_salt",
}


def mask_token(token: str | None) -> str:
    """Keep only the last 4 characters, enough to tell two tokens apart."""
    if not token or len(token) <= 4:
        return "****"
    return f"****{token[-4:]}"


def redact_sensitive_data(text: str) -> str:
    """Replace every token-like substring with a ``[REDACTED_<KIND>]`` marker."""
    for pattern, replacement in _COMPILED_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _redact_value(key: str, value: Any) -> Any:
    if key.lower() in SENSITIVE_KEYS:
        return "[REDACTED]"
    if isinstance(value, dict):
        return redact_dict(value)
    if isinstance(value, (list, tuple)):
        return [redact_dict(item) if isinstance(item, dict) else item for item in value]
    if isinstance(value, str):
        return redact_sensitive_data(value)
    return value


def redact_dict(data: dict[str, Any]) -> dict[str, Any]:
    """
    Return a copy of ``data`` that is safe to log or display.

    Values under sensitive keys become ``[REDACTED]`` whatever their type;
    nested mappings and lists of mappings are handled recursively.
    """
    return {key: _redact_value(key, value) for key, value in data.items()}
