"""Error sanitization utilities to keep credential material out of logs and events."""

from __future__ import annotations

import re
from typing import Any

from kubernetes.client.exceptions import ApiException

# API error bodies can echo the rejected object, including Secret payloads
SENSITIVE_PATTERNS = [
    r'"(data|stringData)"\s*:\s*\{[^}]*\}',
    r'"\.dockerconfigjson"\s*:\s*"[^"]*"',
    r'"auths?"\s*:\s*(\{[^}]*\}|"[^"]*")',
    r"Authorization:\s*Bearer\s+\S+",
]

# Fields to redact completely
SENSITIVE_FIELDS = {
    "password",
    "token",
    "auth",
    "dockerconfigjson",
    "credentials",
    "stringdata",
}


def sanitize_error_message(message: str) -> str:
    """Sanitize an error message.

    Args:
        message: Original error message

    Returns:
        Message with secret payloads and credential fields redacted
    """
    sanitized = message

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(pattern, "[REDACTED]", sanitized, flags=re.IGNORECASE)

    for field in SENSITIVE_FIELDS:
        sanitized = re.sub(
            rf"\b{field}[:=\s]+([^\s,;\)]+)",
            rf"{field}: [REDACTED]",
            sanitized,
            flags=re.IGNORECASE,
        )

    return sanitized


def sanitize_exception(error: Exception) -> str:
    """Sanitize an exception for logging.

    API errors are reduced to status and reason plus the sanitized body, so
    response headers never reach the logs.
    """
    if isinstance(error, ApiException):
        message = f"({error.status}) {error.reason}"
        body = error.body
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        if body:
            message = f"{message}: {body}"
        return sanitize_error_message(message)
    return sanitize_error_message(str(error))


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Sanitize a dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: Additional keys to redact (merged with SENSITIVE_FIELDS)

    Returns:
        Sanitized copy of ``data``
    """
    all_sensitive = SENSITIVE_FIELDS | {key.lower() for key in (sensitive_keys or set())}
    sanitized: dict[str, Any] = {}

    for key, value in data.items():
        key_lower = key.lower()
        if key_lower in ("data", "stringdata") or any(sensitive in key_lower for sensitive in all_sensitive):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        else:
            sanitized[key] = value

    return sanitized
