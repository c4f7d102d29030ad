"""Helpers keeping secrets and bulky payloads out of log records.

Tool inputs and provider errors are logged through these helpers. Tool
inputs can hold nested lists (sensor readings) and base64 images, and SDK
error messages sometimes echo the API key that was rejected.
"""

import re
from typing import Any, List, Pattern, Tuple

SENSITIVE_KEYS = (
    'api_key', 'key', 'secret', 'password', 'token',
    'authorization', 'auth', 'credential'
)

MAX_LOG_STRING = 500

_SECRET_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r'key=[\w\-]+'), 'key=****'),
    (re.compile(r'sk-[\w\-]{8,}'), 'sk-****'),  # Anthropic, OpenAI, DeepSeek
    (re.compile(r'AIza[\w\-]{20,}'), 'AIza****'),  # Gemini
    (re.compile(r'Bearer\s+[\w\-\.]+'), 'Bearer ****'),
    (re.compile(r'token=[\w\-\.]+'), 'token=****'),
]


def _is_sensitive(key: Any) -> bool:
    lowered = str(key).lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def _mask(value: Any) -> str:
    if not isinstance(value, str):
        return "[REDACTED]"
    if len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return "****"


def redact_sensitive_data(data: Any) -> Any:
    """Prepare a payload for a log record.

    Dictionaries are walked recursively, including those nested in lists.
    Scalar values under sensitive keys are masked, other strings are
    shortened with ``truncate_for_log``.

    Args:
        data: Log payload, usually a dict of tool input

    Returns:
        A redacted copy; the input is left untouched
    """
    if isinstance(data, dict):
        return {
            key: _mask(value)
            if _is_sensitive(key) and not isinstance(value, (dict, list, tuple))
            else redact_sensitive_data(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return type(data)(redact_sensitive_data(item) for item in data)
    if isinstance(data, str):
        return truncate_for_log(data)
    return data


def sanitize_log_message(message: str) -> str:
    """Mask API keys and bearer tokens in free text such as SDK errors."""
    for pattern, replacement in _SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


def truncate_for_log(value: str, limit: int = MAX_LOG_STRING) -> str:
    """Shorten a string for logging, noting how much was dropped."""
    if len(value) <= limit:
        return value
    return f"{value[:limit]}... [{len(value) - limit} more chars]"
