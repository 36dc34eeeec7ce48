"""
Security Utilities
==================

Keeps provider credentials out of logs.
API keys travel in headers for most providers and in the URL query string
for a few (Gemini, Baidu), so both places are scrubbed before logging.

Usage:
    from chatbridge.utils.security import mask_secret, sanitize_headers

    mask_secret("sk-abcdef123456")       # 'sk-********'
    sanitize_headers({"x-api-key": "k"}) # {'x-api-key': '*'}
"""

import re
import secrets
from typing import Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SENSITIVE_NAME = re.compile(
    r"authorization|api[_-]?key|access[_-]?token|secret|token|^key$",
    re.IGNORECASE,
)


def mask_secret(value: str, visible_chars: int = 3) -> str:
    """
    Mask a sensitive string, showing only first few characters.

    Args:
        value: The string to mask.
        visible_chars: Number of characters to show at start.

    Returns:
        Masked string with asterisks.

    Examples:
        >>> mask_secret("sk-abcdef123456")
        'sk-********'
        >>> mask_secret("abc")
        '***'
    """
    if not value:
        return ""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return f"{value[:visible_chars]}{'*' * 8}"


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` with credential values masked."""
    result = {}
    for name, value in headers.items():
        if _SENSITIVE_NAME.search(name):
            # "Bearer sk-..." keeps the scheme readable
            scheme, _, token = value.partition(" ")
            if token and scheme.lower() == "bearer":
                result[name] = f"{scheme} {mask_secret(token)}"
            else:
                result[name] = mask_secret(value)
        else:
            result[name] = value
    return result


def redact_url(url: str) -> str:
    """Mask credential query parameters (``key``, ``access_token``) in a URL."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (name, mask_secret(value) if _SENSITIVE_NAME.search(name) else value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*{}")))


def generate_request_id() -> str:
    """
    Generate a short random id used to correlate the log lines of one request.

    Returns:
        A URL-safe random string.
    """
    return secrets.token_urlsafe(8)
