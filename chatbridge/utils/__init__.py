"""
Utility modules for chatbridge.

This package contains:
    - logger: Structured logging with structlog
    - security: Credential masking for logs
"""

from chatbridge.utils.logger import LogContext, get_logger, setup_logging
from chatbridge.utils.security import generate_request_id, mask_secret, redact_url, sanitize_headers

__all__ = [
    "get_logger",
    "setup_logging",
    "LogContext",
    "mask_secret",
    "sanitize_headers",
    "redact_url",
    "generate_request_id",
]
