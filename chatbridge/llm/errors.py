"""
Adapter Errors
==============

Failure taxonomy used inside the adapter layer. None of these cross the
public client boundary: ``ChatClient`` converts every one of them into a
``NormalizedResponse`` carrying ``error`` and ``error_type``.
"""

from typing import Optional


class ChatBridgeError(Exception):
    """Base class for adapter-layer failures."""

    error_type = "unknown"


class ConfigurationError(ChatBridgeError):
    """Missing key, endpoint or model, or a request the provider cannot take.

    Detected before any network I/O.
    """

    error_type = "configuration"


class MediaError(ConfigurationError):
    """An image could not be decoded, re-encoded or fitted to provider limits."""

    error_type = "media"


class TransportError(ChatBridgeError):
    """Network failure, DNS error or timeout at the HTTP boundary."""

    error_type = "transport"


class ProviderError(ChatBridgeError):
    """The provider answered with a non-2xx HTTP status."""

    error_type = "provider"

    def __init__(self, status: Optional[int], body: str) -> None:
        # status is None for errors reported inside a 200 stream
        super().__init__(f"{status} {body}".rstrip() if status is not None else body)
        self.status = status
        self.body = body


class DecodeError(ChatBridgeError):
    """A response body or stream event could not be understood."""

    error_type = "decode"

    def __init__(self, message: str, raw: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw = raw
