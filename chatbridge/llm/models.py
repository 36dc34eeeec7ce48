"""
Conversation and Request Models
===============================

Data classes shared by the translator, parser, decoder, cache and client.
"""

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional

from chatbridge.llm.errors import ChatBridgeError
from chatbridge.providers.capabilities import Capabilities, capabilities_of
from chatbridge.providers.catalog import default_model
from chatbridge.providers.endpoints import default_endpoint
from chatbridge.providers.types import Provider


class Role(str, Enum):
    """Conversation roles."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MediaType(str, Enum):
    IMAGE = "image"
    FILE = "file"


@dataclass(frozen=True)
class MediaAttachment:
    """
    Media attached to a message.

    Attributes:
        type: ``image`` or ``file``.
        uri: Local URI the media was picked from.
        mime_type: MIME type, e.g. ``image/png``.
        data: Base64 payload or data URI, once loaded.
    """

    type: MediaType
    uri: Optional[str] = None
    mime_type: Optional[str] = None
    data: Optional[str] = None


@dataclass(frozen=True)
class Message:
    """
    A message in the conversation.

    Immutable once sent. Order within a conversation decides the turn
    structure sent to every provider.

    Attributes:
        id: Unique message id.
        role: user, assistant or system.
        content: Message text.
        timestamp: Unix time the message was created.
        media: Optional image or file attachment.
    """

    id: str
    role: Role
    content: str
    timestamp: float
    media: Optional[MediaAttachment] = None

    def __post_init__(self) -> None:
        # Accept plain strings for role
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))

    @classmethod
    def create(cls, role: Role | str, content: str, media: Optional[MediaAttachment] = None) -> "Message":
        """Build a message with a fresh id and the current time."""
        return cls(
            id=uuid.uuid4().hex,
            role=Role(role),
            content=content,
            timestamp=time.time(),
            media=media,
        )


@dataclass
class ProviderConfig:
    """
    Configuration for one provider account.

    Owned by the caller; the adapter reads it and never persists it.
    Construction never raises: incomplete configurations are reported by
    the client as an error result.

    Attributes:
        provider: Target provider.
        endpoint: Request URL or URL template.
        api_key: Provider API key.
        model: Model identifier.
        temperature: Sampling temperature; provider default when None.
        max_tokens: Output token cap; provider default when None.
        supports_streaming: Overrides the capability table when set.
        supports_multimodal: Overrides the capability table when set.
        supports_high_res_images: Overrides the capability table when set.
        organization_id: OpenAI organization id.
        api_version: Azure API version or Anthropic version header.
        region: Substituted for a ``{region}`` placeholder in the endpoint.
    """

    provider: Provider
    endpoint: str = ""
    api_key: str = ""
    model: str = ""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    supports_streaming: Optional[bool] = None
    supports_multimodal: Optional[bool] = None
    supports_high_res_images: Optional[bool] = None
    organization_id: Optional[str] = None
    api_version: Optional[str] = None
    region: Optional[str] = None

    def __post_init__(self) -> None:
        self.provider = Provider.parse(self.provider)

    @classmethod
    def for_provider(cls, provider: Provider | str, api_key: str = "", **overrides) -> "ProviderConfig":
        """Prefill endpoint and model from the provider catalog."""
        provider = Provider.parse(provider)
        config = cls(
            provider=provider,
            endpoint=default_endpoint(provider),
            api_key=api_key,
            model=default_model(provider),
        )
        return replace(config, **overrides) if overrides else config

    @property
    def capabilities(self) -> Capabilities:
        """Capability table entry with any explicit overrides applied."""
        base = capabilities_of(self.provider)
        return Capabilities(
            streaming=base.streaming if self.supports_streaming is None else self.supports_streaming,
            multimodal=base.multimodal if self.supports_multimodal is None else self.supports_multimodal,
            high_res_images=(
                base.high_res_images
                if self.supports_high_res_images is None
                else self.supports_high_res_images
            ),
        )

    def missing_fields(self) -> list[str]:
        """Names of required fields that are empty."""
        return [
            name
            for name in ("api_key", "endpoint", "model")
            if not (getattr(self, name) or "").strip()
        ]


@dataclass
class NormalizedResponse:
    """
    Provider-independent result of one call.

    Exactly one of ``content`` (possibly empty) or ``error`` is meaningful.

    Attributes:
        content: Generated text.
        error: Human-readable failure description.
        error_type: ``configuration``, ``media``, ``transport``,
            ``provider`` or ``decode`` when ``error`` is set.
    """

    content: str = ""
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_error(cls, error: Exception) -> "NormalizedResponse":
        """Collapse any failure into the error shape."""
        error_type = error.error_type if isinstance(error, ChatBridgeError) else "unknown"
        return cls(content="", error=str(error) or error.__class__.__name__, error_type=error_type)


@dataclass
class RequestOptions:
    """
    Per-call options.

    Attributes:
        timeout: Seconds to wait for response headers; settings default when None.
        enable_cache: Look up and store non-streaming responses.
        cache_ttl: Lifetime of a new cache entry in seconds.
        cache_streaming: Also cache the final text of a streaming call.
        on_update: Receives the cumulative text of a streaming call.
    """

    timeout: Optional[float] = None
    enable_cache: bool = True
    cache_ttl: Optional[float] = None
    cache_streaming: bool = False
    on_update: Optional[Callable[[str], None]] = field(default=None, repr=False)
