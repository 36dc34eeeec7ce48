"""
LLM Adapter Module
==================

Everything between a conversation and a provider's HTTP API.

This package contains:
    - client: ``ChatClient`` request orchestrator (send, image, stream)
    - request_builder: Conversation to provider body translation
    - response_parser: Provider body to answer text
    - stream_decoder: Incremental decoding of streamed answers
    - cache: TTL response cache over an injected key-value store
    - media: Image resizing and re-encoding to provider limits
    - models: Conversation, configuration and result data classes
    - errors: Failure taxonomy collapsed into ``NormalizedResponse``
"""

from chatbridge.llm.cache import InMemoryStore, KeyValueStore, ResponseCache, cache_key
from chatbridge.llm.client import ChatClient, send_request, send_stream_request
from chatbridge.llm.errors import (
    ChatBridgeError,
    ConfigurationError,
    DecodeError,
    MediaError,
    ProviderError,
    TransportError,
)
from chatbridge.llm.media import prepare_image
from chatbridge.llm.models import (
    MediaAttachment,
    MediaType,
    Message,
    NormalizedResponse,
    ProviderConfig,
    RequestOptions,
    Role,
)
from chatbridge.llm.request_builder import build_image_request_body, build_request_body
from chatbridge.llm.response_parser import decode_response_body, extract_content, parse_response
from chatbridge.llm.stream_decoder import DecoderState, StreamDecoder, decoder_for

__all__ = [
    "ChatClient",
    "send_request",
    "send_stream_request",
    "Message",
    "MediaAttachment",
    "MediaType",
    "Role",
    "ProviderConfig",
    "RequestOptions",
    "NormalizedResponse",
    "ChatBridgeError",
    "ConfigurationError",
    "MediaError",
    "TransportError",
    "ProviderError",
    "DecodeError",
    "build_request_body",
    "build_image_request_body",
    "parse_response",
    "extract_content",
    "decode_response_body",
    "StreamDecoder",
    "DecoderState",
    "decoder_for",
    "ResponseCache",
    "KeyValueStore",
    "InMemoryStore",
    "cache_key",
    "prepare_image",
]
