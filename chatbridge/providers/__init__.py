"""
Provider Tables
===============

Static, per-provider knowledge used by the request pipeline:
    - types: the ``Provider`` enumeration
    - capabilities: streaming / multimodal / high-resolution flags
    - endpoints: default URLs and authentication schemes
    - catalog: display labels and model lists
"""

from chatbridge.providers.capabilities import (
    Capabilities,
    capabilities_of,
    supports_high_res_images,
    supports_multimodal,
    supports_streaming,
)
from chatbridge.providers.catalog import ProviderInfo, available_models, default_model, list_providers, provider_info
from chatbridge.providers.endpoints import (
    AuthScheme,
    auth_headers,
    auth_scheme_of,
    default_endpoint,
    resolve_endpoint,
    unresolved_placeholders,
)
from chatbridge.providers.types import Provider

__all__ = [
    "Provider",
    "Capabilities",
    "capabilities_of",
    "supports_streaming",
    "supports_multimodal",
    "supports_high_res_images",
    "AuthScheme",
    "auth_headers",
    "auth_scheme_of",
    "default_endpoint",
    "resolve_endpoint",
    "unresolved_placeholders",
    "ProviderInfo",
    "provider_info",
    "list_providers",
    "default_model",
    "available_models",
]
