"""
Provider Endpoints and Authentication
=====================================

Default URL templates and the authentication scheme of every provider.

Each provider authenticates in exactly one of three ways:
    - ``Authorization: Bearer <key>``
    - a provider-specific header (``x-api-key`` for Anthropic,
      ``api-key`` for Azure)
    - a URL query parameter (``key`` for Gemini, ``access_token`` for Baidu)
"""

import re
from enum import Enum
from typing import TYPE_CHECKING, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from chatbridge.providers.types import Provider

if TYPE_CHECKING:
    from chatbridge.llm.models import ProviderConfig

ANTHROPIC_VERSION = "2023-06-01"
AZURE_API_VERSION = "2024-02-01"

_DEFAULT_ENDPOINTS: dict[Provider, str] = {
    Provider.OPENAI: "https://api.openai.com/v1/chat/completions",
    Provider.AZURE: (
        "https://{resource-name}.openai.azure.com/openai/deployments/{deployment-id}"
        "/chat/completions?api-version={api-version}"
    ),
    Provider.ANTHROPIC: "https://api.anthropic.com/v1/messages",
    Provider.GEMINI: "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
    Provider.TOGETHER: "https://api.together.xyz/v1/chat/completions",
    Provider.MISTRAL: "https://api.mistral.ai/v1/chat/completions",
    Provider.MOONSHOT: "https://api.moonshot.cn/v1/chat/completions",
    Provider.DEEPSEEK: "https://api.deepseek.com/v1/chat/completions",
    Provider.QWEN: "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation",
    Provider.HUGGINGFACE: "https://api-inference.huggingface.co/models/{model}",
    Provider.LOCALAI: "http://localhost:8080/v1/chat/completions",
    Provider.BAIDU: "https://aip.baidubce.com/rpc/2.0/ai_custom/v1/wenxinworkshop/chat/{model}",
    Provider.XINGHUO: "https://spark-api-open.xf-yun.com/v1/chat/completions",
    Provider.MINIMAX: "https://api.minimax.chat/v1/text/chatcompletion_v2",
    Provider.CUSTOM: "",
}

# DashScope serves vision models from a separate route
QWEN_MULTIMODAL_ENDPOINT = (
    "https://dashscope.aliyuncs.com/api/v1/services/aigc/multimodal-generation/generation"
)

_PLACEHOLDER = re.compile(r"\{[^{}/]+\}")


class AuthScheme(Enum):
    """How the API key reaches the provider."""

    BEARER = "bearer"
    HEADER = "header"
    QUERY = "query"


_AUTH: dict[Provider, tuple[AuthScheme, str]] = {
    Provider.OPENAI: (AuthScheme.BEARER, "Authorization"),
    Provider.TOGETHER: (AuthScheme.BEARER, "Authorization"),
    Provider.LOCALAI: (AuthScheme.BEARER, "Authorization"),
    Provider.HUGGINGFACE: (AuthScheme.BEARER, "Authorization"),
    Provider.MISTRAL: (AuthScheme.BEARER, "Authorization"),
    Provider.MOONSHOT: (AuthScheme.BEARER, "Authorization"),
    Provider.DEEPSEEK: (AuthScheme.BEARER, "Authorization"),
    Provider.QWEN: (AuthScheme.BEARER, "Authorization"),
    Provider.MINIMAX: (AuthScheme.BEARER, "Authorization"),
    Provider.XINGHUO: (AuthScheme.BEARER, "Authorization"),
    Provider.CUSTOM: (AuthScheme.BEARER, "Authorization"),
    Provider.ANTHROPIC: (AuthScheme.HEADER, "x-api-key"),
    Provider.AZURE: (AuthScheme.HEADER, "api-key"),
    Provider.GEMINI: (AuthScheme.QUERY, "key"),
    Provider.BAIDU: (AuthScheme.QUERY, "access_token"),
}


def default_endpoint(provider: Provider | str) -> str:
    """
    Get the default endpoint template for a provider.

    Templates may contain ``{model}``, ``{resource-name}``,
    ``{deployment-id}`` or ``{api-version}`` placeholders. ``custom`` has no
    default and returns an empty string.
    """
    return _DEFAULT_ENDPOINTS.get(Provider.parse(provider), "")


def auth_scheme_of(provider: Provider | str) -> tuple[AuthScheme, str]:
    """Return ``(scheme, header or query parameter name)`` for a provider."""
    return _AUTH[Provider.parse(provider)]


def auth_headers(
    provider: Provider | str,
    api_key: str,
    organization_id: Optional[str] = None,
    api_version: Optional[str] = None,
) -> dict[str, str]:
    """
    Build the request headers for a provider.

    Args:
        provider: Target provider.
        api_key: Provider API key.
        organization_id: OpenAI organization, sent only to OpenAI.
        api_version: Overrides the ``anthropic-version`` header.

    Returns:
        Header map including ``Content-Type``. Query-parameter providers get
        no credential header; see :func:`resolve_endpoint`.
    """
    provider = Provider.parse(provider)
    headers = {"Content-Type": "application/json"}
    scheme, name = auth_scheme_of(provider)

    if scheme is AuthScheme.BEARER:
        headers[name] = f"Bearer {api_key}"
    elif scheme is AuthScheme.HEADER:
        headers[name] = api_key

    if provider is Provider.OPENAI and organization_id:
        headers["OpenAI-Organization"] = organization_id
    if provider is Provider.ANTHROPIC:
        headers["anthropic-version"] = api_version or ANTHROPIC_VERSION
    return headers


def _with_query(url: str, **params: str) -> str:
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update(params)
    return urlunsplit(parts._replace(query=urlencode(query)))


def _fill_template(url: str, config: "ProviderConfig") -> str:
    url = (
        url.replace("{model}", config.model)
        .replace("{deployment-id}", config.model)
        .replace("{api-version}", config.api_version or AZURE_API_VERSION)
    )
    if config.region:
        url = url.replace("{region}", config.region)
    return url


def unresolved_placeholders(config: "ProviderConfig") -> list[str]:
    """
    Placeholders the configuration leaves unfilled in its endpoint.

    ``{resource-name}`` in the Azure template, or ``{region}`` without a
    region, cannot be filled from the configuration and must be edited
    into the endpoint by the caller.
    """
    return _PLACEHOLDER.findall(_fill_template(config.endpoint or default_endpoint(config.provider), config))


def resolve_endpoint(config: "ProviderConfig", stream: bool = False, multimodal: bool = False) -> str:
    """
    Produce the concrete URL for a request.

    Substitutes template placeholders from the configuration, switches
    Gemini to its SSE streaming route, points Qwen image requests at the
    multimodal route, and appends the key for query-parameter providers.
    """
    provider = config.provider
    url = config.endpoint or default_endpoint(provider)

    if provider is Provider.QWEN and multimodal and url == default_endpoint(provider):
        url = QWEN_MULTIMODAL_ENDPOINT

    url = _fill_template(url, config)

    if provider is Provider.GEMINI and stream:
        url = url.replace(":generateContent", ":streamGenerateContent")
        url = _with_query(url, alt="sse")

    scheme, name = auth_scheme_of(provider)
    if scheme is AuthScheme.QUERY:
        url = _with_query(url, **{name: config.api_key})
    return url
