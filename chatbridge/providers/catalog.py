"""
Provider Catalog
================

Display labels, default models and known model ids for each provider.
Used by settings screens to prefill a new configuration.
"""

from dataclasses import dataclass, field

from chatbridge.providers.types import Provider


@dataclass(frozen=True)
class ProviderInfo:
    """Catalog entry for one provider."""

    provider: Provider
    label: str
    default_model: str = ""
    models: tuple[str, ...] = field(default_factory=tuple)


_CATALOG: dict[Provider, ProviderInfo] = {
    info.provider: info
    for info in (
        ProviderInfo(
            Provider.OPENAI,
            "OpenAI",
            "gpt-4o-mini",
            ("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-4", "gpt-3.5-turbo"),
        ),
        ProviderInfo(
            Provider.AZURE,
            "Azure OpenAI",
            "gpt-35-turbo",
            ("gpt-35-turbo", "gpt-35-turbo-16k", "gpt-4", "gpt-4-32k", "gpt-4-turbo"),
        ),
        ProviderInfo(
            Provider.TOGETHER,
            "Together AI",
            "togethercomputer/llama-3-70b-instruct",
            (
                "togethercomputer/llama-3-70b-instruct",
                "togethercomputer/llama-3-8b-instruct",
                "mistralai/Mixtral-8x7B-Instruct-v0.1",
            ),
        ),
        ProviderInfo(
            Provider.ANTHROPIC,
            "Anthropic",
            "claude-3-haiku-20240307",
            (
                "claude-3-opus-20240229",
                "claude-3-sonnet-20240229",
                "claude-3-haiku-20240307",
                "claude-2.1",
            ),
        ),
        ProviderInfo(
            Provider.GEMINI,
            "Google Gemini",
            "gemini-1.5-pro",
            ("gemini-1.5-pro", "gemini-1.5-flash", "gemini-2.0-flash"),
        ),
        ProviderInfo(Provider.LOCALAI, "LocalAI", "llama3"),
        ProviderInfo(
            Provider.MISTRAL,
            "Mistral AI",
            "mistral-small-latest",
            ("mistral-small-latest", "mistral-medium-latest", "mistral-large-latest", "pixtral-12b-2409"),
        ),
        ProviderInfo(Provider.MOONSHOT, "Moonshot AI", "moonshot-v1-8k", ("moonshot-v1-8k", "moonshot-v1-32k")),
        ProviderInfo(Provider.DEEPSEEK, "DeepSeek", "deepseek-chat", ("deepseek-chat", "deepseek-coder")),
        ProviderInfo(Provider.HUGGINGFACE, "Hugging Face", "meta-llama/Llama-2-70b-chat-hf"),
        ProviderInfo(
            Provider.QWEN,
            "Alibaba Qwen",
            "qwen-turbo",
            ("qwen-turbo", "qwen-plus", "qwen-max", "qwen-vl-max"),
        ),
        ProviderInfo(Provider.BAIDU, "Baidu ERNIE", "ernie-bot-4"),
        ProviderInfo(Provider.XINGHUO, "iFlytek Spark", "generalv3.5"),
        ProviderInfo(Provider.MINIMAX, "MiniMax", "abab6-chat"),
        ProviderInfo(Provider.CUSTOM, "Custom API"),
    )
}


def provider_info(provider: Provider | str) -> ProviderInfo:
    """Return the catalog entry for a provider."""
    return _CATALOG[Provider.parse(provider)]


def list_providers() -> list[ProviderInfo]:
    """All catalog entries in display order."""
    return list(_CATALOG.values())


def default_model(provider: Provider | str) -> str:
    return provider_info(provider).default_model


def available_models(provider: Provider | str) -> list[str]:
    return list(provider_info(provider).models)
