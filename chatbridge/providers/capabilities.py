"""
Provider Capabilities
=====================

Static capability flags per provider: streaming output, multimodal
(image + text) input, and high-resolution image analysis.
"""

from dataclasses import dataclass

from chatbridge.providers.types import Provider


@dataclass(frozen=True)
class Capabilities:
    """What a provider's API accepts."""

    streaming: bool = False
    multimodal: bool = False
    high_res_images: bool = False


_NONE = Capabilities()

_CAPABILITIES: dict[Provider, Capabilities] = {
    Provider.OPENAI: Capabilities(streaming=True, multimodal=True, high_res_images=True),
    Provider.AZURE: Capabilities(streaming=True, multimodal=True),
    Provider.ANTHROPIC: Capabilities(streaming=True, multimodal=True, high_res_images=True),
    Provider.GEMINI: Capabilities(streaming=True, multimodal=True, high_res_images=True),
    Provider.MISTRAL: Capabilities(streaming=True, multimodal=True),
    Provider.MOONSHOT: Capabilities(streaming=True),
    Provider.DEEPSEEK: Capabilities(streaming=True, multimodal=True),
    Provider.TOGETHER: Capabilities(streaming=True),
    Provider.LOCALAI: Capabilities(streaming=True),
    Provider.QWEN: Capabilities(multimodal=True),
    Provider.BAIDU: Capabilities(multimodal=True),
    Provider.MINIMAX: Capabilities(multimodal=True),
    Provider.XINGHUO: _NONE,
    Provider.HUGGINGFACE: _NONE,
    Provider.CUSTOM: _NONE,
}


def capabilities_of(provider: Provider | str) -> Capabilities:
    """
    Return the capability flags for a provider.

    Total over the enumeration; ``custom`` and unknown tags get every
    flag set to False.
    """
    return _CAPABILITIES.get(Provider.parse(provider), _NONE)


def supports_streaming(provider: Provider | str) -> bool:
    return capabilities_of(provider).streaming


def supports_multimodal(provider: Provider | str) -> bool:
    return capabilities_of(provider).multimodal


def supports_high_res_images(provider: Provider | str) -> bool:
    return capabilities_of(provider).high_res_images
