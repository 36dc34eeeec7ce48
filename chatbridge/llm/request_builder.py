"""
Request Builder
===============

Translates a provider-agnostic conversation into each provider's JSON
request body.

Dispatch is table driven: ``_TEXT_BUILDERS`` and ``_IMAGE_BUILDERS`` map a
``Provider`` to a small builder function. Providers without an entry use
the OpenAI-compatible chat completions shape.

Body shapes:
    - OpenAI-compatible: ``{model, messages, temperature, max_tokens, stream}``
    - Anthropic: ``{model, system?, messages, max_tokens, temperature, stream}``
    - Gemini: ``{contents[{role, parts}], systemInstruction?, generationConfig}``
    - Qwen (DashScope): ``{model, input{messages}, parameters{...}}``
    - Baidu (ERNIE): ``{messages, system?, temperature, top_p, max_output_tokens}``

Images attach only to the last message of the conversation; every earlier
turn is sent as plain text.
"""

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from chatbridge.llm.errors import ConfigurationError
from chatbridge.llm.media import split_data_uri
from chatbridge.llm.models import Message, ProviderConfig, Role
from chatbridge.providers.types import Provider

JSONDict = dict[str, Any]


@dataclass(frozen=True)
class GenerationDefaults:
    """Sampling defaults applied when the configuration leaves them unset."""

    temperature: float = 0.7
    max_tokens: int = 2048


# One entry per provider so a provider can be tuned without touching the others
GENERATION_DEFAULTS: dict[Provider, GenerationDefaults] = {
    provider: GenerationDefaults() for provider in Provider
}

BAIDU_TOP_P = 0.8


@dataclass(frozen=True)
class _Image:
    """Decoded image handed to the image builders."""

    data_uri: str
    mime_type: str
    data: str


def _generation_params(config: ProviderConfig) -> tuple[float, int]:
    """Return ``(temperature, max_tokens)`` with provider defaults applied.

    A configured temperature of 0.0 is kept.
    """
    defaults = GENERATION_DEFAULTS.get(config.provider, GenerationDefaults())
    temperature = defaults.temperature if config.temperature is None else config.temperature
    max_tokens = config.max_tokens or defaults.max_tokens
    return temperature, max_tokens


def _role(message: Message) -> str:
    return Role(message.role).value


def _text(message: Message) -> str:
    return message.content or ""


def _plain_messages(messages: Sequence[Message]) -> list[JSONDict]:
    return [{"role": _role(m), "content": _text(m)} for m in messages]


def _split_system(messages: Sequence[Message]) -> tuple[str, list[Message]]:
    """Separate system turns (joined) from the dialogue turns."""
    system = "\n\n".join(_text(m) for m in messages if _role(m) == Role.SYSTEM.value and _text(m))
    dialogue = [m for m in messages if _role(m) != Role.SYSTEM.value]
    return system, dialogue


def _user_or_assistant(message: Message) -> str:
    return Role.ASSISTANT.value if _role(message) == Role.ASSISTANT.value else Role.USER.value


def _gemini_role(message: Message) -> str:
    return "user" if _role(message) == Role.USER.value else "model"


def _gemini_contents(messages: Sequence[Message]) -> list[JSONDict]:
    """Group consecutive same-role turns into one ``parts`` array."""
    contents: list[JSONDict] = []
    for message in messages:
        role = _gemini_role(message)
        if contents and contents[-1]["role"] == role:
            contents[-1]["parts"].append({"text": _text(message)})
        else:
            contents.append({"role": role, "parts": [{"text": _text(message)}]})
    return contents


def _has_text(message: Message) -> bool:
    return bool(_text(message).strip())


# ---------------------------------------------------------------------------
# Text builders
# ---------------------------------------------------------------------------


def _build_openai(messages: Sequence[Message], config: ProviderConfig, stream: bool) -> JSONDict:
    temperature, max_tokens = _generation_params(config)
    return {
        "model": config.model,
        "messages": _plain_messages(messages),
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": stream,
    }


def _build_anthropic(messages: Sequence[Message], config: ProviderConfig, stream: bool) -> JSONDict:
    temperature, max_tokens = _generation_params(config)
    system, dialogue = _split_system(messages)
    body: JSONDict = {
        "model": config.model,
        "messages": [{"role": _user_or_assistant(m), "content": _text(m)} for m in dialogue],
        "max_tokens": max_tokens,
        "temperature": temperature,
        "stream": stream,
    }
    if system:
        body["system"] = system
    return body


def _build_gemini(messages: Sequence[Message], config: ProviderConfig, stream: bool) -> JSONDict:
    # Gemini streams via a different URL, not a body flag
    temperature, max_tokens = _generation_params(config)
    system, dialogue = _split_system(messages)
    body: JSONDict = {
        "contents": _gemini_contents(dialogue),
        "generationConfig": {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
        },
    }
    if system:
        body["systemInstruction"] = {"parts": [{"text": system}]}
    return body


def _build_qwen(messages: Sequence[Message], config: ProviderConfig, stream: bool) -> JSONDict:
    temperature, max_tokens = _generation_params(config)
    parameters: JSONDict = {
        "temperature": temperature,
        "max_tokens": max_tokens,
        "result_format": "message",
    }
    if stream:
        parameters["incremental_output"] = True
    return {
        "model": config.model,
        "input": {"messages": _plain_messages(messages)},
        "parameters": parameters,
    }


def _build_baidu(messages: Sequence[Message], config: ProviderConfig, stream: bool) -> JSONDict:
    temperature, max_tokens = _generation_params(config)
    system, dialogue = _split_system(messages)
    body: JSONDict = {
        "messages": [{"role": _user_or_assistant(m), "content": _text(m)} for m in dialogue],
        "temperature": temperature,
        "top_p": BAIDU_TOP_P,
        "max_output_tokens": max_tokens,
        "stream": stream,
    }
    if system:
        body["system"] = system
    return body


TextBuilder = Callable[[Sequence[Message], ProviderConfig, bool], JSONDict]

_TEXT_BUILDERS: dict[Provider, TextBuilder] = {
    Provider.ANTHROPIC: _build_anthropic,
    Provider.GEMINI: _build_gemini,
    Provider.QWEN: _build_qwen,
    Provider.BAIDU: _build_baidu,
}


def build_request_body(messages: Sequence[Message], config: ProviderConfig, stream: bool = False) -> JSONDict:
    """
    Build the JSON body for a text request.

    Args:
        messages: Conversation in order.
        config: Provider configuration.
        stream: Ask the provider to stream its answer.

    Returns:
        Provider-specific JSON-serializable dict.

    Raises:
        ConfigurationError: If the conversation is empty.
    """
    if not messages:
        raise ConfigurationError("Conversation is empty")
    builder = _TEXT_BUILDERS.get(config.provider, _build_openai)
    return builder(messages, config, stream)


# ---------------------------------------------------------------------------
# Image builders
# ---------------------------------------------------------------------------


def _build_openai_image(history: Sequence[Message], last: Message, image: _Image, config: ProviderConfig) -> JSONDict:
    temperature, max_tokens = _generation_params(config)
    content: list[JSONDict] = []
    if _has_text(last):
        content.append({"type": "text", "text": _text(last)})
    content.append({
        "type": "image_url",
        "image_url": {
            "url": image.data_uri,
            "detail": "high" if config.capabilities.high_res_images else "auto",
        },
    })
    return {
        "model": config.model,
        "messages": [*_plain_messages(history), {"role": _role(last), "content": content}],
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": False,
    }


def _build_mistral_image(history: Sequence[Message], last: Message, image: _Image, config: ProviderConfig) -> JSONDict:
    temperature, max_tokens = _generation_params(config)
    content: list[JSONDict] = []
    if _has_text(last):
        content.append({"type": "text", "text": _text(last)})
    content.append({"type": "image_url", "image_url": image.data_uri})
    return {
        "model": config.model,
        "messages": [*_plain_messages(history), {"role": _role(last), "content": content}],
        "temperature": temperature,
        "max_tokens": max_tokens,
    }


def _build_anthropic_image(history: Sequence[Message], last: Message, image: _Image, config: ProviderConfig) -> JSONDict:
    temperature, max_tokens = _generation_params(config)
    system, dialogue = _split_system(history)
    content: list[JSONDict] = [{
        "type": "image",
        "source": {
            "type": "base64",
            "media_type": image.mime_type,
            "data": image.data,
        },
    }]
    if _has_text(last):
        content.append({"type": "text", "text": _text(last)})
    body: JSONDict = {
        "model": config.model,
        "messages": [
            *({"role": _user_or_assistant(m), "content": _text(m)} for m in dialogue),
            {"role": _user_or_assistant(last), "content": content},
        ],
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if system:
        body["system"] = system
    return body


def _build_gemini_image(history: Sequence[Message], last: Message, image: _Image, config: ProviderConfig) -> JSONDict:
    temperature, max_tokens = _generation_params(config)
    system, dialogue = _split_system(history)
    parts: list[JSONDict] = []
    if _has_text(last):
        parts.append({"text": _text(last)})
    parts.append({"inline_data": {"mime_type": image.mime_type, "data": image.data}})

    body: JSONDict = {
        "contents": [*_gemini_contents(dialogue), {"role": _gemini_role(last), "parts": parts}],
        "generationConfig": {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
        },
    }
    if system:
        body["systemInstruction"] = {"parts": [{"text": system}]}
    return body


def _build_qwen_image(history: Sequence[Message], last: Message, image: _Image, config: ProviderConfig) -> JSONDict:
    temperature, max_tokens = _generation_params(config)
    content: list[JSONDict] = []
    if _has_text(last):
        content.append({"text": _text(last)})
    content.append({"image": image.data_uri})

    parameters: JSONDict = {
        "temperature": temperature,
        "max_tokens": max_tokens,
        "result_format": "message",
    }
    if config.capabilities.high_res_images:
        parameters["vl_high_resolution_images"] = True
    return {
        "model": config.model,
        "input": {
            "messages": [
                *({"role": _role(m), "content": [{"text": _text(m)}]} for m in history),
                {"role": _role(last), "content": content},
            ]
        },
        "parameters": parameters,
    }


ImageBuilder = Callable[[Sequence[Message], Message, _Image, ProviderConfig], JSONDict]

_IMAGE_BUILDERS: dict[Provider, ImageBuilder] = {
    Provider.ANTHROPIC: _build_anthropic_image,
    Provider.GEMINI: _build_gemini_image,
    Provider.MISTRAL: _build_mistral_image,
    Provider.QWEN: _build_qwen_image,
}


def build_image_request_body(
    messages: Sequence[Message],
    image: str,
    config: ProviderConfig,
) -> JSONDict:
    """
    Build the JSON body for a request carrying one image.

    The image belongs to the last message; earlier turns stay plain text.

    Args:
        messages: Conversation in order; the last entry is the one the
            image was sent with.
        image: ``data:<mime>;base64,<payload>`` URI.
        config: Provider configuration.

    Returns:
        Provider-specific JSON-serializable dict.

    Raises:
        ConfigurationError: If the conversation is empty or the provider
            does not accept multimodal input.
        MediaError: If ``image`` is not a valid base64 data URI.
    """
    if not messages:
        raise ConfigurationError("Conversation is empty")
    if not config.capabilities.multimodal:
        raise ConfigurationError(f"{config.provider.value} does not support multimodal input")

    mime_type, data = split_data_uri(image)
    builder = _IMAGE_BUILDERS.get(config.provider, _build_openai_image)
    return builder(messages[:-1], messages[-1], _Image(image, mime_type, data), config)
