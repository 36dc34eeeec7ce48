"""
Response Parser
===============

Extracts the answer text from each provider's non-streaming response body.

Two distinct outcomes are kept apart:
    - absence: the body parsed but holds no text at the expected path.
      ``extract_content`` returns ``""``; this is not an error.
    - malformed input: the body is not JSON at all.
      ``decode_response_body`` returns an error result of type ``decode``.

Answer locations:
    - OpenAI-compatible: ``choices[0].message.content``
    - Anthropic: ``content[*].text`` (text blocks)
    - Gemini: ``candidates[0].content.parts[*].text``
    - Qwen: ``output.text`` or ``output.choices[0].message.content``
    - Baidu: ``result``
    - MiniMax: OpenAI path, then ``reply``
    - Hugging Face: ``[0].generated_text``
"""

import json
from typing import Any, Callable

from chatbridge.llm.errors import DecodeError
from chatbridge.llm.models import NormalizedResponse
from chatbridge.providers.types import Provider
from chatbridge.utils.logger import get_logger

logger = get_logger(__name__)


def dig(data: Any, *path: str | int) -> Any:
    """
    Follow a path of dict keys and list indices.

    Returns None as soon as a step is missing or has the wrong type.
    """
    current = data
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or not -len(current) <= step < len(current):
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
        if current is None:
            return None
    return current


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _joined_text_parts(parts: Any) -> str:
    """Concatenate ``text`` of a list of ``{text: ...}`` items."""
    if isinstance(parts, str):
        return parts
    if not isinstance(parts, list):
        return ""
    return "".join(_text(part.get("text")) for part in parts if isinstance(part, dict))


def _openai_content(data: Any) -> str:
    return _text(dig(data, "choices", 0, "message", "content")) or _text(dig(data, "choices", 0, "text"))


def _anthropic_content(data: Any) -> str:
    blocks = dig(data, "content")
    if isinstance(blocks, str):
        return blocks
    if not isinstance(blocks, list):
        return ""
    return "".join(
        _text(block.get("text"))
        for block in blocks
        if isinstance(block, dict) and block.get("type", "text") == "text"
    )


def _gemini_content(data: Any) -> str:
    return _joined_text_parts(dig(data, "candidates", 0, "content", "parts"))


def _qwen_content(data: Any) -> str:
    return _text(dig(data, "output", "text")) or _joined_text_parts(
        dig(data, "output", "choices", 0, "message", "content")
    )


def _baidu_content(data: Any) -> str:
    return _text(dig(data, "result"))


def _minimax_content(data: Any) -> str:
    return _openai_content(data) or _text(dig(data, "reply"))


def _huggingface_content(data: Any) -> str:
    return _text(dig(data, 0, "generated_text")) or _text(dig(data, "generated_text"))


def _fallback_content(data: Any) -> str:
    return (
        _openai_content(data)
        or _text(dig(data, "message"))
        or _text(dig(data, "content"))
        or _text(dig(data, "text"))
    )


ContentExtractor = Callable[[Any], str]

_EXTRACTORS: dict[Provider, ContentExtractor] = {
    Provider.OPENAI: _openai_content,
    Provider.AZURE: _openai_content,
    Provider.TOGETHER: _openai_content,
    Provider.LOCALAI: _openai_content,
    Provider.MISTRAL: _openai_content,
    Provider.MOONSHOT: _openai_content,
    Provider.DEEPSEEK: _openai_content,
    Provider.XINGHUO: _openai_content,
    Provider.ANTHROPIC: _anthropic_content,
    Provider.GEMINI: _gemini_content,
    Provider.QWEN: _qwen_content,
    Provider.BAIDU: _baidu_content,
    Provider.MINIMAX: _minimax_content,
    Provider.HUGGINGFACE: _huggingface_content,
    Provider.CUSTOM: _fallback_content,
}


def extract_content(data: Any, provider: Provider | str) -> str:
    """
    Return the answer text of a parsed response body.

    Total: never raises, returns ``""`` when the expected path is absent.
    """
    extractor = _EXTRACTORS.get(Provider.parse(provider), _fallback_content)
    return extractor(data)


def parse_response(data: Any, provider: Provider | str) -> NormalizedResponse:
    """Normalize a parsed 2xx response body."""
    return NormalizedResponse(content=extract_content(data, provider))


def load_json(text: str) -> Any:
    """
    Parse a response body.

    Raises:
        DecodeError: If the body is not valid JSON.
    """
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise DecodeError(f"Response is not valid JSON: {e}", raw=text) from e


def decode_response_body(text: str, provider: Provider | str) -> NormalizedResponse:
    """
    Normalize a raw 2xx response body.

    Malformed JSON becomes an error result of type ``decode`` instead of an
    empty answer.
    """
    try:
        data = load_json(text)
    except DecodeError as e:
        logger.warning("Could not decode provider response", provider=str(provider), error=str(e))
        return NormalizedResponse.from_error(e)
    return parse_response(data, provider)
