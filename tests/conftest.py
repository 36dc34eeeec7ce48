"""
Shared Test Fixtures
====================

Pytest fixtures used across all test modules.
Provides a fake aiohttp session so the client runs end to end without
network access.
"""

import asyncio
import io
import json
from typing import Any, Iterable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from chatbridge.config import ClientSettings
from chatbridge.llm.cache import InMemoryStore, ResponseCache
from chatbridge.llm.models import Message, ProviderConfig


# ---------------------------------------------------------------------------
# Fake HTTP layer
# ---------------------------------------------------------------------------


class FakeStreamReader:
    """Stands in for ``aiohttp.StreamReader``: yields preset chunks."""

    def __init__(self, chunks: Iterable[bytes] = (), error: Optional[BaseException] = None) -> None:
        self._chunks = list(chunks)
        self._error = error

    async def iter_any(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error


class FakeResponse:
    """Stands in for ``aiohttp.ClientResponse``."""

    def __init__(
        self,
        status: int = 200,
        body: Any = "",
        chunks: Iterable[bytes] = (),
        stream_error: Optional[BaseException] = None,
    ) -> None:
        self.status = status
        text = body if isinstance(body, str) else json.dumps(body)
        self.text = AsyncMock(return_value=text)
        self.content = FakeStreamReader(chunks, stream_error)
        self.release = MagicMock()


class FakeSession:
    """
    Stands in for ``aiohttp.ClientSession``.

    Each ``post`` pops the next queued response (or raises the queued
    exception) and records the request.
    """

    def __init__(self, *responses: Any, delay: float = 0.0) -> None:
        self._responses = list(responses)
        self.delay = delay
        self.requests: list[dict[str, Any]] = []
        self.closed = False
        self.close = AsyncMock()

    async def post(self, url: str, json: Any = None, headers: Optional[dict[str, str]] = None) -> FakeResponse:
        self.requests.append({"url": url, "json": json, "headers": headers or {}})
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self._responses.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    @property
    def last_request(self) -> dict[str, Any]:
        return self.requests[-1]


def sse(*payloads: Any) -> bytes:
    """Encode payloads as a server-sent events body."""
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode("utf-8")


def openai_chunk(text: str) -> dict[str, Any]:
    return {"choices": [{"delta": {"content": text}}]}


def openai_completion(text: str) -> dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def png_bytes(width: int = 64, height: int = 32, mode: str = "RGB") -> bytes:
    """Encode a solid-color image as PNG."""
    color = (200, 30, 30, 255) if mode == "RGBA" else (200, 30, 30)
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> ClientSettings:
    """Client settings with short timeouts."""
    return ClientSettings(text_timeout=5, multimodal_timeout=5, stream_timeout=5)


@pytest.fixture
def cache() -> ResponseCache:
    """Response cache over an isolated in-memory store."""
    return ResponseCache(InMemoryStore())


@pytest.fixture
def conversation() -> list[Message]:
    """A short conversation with a system prompt."""
    return [
        Message.create("system", "You are terse."),
        Message.create("user", "Hi"),
        Message.create("assistant", "Hello."),
        Message.create("user", "What is 2+2?"),
    ]


@pytest.fixture
def openai_config() -> ProviderConfig:
    return ProviderConfig.for_provider("openai", api_key="sk-test-key-123")


@pytest.fixture
def anthropic_config() -> ProviderConfig:
    return ProviderConfig.for_provider("anthropic", api_key="sk-ant-test")


@pytest.fixture
def gemini_config() -> ProviderConfig:
    return ProviderConfig.for_provider("gemini", api_key="AIza-test")


@pytest.fixture
def qwen_config() -> ProviderConfig:
    return ProviderConfig.for_provider("qwen", api_key="sk-qwen-test")
