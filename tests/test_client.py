"""
Tests for Chat Client
=====================

End-to-end tests of the request orchestrator over a fake HTTP session:
- Configuration errors detected before any I/O
- Successful requests: URL, headers and body per provider
- Cache hits, misses and streaming bypass
- Timeouts, network failures, non-2xx statuses and malformed bodies
- Image requests
- Streaming: cumulative updates, fallback for non-streaming providers,
  interrupted streams and in-stream errors
- Session ownership
"""

import aiohttp
import pytest
from unittest.mock import MagicMock, patch

from chatbridge.llm.cache import cache_key
from chatbridge.llm.client import ChatClient, send_request
from chatbridge.llm.models import Message, ProviderConfig, RequestOptions
from tests.conftest import FakeResponse, FakeSession, openai_chunk, openai_completion, png_bytes, sse


def _client(session: FakeSession, settings, cache=None) -> ChatClient:
    return ChatClient(cache=cache, session=session, settings=settings)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfigurationErrors:
    @pytest.mark.asyncio
    async def test_missing_api_key(self, settings, conversation):
        session = FakeSession()
        config = ProviderConfig.for_provider("openai")

        result = await _client(session, settings).send_request(conversation, config)

        assert result.error_type == "configuration"
        assert "api_key" in result.error
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_custom_provider_needs_endpoint_and_model(self, settings, conversation):
        session = FakeSession()
        config = ProviderConfig.for_provider("custom", api_key="k")

        result = await _client(session, settings).send_request(conversation, config)

        assert result.error == "Incomplete configuration: missing endpoint, model"
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_empty_conversation(self, settings, openai_config):
        session = FakeSession()
        result = await _client(session, settings).send_request([], openai_config)
        assert result.error_type == "configuration"
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_unfilled_endpoint_placeholder(self, settings, conversation):
        session = FakeSession()
        config = ProviderConfig.for_provider("azure", api_key="k")

        result = await _client(session, settings).send_request(conversation, config)

        assert result.error_type == "configuration"
        assert "{resource-name}" in result.error
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_filled_azure_endpoint_accepted(self, settings, conversation):
        session = FakeSession(FakeResponse(200, openai_completion("ok")))
        config = ProviderConfig.for_provider(
            "azure",
            api_key="k",
            endpoint="https://res.openai.azure.com/openai/deployments/{deployment-id}"
            "/chat/completions?api-version={api-version}",
        )

        result = await _client(session, settings).send_request(conversation, config)

        assert result.content == "ok"
        assert session.last_request["headers"]["api-key"] == "k"

    @pytest.mark.asyncio
    async def test_stream_validates_too(self, settings, conversation):
        session = FakeSession()
        updates = []
        config = ProviderConfig.for_provider("openai")

        result = await _client(session, settings).send_stream_request(conversation, config, updates.append)

        assert result.error_type == "configuration"
        assert updates == []
        assert session.requests == []


# ---------------------------------------------------------------------------
# Successful requests
# ---------------------------------------------------------------------------


class TestSendRequest:
    @pytest.mark.asyncio
    async def test_openai_success(self, settings, conversation, openai_config):
        response = FakeResponse(200, openai_completion("4"))
        session = FakeSession(response)

        result = await _client(session, settings).send_request(conversation, openai_config)

        assert result.ok
        assert result.content == "4"
        request = session.last_request
        assert request["url"] == "https://api.openai.com/v1/chat/completions"
        assert request["headers"]["Authorization"] == "Bearer sk-test-key-123"
        assert request["json"]["stream"] is False
        response.release.assert_called_once()

    @pytest.mark.asyncio
    async def test_anthropic_success(self, settings, conversation, anthropic_config):
        session = FakeSession(FakeResponse(200, {"content": [{"type": "text", "text": "Four."}]}))

        result = await _client(session, settings).send_request(conversation, anthropic_config)

        assert result.content == "Four."
        headers = session.last_request["headers"]
        assert headers["x-api-key"] == "sk-ant-test"
        assert "anthropic-version" in headers
        assert session.last_request["json"]["system"] == "You are terse."

    @pytest.mark.asyncio
    async def test_gemini_key_in_query(self, settings, conversation, gemini_config):
        body = {"candidates": [{"content": {"parts": [{"text": "4"}]}}]}
        session = FakeSession(FakeResponse(200, body))

        result = await _client(session, settings).send_request(conversation, gemini_config)

        assert result.content == "4"
        assert session.last_request["url"].endswith(":generateContent?key=AIza-test")
        assert "Authorization" not in session.last_request["headers"]

    @pytest.mark.asyncio
    async def test_empty_answer_is_not_an_error(self, settings, conversation, openai_config):
        session = FakeSession(FakeResponse(200, {"choices": []}))
        result = await _client(session, settings).send_request(conversation, openai_config)
        assert result.ok
        assert result.content == ""

    @pytest.mark.asyncio
    async def test_request_count(self, settings, conversation, openai_config):
        session = FakeSession(FakeResponse(200, openai_completion("a")), FakeResponse(200, openai_completion("b")))
        client = _client(session, settings)
        await client.send_request(conversation, openai_config)
        await client.send_request(conversation, openai_config)
        assert client.request_count == 2


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_identical_request_served_from_cache(self, settings, cache, conversation, openai_config):
        session = FakeSession(FakeResponse(200, openai_completion("4")))
        client = _client(session, settings, cache)

        first = await client.send_request(conversation, openai_config)
        # Same turns, new ids and timestamps
        again = [Message.create(m.role, m.content) for m in conversation]
        second = await client.send_request(again, openai_config)

        assert first.content == second.content == "4"
        assert len(session.requests) == 1

    @pytest.mark.asyncio
    async def test_cache_disabled_per_call(self, settings, cache, conversation, openai_config):
        session = FakeSession(FakeResponse(200, openai_completion("a")), FakeResponse(200, openai_completion("b")))
        client = _client(session, settings, cache)
        options = RequestOptions(enable_cache=False)

        await client.send_request(conversation, openai_config, options)
        result = await client.send_request(conversation, openai_config, options)

        assert result.content == "b"
        assert len(session.requests) == 2

    @pytest.mark.asyncio
    async def test_errors_not_cached(self, settings, cache, conversation, openai_config):
        session = FakeSession(FakeResponse(500, "oops"), FakeResponse(200, openai_completion("ok")))
        client = _client(session, settings, cache)

        first = await client.send_request(conversation, openai_config)
        second = await client.send_request(conversation, openai_config)

        assert first.error_type == "provider"
        assert second.content == "ok"

    @pytest.mark.asyncio
    async def test_streaming_never_reads_cache(self, settings, cache, conversation, openai_config):
        key = cache_key(conversation, openai_config.provider, openai_config.model, openai_config.endpoint)
        cache.set(key, "cached answer")
        session = FakeSession(FakeResponse(200, chunks=[sse(openai_chunk("live"), "[DONE]")]))

        result = await _client(session, settings, cache).send_stream_request(conversation, openai_config)

        assert result.content == "live"
        assert len(session.requests) == 1
        assert cache.get(key) == "cached answer"

    @pytest.mark.asyncio
    async def test_streaming_result_cached_when_requested(self, settings, cache, conversation, openai_config):
        session = FakeSession(FakeResponse(200, chunks=[sse(openai_chunk("live"), "[DONE]")]))
        options = RequestOptions(cache_streaming=True)

        await _client(session, settings, cache).send_stream_request(conversation, openai_config, options=options)

        key = cache_key(conversation, openai_config.provider, openai_config.model, openai_config.endpoint)
        assert cache.get(key) == "live"


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_timeout_is_transport_error(self, settings, conversation, openai_config):
        session = FakeSession(FakeResponse(200, openai_completion("late")), delay=1.0)

        result = await _client(session, settings).send_request(
            conversation, openai_config, RequestOptions(timeout=0.05)
        )

        assert result.error_type == "transport"
        assert "timed out" in result.error
        assert result.content == ""

    @pytest.mark.asyncio
    async def test_zero_timeout_is_not_replaced_by_default(self, settings, conversation, openai_config):
        session = FakeSession(FakeResponse(200, openai_completion("late")), delay=0.2)

        result = await _client(session, settings).send_request(
            conversation, openai_config, RequestOptions(timeout=0)
        )

        assert result.error_type == "transport"
        assert "timed out after 0s" in result.error

    @pytest.mark.asyncio
    async def test_network_error_is_transport_error(self, settings, conversation, openai_config):
        session = FakeSession(aiohttp.ClientConnectionError("connection refused"))
        result = await _client(session, settings).send_request(conversation, openai_config)
        assert result.error_type == "transport"
        assert "connection refused" in result.error

    @pytest.mark.asyncio
    async def test_non_2xx_is_provider_error(self, settings, conversation, openai_config):
        response = FakeResponse(401, '{"error": {"message": "Invalid API key"}}')
        session = FakeSession(response)

        result = await _client(session, settings).send_request(conversation, openai_config)

        assert result.error_type == "provider"
        assert result.error.startswith("401 ")
        assert "Invalid API key" in result.error
        response.release.assert_called_once()

    @pytest.mark.asyncio
    async def test_malformed_body_is_decode_error(self, settings, conversation, openai_config):
        session = FakeSession(FakeResponse(200, "<html>gateway</html>"))
        result = await _client(session, settings).send_request(conversation, openai_config)
        assert result.error_type == "decode"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, settings, conversation, openai_config):
        session = FakeSession(RuntimeError("boom"))
        result = await _client(session, settings).send_request(conversation, openai_config)
        assert result.error == "boom"
        assert result.error_type == "unknown"


# ---------------------------------------------------------------------------
# Image requests
# ---------------------------------------------------------------------------


class TestImageRequests:
    @pytest.mark.asyncio
    async def test_image_sent_on_last_message(self, settings, conversation, openai_config):
        session = FakeSession(FakeResponse(200, openai_completion("A red square")))

        result = await _client(session, settings).send_image_request(conversation, png_bytes(), openai_config)

        assert result.content == "A red square"
        last = session.last_request["json"]["messages"][-1]
        assert last["content"][1]["image_url"]["url"].startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_qwen_uses_multimodal_route(self, settings, qwen_config):
        body = {"output": {"choices": [{"message": {"content": [{"text": "A square"}]}}]}}
        session = FakeSession(FakeResponse(200, body))

        result = await _client(session, settings).send_image_request(
            [Message.create("user", "What is this?")], png_bytes(), qwen_config
        )

        assert result.content == "A square"
        assert "multimodal-generation" in session.last_request["url"]

    @pytest.mark.asyncio
    async def test_non_multimodal_provider_rejected_before_io(self, settings, conversation):
        session = FakeSession()
        config = ProviderConfig.for_provider("xinghuo", api_key="k")

        result = await _client(session, settings).send_image_request(conversation, png_bytes(), config)

        assert result.error_type == "configuration"
        assert "multimodal" in result.error
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_bad_image_rejected_before_io(self, settings, conversation, openai_config):
        session = FakeSession()
        result = await _client(session, settings).send_image_request(conversation, b"not an image", openai_config)
        assert result.error_type == "media"
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_image_requests_not_cached(self, settings, cache, conversation, openai_config):
        session = FakeSession(
            FakeResponse(200, openai_completion("first")),
            FakeResponse(200, openai_completion("second")),
        )
        client = _client(session, settings, cache)

        await client.send_image_request(conversation, png_bytes(), openai_config)
        result = await client.send_image_request(conversation, png_bytes(10, 10), openai_config)

        assert result.content == "second"
        assert len(session.requests) == 2


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


class TestStreaming:
    @pytest.mark.asyncio
    async def test_cumulative_updates(self, settings, conversation, openai_config):
        body = sse(openai_chunk("Two"), openai_chunk(" plus"), openai_chunk(" two"), "[DONE]")
        chunks = [body[i:i + 5] for i in range(0, len(body), 5)]
        session = FakeSession(FakeResponse(200, chunks=chunks))
        updates = []

        result = await _client(session, settings).send_stream_request(conversation, openai_config, updates.append)

        assert updates == ["Two", "Two plus", "Two plus two"]
        assert result.content == "Two plus two"
        assert session.last_request["json"]["stream"] is True
        assert session.last_request["headers"]["Accept"] == "text/event-stream"

    @pytest.mark.asyncio
    async def test_on_update_from_options(self, settings, conversation, openai_config):
        session = FakeSession(FakeResponse(200, chunks=[sse(openai_chunk("Hi"), "[DONE]")]))
        updates = []

        await _client(session, settings).send_stream_request(
            conversation, openai_config, options=RequestOptions(on_update=updates.append)
        )

        assert updates == ["Hi"]

    @pytest.mark.asyncio
    async def test_gemini_stream_route(self, settings, conversation, gemini_config):
        frame = {"candidates": [{"content": {"parts": [{"text": "4"}]}}]}
        session = FakeSession(FakeResponse(200, chunks=[sse(frame)]))

        result = await _client(session, settings).send_stream_request(conversation, gemini_config)

        assert result.content == "4"
        assert ":streamGenerateContent?alt=sse&key=AIza-test" in session.last_request["url"]

    @pytest.mark.asyncio
    async def test_fallback_for_non_streaming_provider(self, settings, conversation, qwen_config):
        session = FakeSession(FakeResponse(200, {"output": {"text": "Four"}}))
        on_update = MagicMock()

        result = await _client(session, settings).send_stream_request(conversation, qwen_config, on_update)

        assert result.content == "Four"
        on_update.assert_called_once_with("Four")
        assert "incremental_output" not in session.last_request["json"]["parameters"]

    @pytest.mark.asyncio
    async def test_fallback_never_reads_cache(self, settings, cache, conversation, qwen_config):
        key = cache_key(conversation, qwen_config.provider, qwen_config.model, qwen_config.endpoint)
        cache.set(key, "stale answer")
        session = FakeSession(FakeResponse(200, {"output": {"text": "fresh answer"}}))
        updates = []

        result = await _client(session, settings, cache).send_stream_request(
            conversation, qwen_config, updates.append, RequestOptions(cache_streaming=True)
        )

        assert result.content == "fresh answer"
        assert updates == ["fresh answer"]
        assert len(session.requests) == 1
        assert cache.get(key) == "fresh answer"

    @pytest.mark.asyncio
    async def test_fallback_without_cache_streaming_leaves_cache_alone(
        self, settings, cache, conversation, qwen_config
    ):
        session = FakeSession(FakeResponse(200, {"output": {"text": "fresh answer"}}))

        await _client(session, settings, cache).send_stream_request(conversation, qwen_config)

        key = cache_key(conversation, qwen_config.provider, qwen_config.model, qwen_config.endpoint)
        assert cache.get(key) is None

    @pytest.mark.asyncio
    async def test_zero_stream_timeout(self, settings, conversation, openai_config):
        session = FakeSession(FakeResponse(200, chunks=[sse(openai_chunk("late"), "[DONE]")]), delay=0.2)

        result = await _client(session, settings).send_stream_request(
            conversation, openai_config, options=RequestOptions(timeout=0)
        )

        assert result.error_type == "transport"

    @pytest.mark.asyncio
    async def test_non_2xx_stream(self, settings, conversation, openai_config):
        response = FakeResponse(429, "rate limited")
        session = FakeSession(response)
        updates = []

        result = await _client(session, settings).send_stream_request(conversation, openai_config, updates.append)

        assert result.error_type == "provider"
        assert result.error == "429 rate limited"
        assert updates == []
        response.release.assert_called_once()

    @pytest.mark.asyncio
    async def test_interrupted_stream(self, settings, conversation, openai_config):
        response = FakeResponse(
            200,
            chunks=[sse(openai_chunk("partial"))],
            stream_error=aiohttp.ClientPayloadError("connection reset"),
        )
        session = FakeSession(response)
        updates = []

        result = await _client(session, settings).send_stream_request(conversation, openai_config, updates.append)

        assert updates == ["partial"]
        assert result.error_type == "transport"
        assert "connection reset" in result.error
        response.release.assert_called_once()

    @pytest.mark.asyncio
    async def test_error_event_in_stream(self, settings, conversation, anthropic_config):
        body = b'event: error\ndata: {"type":"error","error":{"message":"Overloaded"}}\n\n'
        session = FakeSession(FakeResponse(200, chunks=[body]))

        result = await _client(session, settings).send_stream_request(conversation, anthropic_config)

        assert result.error_type == "provider"
        assert result.error == "Overloaded"

    @pytest.mark.asyncio
    async def test_stream_header_timeout(self, settings, conversation, openai_config):
        session = FakeSession(FakeResponse(200, chunks=[]), delay=1.0)

        result = await _client(session, settings).send_stream_request(
            conversation, openai_config, options=RequestOptions(timeout=0.05)
        )

        assert result.error_type == "transport"

    @pytest.mark.asyncio
    async def test_callback_exception_contained(self, settings, conversation, openai_config):
        session = FakeSession(FakeResponse(200, chunks=[sse(openai_chunk("x"))]))

        def broken(_text):
            raise ValueError("render failed")

        result = await _client(session, settings).send_stream_request(conversation, openai_config, broken)

        assert result.error == "render failed"


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_borrowed_session_left_open(self, settings):
        session = FakeSession()
        async with _client(session, settings):
            pass
        session.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_owned_session_closed(self, settings):
        client = ChatClient(settings=settings)
        session = await client._get_session()
        assert isinstance(session, aiohttp.ClientSession)
        await client.close()
        assert session.closed

    @pytest.mark.asyncio
    async def test_module_level_send_request(self, settings, conversation, openai_config):
        session = FakeSession(FakeResponse(200, openai_completion("4")))
        with patch("chatbridge.llm.client.aiohttp.ClientSession", return_value=session):
            result = await send_request(conversation, openai_config)
        assert result.content == "4"
        session.close.assert_awaited_once()
