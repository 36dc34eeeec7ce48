"""
Chat Client
===========

Request orchestrator: one uniform entry point for every provider.

Each call:
    1. validates the configuration (no I/O on failure),
    2. checks the response cache (non-streaming calls only),
    3. builds the provider body and auth headers,
    4. POSTs racing a timeout; the timeout cancels the pending request,
    5. parses the answer (or drives the streaming decoder),
    6. writes the answer through to the cache.

Nothing raises past this module: every failure comes back as a
``NormalizedResponse`` with ``error`` and ``error_type`` set. There are no
retries; callers get one pass/fail result per call.

Usage:
    from chatbridge.llm import ChatClient, InMemoryStore, Message, ProviderConfig, ResponseCache

    config = ProviderConfig.for_provider("openai", api_key="sk-...")
    async with ChatClient(cache=ResponseCache(InMemoryStore())) as client:
        result = await client.send_request([Message.create("user", "Hi")], config)

        # Streaming: on_update receives the cumulative text
        result = await client.send_stream_request(messages, config, on_update=render)

        # Image attached to the last message
        result = await client.send_image_request(messages, image_bytes, config)
"""

import asyncio
import time
from typing import Any, Optional, Sequence, Union

import aiohttp

from chatbridge.config import ClientSettings, get_settings
from chatbridge.llm.cache import ResponseCache, cache_key
from chatbridge.llm.errors import ChatBridgeError, ConfigurationError, ProviderError, TransportError
from chatbridge.llm.media import prepare_image
from chatbridge.llm.models import Message, NormalizedResponse, ProviderConfig, RequestOptions
from chatbridge.llm.request_builder import build_image_request_body, build_request_body
from chatbridge.llm.response_parser import load_json, parse_response
from chatbridge.llm.stream_decoder import DecoderState, UpdateCallback, decoder_for
from chatbridge.providers.endpoints import auth_headers, resolve_endpoint, unresolved_placeholders
from chatbridge.utils.logger import LogContext, get_logger
from chatbridge.utils.security import generate_request_id, redact_url, sanitize_headers

logger = get_logger(__name__)

ImageInput = Union[bytes, str]


def validate_config(config: ProviderConfig) -> None:
    """
    Check that a configuration can be sent.

    Raises:
        ConfigurationError: If api_key, endpoint or model is empty, or the
            endpoint keeps a placeholder the configuration cannot fill.
    """
    missing = config.missing_fields()
    if missing:
        raise ConfigurationError(f"Incomplete configuration: missing {', '.join(missing)}")
    unresolved = unresolved_placeholders(config)
    if unresolved:
        raise ConfigurationError(f"Endpoint has unfilled placeholders: {', '.join(unresolved)}")


def _is_success(status: int) -> bool:
    return 200 <= status < 300


class ChatClient:
    """
    Async multi-provider chat client.

    Uses one ``aiohttp.ClientSession`` for all calls. A session passed in
    is borrowed and left open by ``close``; one created here is owned.
    Calls share no mutable state apart from the cache.
    """

    def __init__(
        self,
        cache: Optional[ResponseCache] = None,
        session: Optional[aiohttp.ClientSession] = None,
        settings: Optional[ClientSettings] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            cache: Response cache; caching is off when None.
            session: Existing aiohttp session to borrow.
            settings: Timeout and cache defaults; environment settings when None.
        """
        self.cache = cache
        self.settings = settings or get_settings().client
        self._session = session
        self._owns_session = session is None
        self.request_count = 0

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            # Timeouts are enforced per call by wait_for
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None))
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
        logger.debug("Chat client closed")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _post(
        self,
        url: str,
        body: dict[str, Any],
        headers: dict[str, str],
        timeout: float,
    ) -> aiohttp.ClientResponse:
        """
        POST and wait for the response headers, racing ``timeout``.

        On timeout the pending request is cancelled, which closes its socket.

        Raises:
            TransportError: On timeout or network failure.
        """
        session = await self._get_session()
        self.request_count += 1
        logger.debug("POST", url=redact_url(url), headers=sanitize_headers(headers))
        try:
            return await asyncio.wait_for(session.post(url, json=body, headers=headers), timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Request timed out after {timeout:g}s") from e
        except (aiohttp.ClientError, OSError) as e:
            raise TransportError(f"Network error: {e}") from e

    async def _exchange(
        self,
        url: str,
        body: dict[str, Any],
        headers: dict[str, str],
        timeout: float,
    ) -> tuple[int, str]:
        """Send a non-streaming request and read the whole body within ``timeout``."""

        async def _round_trip() -> tuple[int, str]:
            response = await self._post(url, body, headers, timeout)
            try:
                return response.status, await response.text()
            finally:
                response.release()

        try:
            return await asyncio.wait_for(_round_trip(), timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Request timed out after {timeout:g}s") from e
        except (aiohttp.ClientError, OSError) as e:
            raise TransportError(f"Network error: {e}") from e

    @staticmethod
    def _timeout(options: RequestOptions, default: float) -> float:
        return options.timeout if options.timeout is not None else default

    def _cache_ttl(self, options: RequestOptions) -> float:
        return options.cache_ttl if options.cache_ttl is not None else self.settings.cache_ttl

    def _cache_enabled(self, options: RequestOptions) -> bool:
        return self.cache is not None and self.settings.enable_cache and options.enable_cache

    async def _complete(
        self,
        messages: Sequence[Message],
        config: ProviderConfig,
        options: RequestOptions,
        image: Optional[ImageInput] = None,
        read_cache: bool = True,
        write_cache: bool = True,
    ) -> NormalizedResponse:
        """Non-streaming pipeline. Raises ``ChatBridgeError`` subclasses."""
        validate_config(config)

        data_uri = None
        if image is not None:
            if not config.capabilities.multimodal:
                raise ConfigurationError(f"{config.provider.value} does not support multimodal input")
            # Any image failure surfaces here, before the network call
            data_uri = prepare_image(image, config.provider, quality=self.settings.image_quality)

        # Image turns are not cached: the key covers text only
        key = None
        if (read_cache or write_cache) and data_uri is None and self._cache_enabled(options):
            key = cache_key(messages, config.provider, config.model, config.endpoint)
        if key is not None and read_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.info("Cache hit", model=config.model)
                return NormalizedResponse(content=cached)

        if data_uri is not None:
            body = build_image_request_body(messages, data_uri, config)
            timeout = self._timeout(options, self.settings.multimodal_timeout)
        else:
            body = build_request_body(messages, config, stream=False)
            timeout = self._timeout(options, self.settings.text_timeout)

        url = resolve_endpoint(config, stream=False, multimodal=data_uri is not None)
        headers = auth_headers(
            config.provider,
            config.api_key,
            organization_id=config.organization_id,
            api_version=config.api_version,
        )

        started = time.perf_counter()
        status, text = await self._exchange(url, body, headers, timeout)
        if not _is_success(status):
            logger.warning("Provider returned an error status", status=status, body=text[:500])
            raise ProviderError(status, text)

        result = parse_response(load_json(text), config.provider)
        logger.info(
            "Request completed",
            model=config.model,
            multimodal=data_uri is not None,
            elapsed_ms=round((time.perf_counter() - started) * 1000),
            content_chars=len(result.content),
        )

        if key is not None and write_cache and result.content:
            self.cache.set(key, result.content, self._cache_ttl(options))
        return result

    async def _stream(
        self,
        messages: Sequence[Message],
        config: ProviderConfig,
        on_update: Optional[UpdateCallback],
        options: RequestOptions,
    ) -> NormalizedResponse:
        """Streaming pipeline. Raises ``ChatBridgeError`` subclasses."""
        validate_config(config)

        if not config.capabilities.streaming:
            # One non-streaming call delivered as a single update
            logger.debug("Provider cannot stream, falling back to a single response")
            result = await self._complete(
                messages, config, options, read_cache=False, write_cache=options.cache_streaming
            )
            if result.content and on_update is not None:
                on_update(result.content)
            return result

        body = build_request_body(messages, config, stream=True)
        url = resolve_endpoint(config, stream=True)
        headers = auth_headers(
            config.provider,
            config.api_key,
            organization_id=config.organization_id,
            api_version=config.api_version,
        )
        headers["Accept"] = "text/event-stream"
        timeout = self._timeout(options, self.settings.stream_timeout)

        response = await self._post(url, body, headers, timeout)
        decoder = decoder_for(config.provider, on_update=on_update)
        try:
            if not _is_success(response.status):
                text = await response.text()
                logger.warning("Provider returned an error status", status=response.status, body=text[:500])
                raise ProviderError(response.status, text)

            async for chunk in response.content.iter_any():
                decoder.feed(chunk)
                if decoder.is_terminal:
                    break
            decoder.finish()
        except (aiohttp.ClientError, OSError) as e:
            decoder.fail(TransportError(f"Stream interrupted: {e}"))
        finally:
            response.release()

        if decoder.state is DecoderState.ERRORED:
            return NormalizedResponse(content="", error=decoder.error, error_type=decoder.error_type)

        logger.info(
            "Stream completed",
            model=config.model,
            content_chars=len(decoder.full_content),
            skipped_events=decoder.decode_errors,
        )
        if options.cache_streaming and self._cache_enabled(options) and decoder.full_content:
            key = cache_key(messages, config.provider, config.model, config.endpoint)
            self.cache.set(key, decoder.full_content, self._cache_ttl(options))
        return NormalizedResponse(content=decoder.full_content)

    async def _guarded(self, config: ProviderConfig, operation: str, coro) -> NormalizedResponse:
        """Run a pipeline and collapse every failure into a result."""
        with LogContext(request_id=generate_request_id(), provider=str(config.provider), operation=operation):
            try:
                return await coro
            except ChatBridgeError as e:
                logger.warning("Request failed", error_type=e.error_type, error=str(e))
                return NormalizedResponse.from_error(e)
            except Exception as e:
                logger.error("Unexpected error during request", error=str(e), exc_info=True)
                return NormalizedResponse.from_error(e)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send_request(
        self,
        messages: Sequence[Message],
        config: ProviderConfig,
        options: Optional[RequestOptions] = None,
    ) -> NormalizedResponse:
        """
        Send a conversation and return the whole answer.

        Args:
            messages: Conversation in order.
            config: Provider configuration.
            options: Timeout and cache options.

        Returns:
            NormalizedResponse with content, or error and error_type.
        """
        options = options or RequestOptions()
        return await self._guarded(config, "send", self._complete(messages, config, options))

    async def send_image_request(
        self,
        messages: Sequence[Message],
        image: ImageInput,
        config: ProviderConfig,
        options: Optional[RequestOptions] = None,
    ) -> NormalizedResponse:
        """
        Send a conversation whose last message carries an image.

        The image is fitted to the provider's limits before sending. A
        provider without multimodal support, or an image that cannot be
        prepared, yields an error result with no network call.

        Args:
            messages: Conversation in order; the image belongs to the last one.
            image: Image bytes, base64 string or data URI.
            config: Provider configuration.
            options: Timeout options (the default timeout is the longer
                multimodal one).

        Returns:
            NormalizedResponse with content, or error and error_type.
        """
        options = options or RequestOptions()
        return await self._guarded(config, "send_image", self._complete(messages, config, options, image=image))

    async def send_stream_request(
        self,
        messages: Sequence[Message],
        config: ProviderConfig,
        on_update: Optional[UpdateCallback] = None,
        options: Optional[RequestOptions] = None,
    ) -> NormalizedResponse:
        """
        Stream an answer, reporting the cumulative text as it grows.

        The cache is never read for streaming calls; the final text is
        written only when ``options.cache_streaming`` is set.

        Args:
            messages: Conversation in order.
            config: Provider configuration.
            on_update: Called with the full text so far after every event.
                Falls back to ``options.on_update``.
            options: Timeout and cache options.

        Returns:
            NormalizedResponse with the final text, or error and error_type.
        """
        options = options or RequestOptions()
        callback = on_update or options.on_update
        return await self._guarded(config, "stream", self._stream(messages, config, callback, options))


async def send_request(
    messages: Sequence[Message],
    config: ProviderConfig,
    options: Optional[RequestOptions] = None,
    cache: Optional[ResponseCache] = None,
) -> NormalizedResponse:
    """One-shot ``ChatClient.send_request`` with a temporary session."""
    async with ChatClient(cache=cache) as client:
        return await client.send_request(messages, config, options)


async def send_stream_request(
    messages: Sequence[Message],
    config: ProviderConfig,
    on_update: Optional[UpdateCallback] = None,
    options: Optional[RequestOptions] = None,
    cache: Optional[ResponseCache] = None,
) -> NormalizedResponse:
    """One-shot ``ChatClient.send_stream_request`` with a temporary session."""
    async with ChatClient(cache=cache) as client:
        return await client.send_stream_request(messages, config, on_update, options)
