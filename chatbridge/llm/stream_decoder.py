"""
Streaming Decoder
=================

Turns raw HTTP body chunks into cumulative answer text.

A chunk may hold zero, one or several complete events, and an event may be
split across chunks (down to single bytes, including inside a multi-byte
UTF-8 character). Each decoder keeps a rolling text buffer, extracts every
complete event from its front, and leaves a trailing partial event buffered
until the next chunk completes it.

States:
    ACCUMULATING -> DONE     end-of-stream marker seen, or the body ended
    ACCUMULATING -> ERRORED  decode or network failure

Dialects:
    - ``SSEDecoder``: ``data: {...}`` events separated by a blank line,
      text at ``choices[0].delta.content``, ``data: [DONE]`` ends the stream
      (OpenAI family). ``GeminiSSEDecoder`` reads Gemini's ``alt=sse`` frames.
    - ``AnthropicDecoder``: typed events; ``content_block_delta`` carries
      ``delta.text``, ``message_stop`` ends the stream.
    - ``GenericDecoder``: whole-buffer JSON with common field names, else
      raw text passthrough. Used for providers with no known dialect.

``on_update`` always receives the full text so far, never a bare delta.
"""

import codecs
import json
from enum import Enum
from typing import Any, Callable, Optional

from chatbridge.llm.errors import ChatBridgeError, DecodeError, ProviderError
from chatbridge.llm.response_parser import dig
from chatbridge.providers.types import Provider
from chatbridge.utils.logger import get_logger

logger = get_logger(__name__)

UpdateCallback = Callable[[str], None]


class DecoderState(Enum):
    """Lifecycle of one streaming response."""

    ACCUMULATING = "accumulating"
    DONE = "done"
    ERRORED = "errored"


class StreamDecoder:
    """
    Base decoder: buffering, accumulation and state transitions.

    Subclasses implement ``_drain`` to consume complete events from
    ``self.buffer``.

    Attributes:
        state: Current ``DecoderState``.
        full_content: Text accumulated so far.
        buffer: Received text not yet consumed.
        error: Failure message once ERRORED.
        error_type: Failure category once ERRORED.
        decode_errors: Number of malformed events skipped.
    """

    def __init__(
        self,
        on_update: Optional[UpdateCallback] = None,
        on_done: Optional[UpdateCallback] = None,
    ) -> None:
        self._on_update = on_update
        self._on_done = on_done
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.state = DecoderState.ACCUMULATING
        self.full_content = ""
        self.buffer = ""
        self.error: Optional[str] = None
        self.error_type: Optional[str] = None
        self.decode_errors = 0

    @property
    def is_terminal(self) -> bool:
        return self.state is not DecoderState.ACCUMULATING

    def feed(self, chunk: bytes | str) -> None:
        """Process one received chunk. No-op once terminal."""
        if self.is_terminal:
            return
        text = chunk if isinstance(chunk, str) else self._utf8.decode(chunk)
        self._append(text)
        self._drain(final=False)

    def finish(self) -> None:
        """
        Signal that the body ended.

        Consumes whatever is left in the buffer. An undecodable leftover
        event moves the decoder to ERRORED; otherwise it moves to DONE.
        """
        if self.is_terminal:
            return
        self._append(self._utf8.decode(b"", final=True))
        try:
            self._drain(final=True)
        except DecodeError as e:
            self.fail(e)
            return
        self._complete()

    def fail(self, error: Exception) -> None:
        """Move to ERRORED, keeping the text accumulated so far."""
        if self.is_terminal:
            return
        self.state = DecoderState.ERRORED
        self.error = str(error) or error.__class__.__name__
        self.error_type = error.error_type if isinstance(error, ChatBridgeError) else "transport"
        logger.warning(
            "Stream decoding failed",
            decoder=type(self).__name__,
            error=self.error,
            received_chars=len(self.full_content),
        )

    def _append(self, text: str) -> None:
        # A CR at the end of one chunk may pair with an LF at the start of the next
        self.buffer = (self.buffer + text).replace("\r\n", "\n")

    def _emit(self, delta: str) -> None:
        if not delta:
            return
        self.full_content += delta
        if self._on_update is not None:
            self._on_update(self.full_content)

    def _complete(self) -> None:
        if self.is_terminal:
            return
        self.state = DecoderState.DONE
        self.buffer = ""
        if self._on_done is not None:
            self._on_done(self.full_content)

    def _skip_malformed(self, payload: str, error: Exception) -> None:
        self.decode_errors += 1
        logger.debug(
            "Skipping malformed stream event",
            decoder=type(self).__name__,
            payload=payload[:200],
            error=str(error),
        )

    def _drain(self, final: bool) -> None:
        raise NotImplementedError


class SSEDecoder(StreamDecoder):
    """Server-sent events with OpenAI chat completion chunks."""

    DONE_MARKER = "[DONE]"

    def _drain(self, final: bool) -> None:
        while not self.is_terminal:
            block, separator, rest = self.buffer.partition("\n\n")
            if not separator:
                break
            self.buffer = rest
            self._handle_block(block, final=False)

        if final and not self.is_terminal and self.buffer.strip():
            block, self.buffer = self.buffer, ""
            self._handle_block(block, final=True)

    def _handle_block(self, block: str, final: bool) -> None:
        event = ""
        data_lines = []
        for line in block.split("\n"):
            if line.startswith("data:"):
                data_lines.append(line[5:].removeprefix(" "))
            elif line.startswith("event:"):
                event = line[6:].strip()
        # Comments and keep-alives carry no data
        if not data_lines:
            return
        payload = "\n".join(data_lines).strip()
        if not payload:
            return
        self._handle_event(event, payload, final)

    def _load(self, payload: str, final: bool) -> Optional[Any]:
        """Parse an event payload; skip it unless this is the stream's last event."""
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            if final:
                raise DecodeError(f"Malformed final stream event: {e}", raw=payload) from e
            self._skip_malformed(payload, e)
            return None

    def _handle_event(self, event: str, payload: str, final: bool) -> None:
        if payload == self.DONE_MARKER:
            self._complete()
            return
        data = self._load(payload, final)
        if data is None:
            return
        if isinstance(data, dict) and data.get("error"):
            message = dig(data, "error", "message") or json.dumps(data["error"])
            self.fail(ProviderError(None, str(message)))
            return
        self._emit(self._delta(data))

    def _delta(self, data: Any) -> str:
        text = dig(data, "choices", 0, "delta", "content")
        return text if isinstance(text, str) else ""


class GeminiSSEDecoder(SSEDecoder):
    """Gemini ``streamGenerateContent?alt=sse`` frames; the stream ends with the body."""

    def _delta(self, data: Any) -> str:
        parts = dig(data, "candidates", 0, "content", "parts")
        if not isinstance(parts, list):
            return ""
        return "".join(
            part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)
        )


class AnthropicDecoder(SSEDecoder):
    """Anthropic Messages API typed events."""

    def _handle_event(self, event: str, payload: str, final: bool) -> None:
        data = self._load(payload, final)
        if not isinstance(data, dict):
            return
        event_type = data.get("type") or event
        if event_type == "content_block_delta":
            text = dig(data, "delta", "text")
            self._emit(text if isinstance(text, str) else "")
        elif event_type == "message_stop":
            self._complete()
        elif event_type == "error":
            message = dig(data, "error", "message") or "Anthropic stream error"
            self.fail(ProviderError(None, str(message)))


_GENERIC_PATHS: tuple[tuple[str | int, ...], ...] = (
    ("content",),
    ("text",),
    ("message", "content"),
    ("choices", 0, "text"),
    ("choices", 0, "message", "content"),
    ("choices", 0, "delta", "content"),
    ("output",),
)


def _guess_content(data: Any) -> str:
    for path in _GENERIC_PATHS:
        value = dig(data, *path)
        if isinstance(value, str) and value:
            return value
    return ""


class GenericDecoder(StreamDecoder):
    """
    Best-effort decoder for providers without a known streaming dialect.

    Tries the buffered text as one JSON document with common field names.
    Text that cannot be JSON is passed through as is.
    """

    def _drain(self, final: bool) -> None:
        text = self.buffer
        if not text.strip():
            if final:
                self.buffer = ""
            return
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            # Might be the start of a JSON document still arriving
            if not final and text.lstrip()[0] in "{[":
                return
            self.buffer = ""
            self._emit(text)
            return
        self.buffer = ""
        self._emit(_guess_content(data))


DecoderFactory = Callable[..., StreamDecoder]

_DECODERS: dict[Provider, DecoderFactory] = {
    Provider.OPENAI: SSEDecoder,
    Provider.AZURE: SSEDecoder,
    Provider.TOGETHER: SSEDecoder,
    Provider.LOCALAI: SSEDecoder,
    Provider.MISTRAL: SSEDecoder,
    Provider.MOONSHOT: SSEDecoder,
    Provider.DEEPSEEK: SSEDecoder,
    Provider.XINGHUO: SSEDecoder,
    Provider.MINIMAX: SSEDecoder,
    Provider.ANTHROPIC: AnthropicDecoder,
    Provider.GEMINI: GeminiSSEDecoder,
}


def decoder_for(
    provider: Provider | str,
    on_update: Optional[UpdateCallback] = None,
    on_done: Optional[UpdateCallback] = None,
) -> StreamDecoder:
    """Create the streaming decoder for a provider's dialect."""
    factory = _DECODERS.get(Provider.parse(provider), GenericDecoder)
    return factory(on_update=on_update, on_done=on_done)
