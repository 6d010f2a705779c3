"""
luminous-client - Streaming Decoder

Turns the SSE records of one streaming response into an ordered sequence of
typed chunks:

    StreamStart  ->  StreamDelta*  ->  StreamEnd  ->  StreamUsage?

The wire format does not guarantee this order, so ``ChunkSequencer``
enforces it. A record that does not match its declared shape, an order
violation, or a stream that ends without an end marker is a ``DecodeError``.
Error records sent by the service mid-stream go through the same
``classify_error`` as failed blocking calls.

Chunks already yielded before an error stay valid; the error tells how many
were delivered (``error.details["chunks_delivered"]``).
"""

from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, Dict, FrozenSet, List, Optional, Union

import httpx

from .encoding import parse_completion_usage, parse_usage, require
from .errors import (
    DEFAULT_ERROR_CODES,
    ApiError,
    ClientTimeoutError,
    DecodeError,
    ErrorCodeTable,
    TransportError,
    classify_error,
)
from .how import Deadline
from .logging import get_logger
from .logprobs import Distribution, parse_chat_logprobs, parse_completion_logprobs
from .sse import SseDecoder, SseRecord
from .tasks import Usage

logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"

# status assumed for error records that carry none
STREAM_ERROR_STATUS = 500


# ============================================================
# Chunks
# ============================================================

@dataclass(frozen=True)
class StreamStart:
    """Start of the response."""
    role: Optional[str] = None
    model_version: Optional[str] = None


@dataclass(frozen=True)
class StreamDelta:
    """An incremental piece of generated text."""
    text: str
    logprobs: Optional[List[Distribution]] = None


@dataclass(frozen=True)
class StreamEnd:
    """End of the generated text."""
    finish_reason: str
    model_version: Optional[str] = None


@dataclass(frozen=True)
class StreamUsage:
    """Token counts of the whole request. Always the last chunk if present."""
    usage: Usage


StreamChunk = Union[StreamStart, StreamDelta, StreamEnd, StreamUsage]


# ============================================================
# Protocols: SSE record -> chunks
# ============================================================

def _load_payload(record: SseRecord) -> Any:
    try:
        return json.loads(record.data)
    except ValueError as e:
        raise DecodeError(
            f"stream record {record.event!r} is not valid JSON: {e}", payload=record.data[:500]
        ) from e


def _error_from_record(payload: Any, model: Optional[str], table: ErrorCodeTable) -> ApiError:
    data = payload if isinstance(payload, dict) else {"error": str(payload)}
    status = data.get("status_code", data.get("status"))
    if not isinstance(status, int) or isinstance(status, bool):
        status = STREAM_ERROR_STATUS
    return classify_error(status, data, model=model, table=table)


class StreamProtocol:
    """
    Interprets the records of one task kind's stream.

    Event names are looked up in the tables below; records with an unknown
    event name are ignored.
    """

    START_EVENTS: FrozenSet[str] = frozenset()
    DELTA_EVENTS: FrozenSet[str] = frozenset()
    END_EVENTS: FrozenSet[str] = frozenset()
    USAGE_EVENTS: FrozenSet[str] = frozenset()
    ERROR_EVENTS: FrozenSet[str] = frozenset({"error"})
    UNTYPED_EVENT = "message"

    def __init__(self, model: Optional[str] = None, error_codes: ErrorCodeTable = DEFAULT_ERROR_CODES):
        self.model = model
        self.error_codes = error_codes

    def interpret(self, record: SseRecord) -> List[StreamChunk]:
        if record.data.strip() == DONE_SENTINEL:
            return []
        payload = _load_payload(record)
        if record.event in self.ERROR_EVENTS or (
            isinstance(payload, dict) and payload.get("error") is not None
        ):
            raise _error_from_record(payload, self.model, self.error_codes)
        if not isinstance(payload, dict):
            raise DecodeError(
                f"stream record {record.event!r} is not a JSON object", payload=record.data[:500]
            )
        if record.event == self.UNTYPED_EVENT:
            return self.interpret_untyped(payload)
        return self.interpret_typed(record.event, payload)

    def interpret_typed(self, event: str, payload: Dict[str, Any]) -> List[StreamChunk]:
        if event in self.START_EVENTS:
            return [self.start(payload)]
        if event in self.DELTA_EVENTS:
            return [self.delta(payload)]
        if event in self.END_EVENTS:
            return [self.end(payload)]
        if event in self.USAGE_EVENTS:
            return [self.usage(payload)]
        logger.debug("Ignoring stream event %r", event)
        return []

    def interpret_untyped(self, payload: Dict[str, Any]) -> List[StreamChunk]:
        raise NotImplementedError

    def start(self, payload: Dict[str, Any]) -> StreamChunk:
        role = payload.get("role")
        model_version = payload.get("model_version")
        return StreamStart(
            role=role if isinstance(role, str) else None,
            model_version=model_version if isinstance(model_version, str) else None,
        )

    def delta(self, payload: Dict[str, Any]) -> StreamChunk:
        raise NotImplementedError

    def end(self, payload: Dict[str, Any]) -> StreamChunk:
        model_version = payload.get("model_version")
        return StreamEnd(
            finish_reason=require(payload, "finish_reason", str, "stream end"),
            model_version=model_version if isinstance(model_version, str) else None,
        )

    def usage(self, payload: Dict[str, Any]) -> StreamChunk:
        raise NotImplementedError


class CompletionProtocol(StreamProtocol):
    """
    Completion streams.

    Records are typed either by an ``event:`` line or, in the older format,
    by a ``type`` field inside an untyped ``data:`` payload.
    """

    START_EVENTS = frozenset({"completion_start"})
    DELTA_EVENTS = frozenset({"completion_chunk", "stream_chunk"})
    END_EVENTS = frozenset({"completion_end", "stream_summary"})
    USAGE_EVENTS = frozenset({"completion_summary", "usage"})

    def interpret_untyped(self, payload: Dict[str, Any]) -> List[StreamChunk]:
        kind = payload.get("type")
        if not isinstance(kind, str):
            raise DecodeError("completion stream record has no type", payload=repr(payload)[:500])
        return self.interpret_typed(kind, payload)

    def delta(self, payload: Dict[str, Any]) -> StreamChunk:
        return StreamDelta(
            text=require(payload, "completion", str, "completion chunk"),
            logprobs=parse_completion_logprobs(
                payload.get("log_probs"), payload.get("completion_tokens")
            ),
        )

    def usage(self, payload: Dict[str, Any]) -> StreamChunk:
        return StreamUsage(parse_completion_usage(payload, "completion summary"))


class ChatProtocol(StreamProtocol):
    """
    Chat streams: untyped ``data:`` records shaped like
    ``{"choices": [{"delta": {...}, "finish_reason": ...}], "usage": ...}``.
    """

    START_EVENTS = frozenset({"chat_start"})
    DELTA_EVENTS = frozenset({"chat_chunk"})
    END_EVENTS = frozenset({"chat_end"})
    USAGE_EVENTS = frozenset({"chat_usage"})

    def __init__(self, model: Optional[str] = None, error_codes: ErrorCodeTable = DEFAULT_ERROR_CODES):
        super().__init__(model, error_codes)
        self._started = False

    def interpret_untyped(self, payload: Dict[str, Any]) -> List[StreamChunk]:
        chunks: List[StreamChunk] = []
        choices = payload.get("choices", [])
        if not isinstance(choices, list):
            raise DecodeError("chat stream: 'choices' must be a list", payload=repr(payload)[:500])

        if choices:
            # the n parameter is not supported, so there is exactly one choice
            choice = choices[0]
            if not isinstance(choice, dict):
                raise DecodeError("chat stream: choice is not an object", payload=repr(payload)[:500])
            delta = choice.get("delta") or {}
            if not isinstance(delta, dict):
                raise DecodeError("chat stream: 'delta' is not an object", payload=repr(payload)[:500])
            # some servers repeat the role on every delta; only the first one starts the stream
            if delta.get("role") and not self._started:
                chunks.append(StreamStart(role=delta["role"]))
            content = delta.get("content")
            if content is not None and not isinstance(content, str):
                raise DecodeError("chat stream: 'content' is not a string", payload=repr(payload)[:500])
            logprobs = parse_chat_logprobs(choice.get("logprobs"))
            if content or logprobs:
                chunks.append(StreamDelta(text=content or "", logprobs=logprobs))
            if choice.get("finish_reason") is not None:
                chunks.append(self.end(choice))

        if payload.get("usage") is not None:
            chunks.append(self.usage(payload))
        if chunks:
            self._started = True
        return chunks

    def start(self, payload: Dict[str, Any]) -> StreamChunk:
        self._started = True
        return super().start(payload)

    def delta(self, payload: Dict[str, Any]) -> StreamChunk:
        return StreamDelta(
            text=require(payload, "content", str, "chat chunk"),
            logprobs=parse_chat_logprobs(payload.get("logprobs")),
        )

    def usage(self, payload: Dict[str, Any]) -> StreamChunk:
        return StreamUsage(parse_usage(require(payload, "usage", dict, "chat usage")))


# ============================================================
# Ordering
# ============================================================

class ChunkSequencer:
    """
    Enforces StreamStart -> StreamDelta* -> StreamEnd -> StreamUsage?.

    A stream that begins with a delta or end record gets a synthesized
    ``StreamStart``, as older completion streams send no start record.
    """

    AWAITING_START = "awaiting_start"
    STREAMING = "streaming"
    ENDED = "ended"
    COMPLETE = "complete"

    def __init__(self):
        self.state = self.AWAITING_START

    @property
    def terminal(self) -> bool:
        return self.state == self.COMPLETE

    @property
    def ended(self) -> bool:
        return self.state in (self.ENDED, self.COMPLETE)

    def accept(self, chunk: StreamChunk) -> List[StreamChunk]:
        """Validate ``chunk`` against the current state and return the chunks to emit."""
        if self.state == self.COMPLETE:
            raise DecodeError(f"{type(chunk).__name__} after the usage summary")

        if isinstance(chunk, StreamStart):
            if self.state != self.AWAITING_START:
                raise DecodeError("duplicate start of stream")
            self.state = self.STREAMING
            return [chunk]

        emitted: List[StreamChunk] = []
        if self.state == self.AWAITING_START and isinstance(chunk, (StreamDelta, StreamEnd)):
            emitted.append(StreamStart())
            self.state = self.STREAMING

        if isinstance(chunk, StreamDelta):
            if self.state != self.STREAMING:
                raise DecodeError("stream delta after the end of stream")
        elif isinstance(chunk, StreamEnd):
            if self.state != self.STREAMING:
                raise DecodeError("duplicate end of stream")
            self.state = self.ENDED
        elif isinstance(chunk, StreamUsage):
            if self.state != self.ENDED:
                raise DecodeError("usage summary before the end of stream")
            self.state = self.COMPLETE
        else:
            raise TypeError(f"Not a stream chunk: {type(chunk).__name__}")

        emitted.append(chunk)
        return emitted

    def finish(self) -> None:
        """
        Signal end of input.

        Raises:
            DecodeError: if no end marker was seen
        """
        if not self.ended:
            raise DecodeError("stream ended without an end marker")


# ============================================================
# Lazy stream over one response
# ============================================================

ResponseOpener = Callable[[Deadline], Awaitable[httpx.Response]]


class ChunkStream:
    """
    Lazy, ordered sequence of chunks produced by one streaming call.

    Use it as an async context manager so the connection is released even if
    iteration stops early:

        async with client.stream(task, model) as chunks:
            async for chunk in chunks:
                ...

    Closing the stream (``aclose``, leaving the ``async with`` block, or
    breaking out of an ``async for`` over it) cancels it. It is not rewindable; issue a new call instead.
    """

    def __init__(
        self,
        opener: ResponseOpener,
        protocol: StreamProtocol,
        deadline: Deadline,
    ):
        self._opener = opener
        self._protocol = protocol
        self._deadline = deadline
        self._decoder = SseDecoder()
        self._sequencer = ChunkSequencer()
        self._ready: Deque[StreamChunk] = deque()
        self._response: Optional[httpx.Response] = None
        self._reads: Optional[AsyncIterator[bytes]] = None
        self._exhausted = False
        self._closed = False
        self._pending_error: Optional[ApiError] = None
        self.chunks_delivered = 0
        self.text = ""

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> ChunkStream:
        await self._ensure_open()
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    def __aiter__(self) -> AsyncIterator[StreamChunk]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamChunk]:
        # the event loop finalizes an abandoned generator, which runs the finally block
        try:
            while True:
                try:
                    chunk = await self.__anext__()
                except StopAsyncIteration:
                    return
                yield chunk
        finally:
            await self.aclose()

    async def __anext__(self) -> StreamChunk:
        if self._closed:
            raise StopAsyncIteration
        try:
            await self._ensure_open()
            while not self._ready:
                if self._pending_error is not None:
                    error, self._pending_error = self._pending_error, None
                    raise error
                if self._exhausted or self._sequencer.terminal:
                    self._sequencer.finish()
                    await self.aclose()
                    raise StopAsyncIteration
                await self._step()
        except StopAsyncIteration:
            raise
        except ApiError as e:
            e.details.setdefault("chunks_delivered", self.chunks_delivered)
            if self.text:
                e.details.setdefault("partial_text", self.text)
            # a status rejected at open was already logged where it was classified
            if self._response is not None or not e.status_code:
                logger.warning(
                    "Stream failed after %d chunks: %s", self.chunks_delivered, e.message,
                    extra={"model": self._protocol.model, "error_code": e.code},
                )
            await self.aclose()
            raise
        except BaseException:
            await self.aclose()
            raise

        chunk = self._ready.popleft()
        self.chunks_delivered += 1
        if isinstance(chunk, StreamDelta):
            self.text += chunk.text
        return chunk

    async def collect(self) -> List[StreamChunk]:
        """Consume the rest of the stream."""
        return [chunk async for chunk in self]

    async def aclose(self) -> None:
        """Release the connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._ready.clear()
        if self._response is not None:
            await self._response.aclose()

    async def _ensure_open(self) -> None:
        if self._response is not None or self._closed:
            return
        self._response = await self._opener(self._deadline)
        self._reads = self._response.aiter_bytes().__aiter__()

    async def _read(self) -> Optional[bytes]:
        assert self._reads is not None
        try:
            return await self._reads.__anext__()
        except StopAsyncIteration:
            return None

    async def _step(self) -> None:
        """One read, then framing, interpretation and ordering of what it completed."""
        try:
            data = await self._deadline.run(self._read())
        except httpx.TimeoutException as e:
            raise ClientTimeoutError(self._deadline.timeout) from e
        except httpx.RequestError as e:
            raise TransportError(f"Stream interrupted: {e}") from e

        if data is None:
            self._exhausted = True
            if self._decoder.close():
                logger.debug("Discarding unterminated stream record")
            return

        try:
            for record in self._decoder.feed(data):
                for chunk in self._protocol.interpret(record):
                    self._ready.extend(self._sequencer.accept(chunk))
        except ApiError as e:
            if not self._ready:
                raise
            # deliver what this read completed before the error
            self._pending_error = e
