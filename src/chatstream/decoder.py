"""Incremental decoder for chat-completions event streams.

:class:`StreamDecoder` reads raw byte chunks from a transport, frames
them into lines, classifies each line, decodes ``data:`` payloads and
reassembles tool calls, yielding events in the order their frames
arrived::

    decoder = StreamDecoder()
    async for event in decoder.iter(response.iter_bytes()):
        if isinstance(event, TextEvent):
            print(event.text, end="")

``run()`` drains ``iter()`` and pushes each event to a callback
instead.  A stream that finishes without any text or tool call raises
:class:`~chatstream.errors.EmptyResponseError`.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass, field
from enum import Enum

from chatstream.config import DecoderSettings
from chatstream.errors import EmptyResponseError, FrameParseError, TransportError
from chatstream.events import (
    StreamCancelled,
    StreamComplete,
    StreamEvent,
    TextEvent,
    ToolCallEvent,
)
from chatstream.framing import LineFramer
from chatstream.sse import FrameKind, classify
from chatstream.streaming import (
    ToolCallAccumulator,
    decode_payload,
    generate_call_id,
)

logger = logging.getLogger(__name__)

_EOF = object()


class StreamStatus(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class StreamResult:
    """Summary of one decoded response."""

    status: StreamStatus
    text: str = ""
    tool_calls: list[ToolCallEvent] = field(default_factory=list)
    chunk_count: int = 0
    data_frames: int = 0
    keepalive_count: int = 0
    malformed_frames: int = 0


@dataclass
class StreamState:
    """Mutable state of a single response; never shared across responses."""

    accumulator: ToolCallAccumulator
    started_at: float
    last_byte_at: float
    last_data_at: float
    last_heartbeat: float
    framer: LineFramer = field(default_factory=LineFramer)
    emitted_any: bool = False
    done: bool = False
    cancelled: bool = False
    first_byte_received: bool = False
    text_parts: list[str] = field(default_factory=list)
    tool_calls: list[ToolCallEvent] = field(default_factory=list)
    chunk_count: int = 0
    data_frames: int = 0
    keepalive_count: int = 0
    malformed_frames: int = 0

    def result(self, status: StreamStatus) -> StreamResult:
        return StreamResult(
            status=status,
            text="".join(self.text_parts),
            tool_calls=list(self.tool_calls),
            chunk_count=self.chunk_count,
            data_frames=self.data_frames,
            keepalive_count=self.keepalive_count,
            malformed_frames=self.malformed_frames,
        )


class StreamDecoder:
    """Turns an event-stream byte feed into text and tool-call events.

    One decoder handles one response at a time.  All framing and
    decoding happens synchronously between reads; the only suspension
    point is waiting for the next chunk, which is bounded by
    ``settings.heartbeat_interval`` so stall diagnostics keep running
    while the transport is silent.

    Args:
        settings: Placeholder and stall-detection settings.
        id_factory: Generates ids for tool calls sent without one.
        log: Logger receiving diagnostics.  Defaults to this module's.
        clock: Monotonic time source used for stall detection.
    """

    def __init__(
        self,
        settings: DecoderSettings | None = None,
        *,
        id_factory: Callable[[], str] = generate_call_id,
        log: logging.Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or DecoderSettings()
        self.id_factory = id_factory
        self.log = log or logger
        self.clock = clock
        self.status = StreamStatus.IDLE
        self._active = False
        self._cancel = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation of the active stream.

        The pending read is abandoned and no further events are
        yielded except the final :class:`StreamCancelled`.
        """
        self._cancel.set()

    async def run(
        self,
        transport: AsyncIterable[bytes],
        on_event: Callable[[StreamEvent], object] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> StreamResult:
        """Decode *transport*, pushing every event to *on_event*.

        *on_event* may be a plain function or a coroutine function.
        Returns the summary carried by the terminal event.
        """
        result: StreamResult | None = None
        async with contextlib.aclosing(
            self.iter(transport, cancel_event=cancel_event)
        ) as events:
            async for event in events:
                if on_event is not None:
                    outcome = on_event(event)
                    if inspect.isawaitable(outcome):
                        await outcome
                if isinstance(event, (StreamComplete, StreamCancelled)):
                    result = event.result
        if result is None:
            raise RuntimeError("iter() ended without a terminal event")
        return result

    async def iter(
        self,
        transport: AsyncIterable[bytes],
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Decode *transport*, yielding events as frames are decoded.

        A consumer that may stop before the terminal event should close
        the generator (``contextlib.aclosing``) so the transport is
        released and the decoder can take the next response.

        Raises:
            EmptyResponseError: The stream ended with nothing emitted.
            TransportError: Reading from *transport* failed.
            RuntimeError: The decoder is already handling a stream.
        """
        if self._active:
            raise RuntimeError("StreamDecoder is already decoding a response")
        self._active = True
        self._cancel = asyncio.Event()
        self.status = StreamStatus.IDLE

        now = self.clock()
        state = StreamState(
            accumulator=ToolCallAccumulator(self.id_factory, log=self.log),
            started_at=now,
            last_byte_at=now,
            last_data_at=now,
            last_heartbeat=now,
        )
        chunks = transport.__aiter__()
        read_task: asyncio.Task | None = None
        cancel_waits = [asyncio.ensure_future(self._cancel.wait())]
        if cancel_event is not None:
            cancel_waits.append(asyncio.ensure_future(cancel_event.wait()))

        try:
            while not state.done:
                if self._cancel_requested(cancel_event):
                    state.cancelled = True
                    break
                if read_task is None:
                    read_task = asyncio.ensure_future(_next_chunk(chunks))

                finished, _ = await asyncio.wait(
                    [read_task, *cancel_waits],
                    timeout=self.settings.heartbeat_interval,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if self._cancel_requested(cancel_event):
                    state.cancelled = True
                    break

                placeholder = self._heartbeat(state)
                if placeholder is not None:
                    yield self._deliver(state, placeholder)
                if read_task not in finished:
                    continue

                try:
                    chunk = read_task.result()
                except Exception as e:
                    self.status = StreamStatus.FAILED
                    self.log.warning(f"stream transport failed: {e!r}")
                    raise TransportError(f"Stream transport failed: {e}") from e
                finally:
                    read_task = None

                if chunk is _EOF:
                    events = self._finish(state)
                else:
                    events = self._consume(state, chunk)
                for event in events:
                    if self._cancel_requested(cancel_event):
                        state.cancelled = True
                        break
                    yield self._deliver(state, event)
                if state.cancelled:
                    break

            if state.cancelled:
                self.status = StreamStatus.CANCELLED
                self.log.debug("stream cancelled; discarding buffered bytes")
                yield StreamCancelled(result=state.result(self.status))
                return

            if not state.emitted_any:
                self.status = StreamStatus.FAILED
                self.log.warning("SSE stream ended without emitting any content")
                raise EmptyResponseError()

            self.status = StreamStatus.COMPLETED
            yield StreamComplete(result=state.result(self.status))
        except GeneratorExit:
            if self.status in (StreamStatus.IDLE, StreamStatus.STREAMING):
                self.status = StreamStatus.CANCELLED
                self.log.debug("stream consumer closed the decoder early")
            raise
        finally:
            pending = [
                task for task in (read_task, *cancel_waits)
                if task is not None and not task.done()
            ]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            await _close(chunks)
            self._active = False

    def _cancel_requested(self, cancel_event: asyncio.Event | None) -> bool:
        return self._cancel.is_set() or (
            cancel_event is not None and cancel_event.is_set()
        )

    # ------------------------------------------------------------------
    # Per-chunk processing (synchronous)
    # ------------------------------------------------------------------

    def _consume(self, state: StreamState, chunk: bytes | str) -> list[StreamEvent]:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        if self.status is StreamStatus.IDLE:
            self.status = StreamStatus.STREAMING
        state.chunk_count += 1
        state.first_byte_received = True
        state.last_byte_at = self.clock()
        self.log.debug(
            f"stream chunk#{state.chunk_count} bytes={len(chunk)} "
            f"preview={chunk[:300]!r}"
        )

        events: list[StreamEvent] = []
        for line in state.framer.feed(chunk):
            events.extend(self._process_line(state, line))
            if state.done:
                break
        return events

    def _finish(self, state: StreamState) -> list[StreamEvent]:
        """Handle a clean transport close."""
        events: list[StreamEvent] = []
        rest = state.framer.flush()
        if rest is not None and rest.strip():
            events.extend(self._process_line(state, rest))
        if not state.done:
            events.extend(self._flush_tool_calls(state))
            state.done = True
        return events

    def _process_line(self, state: StreamState, line: str) -> list[StreamEvent]:
        frame = classify(line)
        if frame.kind is FrameKind.BLANK:
            return []
        if frame.kind is FrameKind.COMMENT:
            state.keepalive_count += 1
            n = state.keepalive_count
            if n <= 5 or n % 50 == 0:
                self.log.debug(f"sse keepalive (#{n}): {frame.payload[:100]}")
            return []
        if frame.kind is FrameKind.META:
            self.log.debug(f"sse meta: {frame.payload[:500]}")
            return []

        state.last_data_at = self.clock()
        if frame.kind is FrameKind.TERMINATOR:
            self.log.debug("sse: [DONE]")
            events = self._flush_tool_calls(state)
            state.done = True
            return events

        state.data_frames += 1
        self.log.debug(f"sse: {frame.payload[:500]}")
        try:
            chunk = decode_payload(frame.payload)
        except FrameParseError as e:
            state.malformed_frames += 1
            self.log.warning(f"{e} (first 500 chars): {frame.payload[:500]}")
            return []

        events: list[StreamEvent] = []
        for choice in chunk.choices:
            if choice.content:
                events.append(self._text(state, choice.content))
            elif choice.reasoning:
                self.log.debug(f"delta.reasoning length={len(choice.reasoning)}")
                if not state.emitted_any and self.settings.emit_placeholders:
                    events.append(self._text(
                        state, self.settings.thinking_placeholder, placeholder=True,
                    ))
            for fragment in choice.tool_call_fragments:
                call = state.accumulator.feed(fragment)
                if call is not None:
                    events.append(self._tool_call(state, call))
        return events

    def _flush_tool_calls(self, state: StreamState) -> list[StreamEvent]:
        return [
            self._tool_call(state, call)
            for call in state.accumulator.flush()
        ]

    def _text(
        self, state: StreamState, text: str, placeholder: bool = False,
    ) -> TextEvent:
        state.emitted_any = True
        return TextEvent(text=text, placeholder=placeholder)

    def _tool_call(self, state: StreamState, call: ToolCallEvent) -> ToolCallEvent:
        self.log.debug(f"tool call finalized: {call.name} id={call.call_id}")
        state.emitted_any = True
        return call

    def _deliver(self, state: StreamState, event: StreamEvent) -> StreamEvent:
        # The summary only reports what the consumer actually received.
        if isinstance(event, TextEvent) and not event.placeholder:
            state.text_parts.append(event.text)
        elif isinstance(event, ToolCallEvent):
            state.tool_calls.append(event)
        return event

    # ------------------------------------------------------------------
    # Stall detection
    # ------------------------------------------------------------------

    def _heartbeat(self, state: StreamState) -> TextEvent | None:
        now = self.clock()
        if now - state.last_heartbeat < self.settings.heartbeat_interval:
            return None
        state.last_heartbeat = now

        if not state.first_byte_received:
            waited = now - state.started_at
            if waited >= self.settings.first_byte_warning:
                self.log.warning(
                    f"No SSE bytes received yet ({waited:.0f}s) - model may "
                    f"be slow or request may be stuck"
                )
            return None

        data_wait = now - state.last_data_at
        if state.emitted_any or data_wait < self.settings.data_stall_warning:
            return None
        self.log.warning(
            f"SSE bytes are arriving but no 'data:' frames seen for "
            f"{data_wait:.0f}s (keepalives={state.keepalive_count}). "
            f"The model is probably still queued or running."
        )
        state.last_data_at = now
        if not self.settings.emit_placeholders:
            return None
        return self._text(state, self.settings.waiting_placeholder, placeholder=True)


async def _next_chunk(chunks: AsyncIterator[bytes]):
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return _EOF


async def _close(chunks: AsyncIterator[bytes]) -> None:
    aclose = getattr(chunks, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.debug(f"error closing stream transport: {e!r}")
