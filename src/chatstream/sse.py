"""Server-Sent Events line classification and re-encoding.

:func:`classify` turns one framed line of an incoming event stream
into a :class:`Frame`.  :func:`sse_generator` goes the other way and
encodes decoded events for a server handler that relays them.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import asdict, dataclass
from enum import Enum

from chatstream.events import StreamCancelled, StreamComplete, StreamEvent

DONE_SENTINEL = "[DONE]"
META_PREFIXES = ("event:", "id:", "retry:")


class FrameKind(Enum):
    BLANK = "blank"
    COMMENT = "comment"
    META = "meta"
    DATA = "data"
    TERMINATOR = "terminator"


@dataclass(frozen=True)
class Frame:
    kind: FrameKind
    payload: str | None = None


BLANK = Frame(FrameKind.BLANK)
TERMINATOR = Frame(FrameKind.TERMINATOR, DONE_SENTINEL)


def classify(line: str) -> Frame:
    """Classify a single event-stream line.

    Comments and meta lines keep their text as payload for logging;
    only ``DATA`` frames carry something to decode.  Lines that match
    no known field are treated as blank rather than as errors.
    """
    trimmed = line.strip()
    if not trimmed:
        return BLANK
    if trimmed.startswith(":"):
        return Frame(FrameKind.COMMENT, trimmed)
    if trimmed.startswith("data:"):
        payload = trimmed[len("data:"):].lstrip()
        if payload == DONE_SENTINEL:
            return TERMINATOR
        if not payload:
            return BLANK
        return Frame(FrameKind.DATA, payload)
    if trimmed.startswith(META_PREFIXES):
        return Frame(FrameKind.META, trimmed)
    return BLANK


async def sse_generator(
    event_stream: AsyncIterator[StreamEvent],
) -> AsyncIterator[str]:
    """Convert a StreamEvent async iterator into SSE-formatted strings."""
    async for event in event_stream:
        event_type = type(event).__name__
        if isinstance(event, (StreamComplete, StreamCancelled)):
            data = "{}"
        else:
            data = json.dumps(asdict(event))
        yield f"event: {event_type}\ndata: {data}\n\n"
    yield "event: done\ndata: {}\n\n"
