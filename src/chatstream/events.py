"""Events emitted by the stream decoder, in stream order."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class StreamEvent:
    """Base for all decoder events."""


@dataclass
class TextEvent(StreamEvent):
    """A text fragment, passed through in arrival order.

    ``placeholder`` marks the optional liveness text the decoder emits
    while a model is still reasoning or queued.
    """

    text: str = ""
    placeholder: bool = False


@dataclass
class ToolCallEvent(StreamEvent):
    """A tool call whose arguments parsed as a complete JSON object."""

    call_id: str = ""
    name: str = ""
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class StreamComplete(StreamEvent):
    """Final event of a successful stream, always the last one yielded."""

    result: Any = None


@dataclass
class StreamCancelled(StreamEvent):
    """Final event when the consumer cancelled the stream."""

    result: Any = None
