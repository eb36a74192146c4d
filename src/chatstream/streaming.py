"""Streaming primitives for provider responses.

:func:`decode_payload` turns one ``data:`` payload into a
:class:`StreamChunk`.  The :class:`ToolCallAccumulator` reassembles
tool calls whose arguments arrive in fragments across multiple
chunks, and hands each one out exactly once, as soon as its
arguments form a complete JSON object.
"""

from __future__ import annotations

import json
import logging
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass, field, replace

from chatstream.errors import FrameParseError
from chatstream.events import ToolCallEvent
from chatstream.tools import parse_json_object

logger = logging.getLogger(__name__)

_CALL_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_call_id() -> str:
    """Fresh id for a tool call the provider sent without one."""
    return "call_" + "".join(secrets.choice(_CALL_ID_ALPHABET) for _ in range(8))


@dataclass
class ToolCallFragment:
    """A fragment of a tool call from a streaming chunk."""

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None


@dataclass
class ChoiceDelta:
    """The incremental fields of one choice in a streaming chunk."""

    index: int = 0
    content: str | None = None
    reasoning: str | None = None
    tool_call_fragments: list[ToolCallFragment] = field(default_factory=list)
    finish_reason: str | None = None


@dataclass
class StreamChunk:
    """Normalised streaming chunk decoded from one data frame."""

    choices: list[ChoiceDelta] = field(default_factory=list)


def _str_or_none(value) -> str | None:
    return value if isinstance(value, str) else None


def _parse_fragment(raw: dict) -> ToolCallFragment:
    index = raw.get("index")
    if not isinstance(index, int) or isinstance(index, bool):
        index = 0
    function = raw.get("function")
    if not isinstance(function, dict):
        function = {}
    return ToolCallFragment(
        index=index,
        call_id=_str_or_none(raw.get("id")),
        name=_str_or_none(function.get("name")),
        arguments_delta=_str_or_none(function.get("arguments")),
    )


def decode_payload(payload: str) -> StreamChunk:
    """Decode a ``data:`` payload of a chat-completions stream.

    Args:
        payload: The text after the ``data:`` prefix.

    Returns:
        The per-choice deltas.  Payloads that are valid JSON but do
        not have the chat-completions shape decode to an empty chunk.

    Raises:
        FrameParseError: If *payload* is not valid JSON.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise FrameParseError(payload, str(e)) from e

    chunk = StreamChunk()
    if not isinstance(data, dict):
        return chunk
    choices = data.get("choices")
    if not isinstance(choices, list):
        return chunk

    for position, choice in enumerate(choices):
        if not isinstance(choice, dict):
            continue
        delta = choice.get("delta")
        if not isinstance(delta, dict):
            delta = {}
        reasoning = _str_or_none(delta.get("reasoning"))
        if reasoning is None:
            reasoning = _str_or_none(delta.get("reasoning_content"))
        raw_calls = delta.get("tool_calls")
        fragments = [
            _parse_fragment(raw)
            for raw in (raw_calls if isinstance(raw_calls, list) else [])
            if isinstance(raw, dict)
        ]
        index = choice.get("index")
        chunk.choices.append(ChoiceDelta(
            index=index if isinstance(index, int) else position,
            content=_str_or_none(delta.get("content")),
            reasoning=reasoning,
            tool_call_fragments=fragments,
            finish_reason=_str_or_none(choice.get("finish_reason")),
        ))
    return chunk


@dataclass
class ToolCallBuffer:
    """Partial tool call for one index, growing as fragments arrive."""

    call_id: str | None = None
    name: str | None = None
    arguments: str = ""


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments.

    One buffer is kept per tool-call index.  After every update the
    buffer's argument string is tried as JSON; the first time it parses
    as an object (and a name is known) the call is finalized, the
    buffer dropped and the index marked completed.  Fragments for a
    completed index are ignored, which protects against providers that
    resend a finished call.

    Args:
        id_factory: Produces ids for calls the provider sent without
            one.  Defaults to :func:`generate_call_id`.
        log: Logger for dropped and duplicate fragments.
    """

    def __init__(
        self,
        id_factory: Callable[[], str] = generate_call_id,
        log: logging.Logger | None = None,
    ) -> None:
        self._id_factory = id_factory
        self._log = log or logger
        self._pending: dict[int, ToolCallBuffer] = {}
        self._completed: set[int] = set()

    @property
    def pending(self) -> dict[int, ToolCallBuffer]:
        return {index: replace(buf) for index, buf in self._pending.items()}

    @property
    def completed(self) -> frozenset[int]:
        return frozenset(self._completed)

    def update(
        self,
        index: int,
        call_id: str | None = None,
        name: str | None = None,
        arguments_delta: str | None = None,
    ) -> ToolCallEvent | None:
        """Apply one fragment; return the call if it just became complete."""
        if index in self._completed:
            self._log.debug(f"Ignoring fragment for completed tool call #{index}")
            return None

        buf = self._pending.get(index)
        if buf is None:
            buf = self._pending[index] = ToolCallBuffer()
        if call_id and not buf.call_id:
            buf.call_id = call_id
        if name and not buf.name:
            buf.name = name
        if arguments_delta:
            buf.arguments += arguments_delta
        return self._try_finalize(index)

    def feed(self, fragment: ToolCallFragment) -> ToolCallEvent | None:
        return self.update(
            fragment.index,
            call_id=fragment.call_id,
            name=fragment.name,
            arguments_delta=fragment.arguments_delta,
        )

    def flush(self) -> list[ToolCallEvent]:
        """Retry every open buffer once more, then drop what is left.

        Called when the stream terminates.  Buffers are retried in the
        order they were opened; calls whose arguments never became a
        complete object are discarded, never emitted partially.
        """
        finished = []
        for index in list(self._pending):
            call = self._try_finalize(index)
            if call is not None:
                finished.append(call)
        for index, buf in self._pending.items():
            self._log.debug(
                f"Dropping incomplete tool call #{index} "
                f"name={buf.name!r} args={buf.arguments[:200]!r}"
            )
        self._pending.clear()
        return finished

    def _try_finalize(self, index: int) -> ToolCallEvent | None:
        buf = self._pending.get(index)
        if buf is None or not buf.name:
            return None
        arguments = parse_json_object(buf.arguments)
        if arguments is None:
            return None
        del self._pending[index]
        self._completed.add(index)
        return ToolCallEvent(
            call_id=buf.call_id or self._id_factory(),
            name=buf.name,
            arguments=arguments,
        )
