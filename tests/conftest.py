import asyncio
import json

import pytest

from chatstream.config import DecoderSettings
from chatstream.decoder import StreamDecoder


# ---------------------------------------------------------------------------
# Fake byte transport
# ---------------------------------------------------------------------------

class FakeTransport:
    """Async byte source that yields pre-queued chunks. No network calls.

    ``delay`` sleeps before every chunk; ``hang`` blocks forever after
    the last chunk instead of ending the stream; ``error`` is raised
    after the last chunk.
    """

    def __init__(
        self,
        chunks: list[bytes | str],
        delay: float = 0.0,
        hang: bool = False,
        error: Exception | None = None,
    ):
        self.chunks = list(chunks)
        self.delay = delay
        self.hang = hang
        self.error = error
        self.reads = 0
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        try:
            for chunk in self.chunks:
                if self.delay:
                    await asyncio.sleep(self.delay)
                self.reads += 1
                yield chunk
            if self.error is not None:
                raise self.error
            if self.hang:
                await asyncio.Event().wait()
        finally:
            self.closed = True


# ---------------------------------------------------------------------------
# Stream builder helpers
# ---------------------------------------------------------------------------

def data_line(payload: dict | str) -> str:
    """One ``data:`` line carrying *payload*."""
    if not isinstance(payload, str):
        payload = json.dumps(payload, ensure_ascii=False)
    return f"data: {payload}\n"


def content_frame(text: str) -> str:
    return data_line({"choices": [{"index": 0, "delta": {"content": text}}]})


def reasoning_frame(text: str) -> str:
    return data_line({"choices": [{"index": 0, "delta": {"reasoning": text}}]})


def tool_frame(
    index: int,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> str:
    call: dict = {"index": index}
    if call_id is not None:
        call["id"] = call_id
    function = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    if function:
        call["function"] = function
    return data_line({"choices": [{"index": 0, "delta": {"tool_calls": [call]}}]})


DONE = "data: [DONE]\n"


def split_every(payload: bytes, size: int) -> list[bytes]:
    """Split *payload* into chunks of *size* bytes (last may be shorter)."""
    return [payload[i:i + size] for i in range(0, len(payload), size)]


async def collect(decoder: StreamDecoder, transport, **kwargs) -> list:
    return [event async for event in decoder.iter(transport, **kwargs)]


def sequential_ids():
    counter = iter(range(1, 1000))
    return lambda: f"gen_{next(counter)}"


@pytest.fixture
def decoder():
    return StreamDecoder(id_factory=sequential_ids())


@pytest.fixture
def fast_settings():
    """Stall thresholds small enough to trip within a test."""
    return DecoderSettings(
        heartbeat_interval=0.01,
        first_byte_warning=0.02,
        data_stall_warning=0.05,
    )
