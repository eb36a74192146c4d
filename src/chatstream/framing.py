"""Line framing for raw event-stream bytes."""

from __future__ import annotations

import codecs


class LineFramer:
    """Splits a byte stream into text lines across chunk boundaries.

    Bytes are decoded incrementally as UTF-8, so a multi-byte
    character split between two chunks is reassembled rather than
    mangled.  Lines end on ``\\n`` or ``\\r\\n``; the trailing
    unterminated segment is held back until more bytes arrive or
    :meth:`flush` is called at end of stream.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._residual = ""

    @property
    def residual(self) -> str:
        return self._residual

    def feed(self, chunk: bytes) -> list[str]:
        """Consume *chunk* and return every line it completed, in order."""
        self._residual += self._decoder.decode(chunk)
        if "\n" not in self._residual:
            return []
        *lines, self._residual = self._residual.split("\n")
        return [_strip_cr(line) for line in lines]

    def flush(self) -> str | None:
        """Return the unterminated remainder, if any, and reset."""
        rest = self._residual + self._decoder.decode(b"", final=True)
        self._residual = ""
        self._decoder.reset()
        return rest if rest else None


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line
