"""Incremental server-sent-events reader: push bytes in, pop complete events out."""

from __future__ import annotations

import codecs


class SSEEventReader:
    """Splits a byte stream into SSE events on blank-line boundaries.

    A trailing partial event (or a multi-byte character cut by a chunk
    boundary) is retained until the next :meth:`feed`.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        self._buffer = self._buffer.replace("\r\n", "\n")
        *events, self._buffer = self._buffer.split("\n\n")
        return [event for event in events if event.strip()]

    def flush(self) -> list[str]:
        """Return whatever is left once the stream has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        return [rest] if rest.strip() else []

    @property
    def pending(self) -> str:
        return self._buffer


def event_data(event: str) -> str | None:
    """Payload of the ``data:`` lines of an event, or None when it has none."""
    lines = [
        line[len("data:"):].strip()
        for line in event.split("\n")
        if line.startswith("data:")
    ]
    if not lines:
        return None
    return "\n".join(lines)
