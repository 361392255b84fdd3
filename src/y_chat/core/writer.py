"""Server-sent-events output stream for one chat turn."""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Optional

from y_chat.core.types import StatusKind

SendFn = Callable[[str], Awaitable[None]]

DONE_FRAME = "data: [DONE]\n\n"


def encode_event(data: Any) -> str:
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


class StreamWriter:
    """Encodes turn records as ``data: <json>`` frames and hands them to ``send``.

    Subclasses may override :meth:`write` to render records directly (see the
    console front end). Writes after :meth:`close` are dropped.
    """

    def __init__(self, send: Optional[SendFn] = None):
        self._send = send
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, data: dict[str, Any]) -> None:
        await self._emit(encode_event(data))

    async def write_status(
        self, status: StatusKind | str, message: str, server: Optional[str] = None
    ) -> None:
        record: dict[str, Any] = {"type": "mcp_status", "status": str(status), "message": message}
        if server:
            record["server"] = server
        await self.write(record)

    async def done(self) -> None:
        await self._emit(DONE_FRAME)

    async def close(self) -> None:
        self._closed = True

    async def _emit(self, frame: str) -> None:
        if self._closed or self._send is None:
            return
        await self._send(frame)
