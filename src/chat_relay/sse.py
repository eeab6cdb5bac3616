"""Server-sent-event framing for relay output."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from typing import Any

from chat_relay.types import StreamFrame

PING = ": ping\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def encode_frame(frame: StreamFrame) -> str:
    """Render one frame as SSE text terminated by a blank line."""
    if frame.type == "ready":
        return f"event: ready\ndata: {_dumps({'ok': True})}\n\n"
    if frame.type == "delta":
        return f"data: {_dumps({'delta': frame.text or ''})}\n\n"
    if frame.type == "error":
        return f"data: {_dumps({'error': frame.message or ''})}\n\n"
    if frame.type == "done":
        return f"data: {_dumps({'done': True, 'text': frame.text or ''})}\n\n"
    return "event: close\ndata: {}\n\n"


def iter_events(chunks: Iterable[str]) -> Iterator[tuple[str | None, Any]]:
    """Decode SSE text into ``(event, data)`` pairs.

    Comment-only frames (heartbeats) are skipped. ``data`` is parsed as
    JSON when possible and left as text otherwise.
    """
    buffer = ""
    for chunk in chunks:
        buffer += chunk.replace("\r\n", "\n")
        while "\n\n" in buffer:
            block, buffer = buffer.split("\n\n", 1)
            parsed = _parse_block(block)
            if parsed is not None:
                yield parsed
    if buffer.strip():
        parsed = _parse_block(buffer)
        if parsed is not None:
            yield parsed


def _parse_block(block: str) -> tuple[str | None, Any] | None:
    event: str | None = None
    data_lines: list[str] = []
    for line in block.split("\n"):
        if not line or line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            event = value
        elif field == "data":
            data_lines.append(value)
    if event is None and not data_lines:
        return None
    data = "\n".join(data_lines)
    try:
        return event, json.loads(data)
    except json.JSONDecodeError:
        return event, data
