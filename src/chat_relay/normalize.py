"""Conversion between chat turns and the provider's input/output shapes."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from chat_relay.types import ChatTurn


def normalize_turns(turns: Iterable[Any]) -> list[dict[str, Any]]:
    """Return the provider input list for ``turns``, preserving order.

    Assistant turns are tagged as prior model output, every other role as
    input. Unknown roles become ``user`` and content is coerced to text, so
    this never raises on malformed turns.
    """
    return [_serialize_turn(ChatTurn.coerce(turn)) for turn in turns]


def _serialize_turn(turn: ChatTurn) -> dict[str, Any]:
    part_type = "output_text" if turn.role == "assistant" else "input_text"
    return {
        "role": turn.role,
        "content": [{"type": part_type, "text": turn.content}],
    }


def extract_output_text(data: Any) -> str:
    """Pull the generated text out of a non-streaming provider response.

    Tried in order: a top-level ``output_text`` string, the text parts
    nested under ``output[].content[]``, the Chat Completions
    ``choices[0].message.content`` shape. Falls back to an empty string.
    """
    if not isinstance(data, Mapping):
        return ""

    output_text = data.get("output_text")
    if isinstance(output_text, str) and output_text:
        return output_text

    parts: list[str] = []
    output = data.get("output")
    if isinstance(output, list):
        for item in output:
            if not isinstance(item, Mapping):
                continue
            content = item.get("content")
            if not isinstance(content, list):
                continue
            for part in content:
                if not isinstance(part, Mapping):
                    continue
                if part.get("type") in ("output_text", "text") and isinstance(part.get("text"), str):
                    parts.append(part["text"])
    if parts:
        return "".join(parts)

    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], Mapping):
        message = choices[0].get("message")
        if isinstance(message, Mapping) and isinstance(message.get("content"), str):
            return message["content"]

    return ""
