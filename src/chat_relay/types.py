"""Request, upstream event and stream frame models."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Role = Literal["system", "user", "assistant"]

_ROLES = ("system", "user", "assistant")


def coerce_content(value: Any) -> str:
    """Coerce arbitrary turn content to text; never raises."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        # Content-part lists as sent by some widgets: [{"type": "text", "text": ...}]
        parts: list[str] = []
        for part in value:
            if isinstance(part, Mapping):
                text = part.get("text")
                parts.append(text if isinstance(text, str) else "")
            else:
                parts.append(coerce_content(part))
        return "".join(parts)
    try:
        return str(value)
    except Exception:
        return ""


class ChatTurn(BaseModel):
    """Single chat message."""

    model_config = ConfigDict(frozen=True)

    role: Role = "user"
    content: str = ""

    @field_validator("role", mode="before")
    @classmethod
    def _default_role(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() in _ROLES:
            return value.strip().lower()
        return "user"

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> str:
        return coerce_content(value)

    @classmethod
    def coerce(cls, raw: Any) -> ChatTurn:
        """Build a turn from whatever a client sent, never raising."""
        if isinstance(raw, ChatTurn):
            return raw
        if isinstance(raw, Mapping):
            return cls(role=raw.get("role"), content=raw.get("content"))
        return cls(role=None, content=raw)


class ChatRequest(BaseModel):
    """One chat call: ordered turns plus the model identifier."""

    model_config = ConfigDict(populate_by_name=True)

    turns: list[ChatTurn] = Field(alias="messages")
    model: str | None = None

    @field_validator("turns", mode="before")
    @classmethod
    def _coerce_turns(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [ChatTurn.coerce(item) for item in value]
        return value

    @field_validator("model", mode="before")
    @classmethod
    def _blank_model(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def latest_user_utterance(self) -> str | None:
        for turn in reversed(self.turns):
            if turn.role == "user":
                return turn.content
        return None


class UpstreamEvent(BaseModel):
    """Event arriving from the provider's token stream."""

    type: Literal["text_delta", "error", "end"]
    text: str | None = None
    message: str | None = None
    # provider-specific payload kept for debugging
    raw: dict[str, Any] | None = None

    @classmethod
    def delta(cls, text: str, raw: dict[str, Any] | None = None) -> UpstreamEvent:
        return cls(type="text_delta", text=text, raw=raw)

    @classmethod
    def error(cls, message: str, raw: dict[str, Any] | None = None) -> UpstreamEvent:
        return cls(type="error", message=message, raw=raw)

    @classmethod
    def end(cls, raw: dict[str, Any] | None = None) -> UpstreamEvent:
        return cls(type="end", raw=raw)


class StreamFrame(BaseModel):
    """Frame produced by the relay and written by the transport."""

    type: Literal["ready", "delta", "error", "done", "close"]
    text: str | None = None
    message: str | None = None


class RelayState(str, Enum):
    INIT = "init"
    STREAMING = "streaming"
    TERMINATING = "terminating"
    CLOSED = "closed"
