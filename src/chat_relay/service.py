"""Request pipeline from a chat body to provider output."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from chat_relay.client import ChatClient
from chat_relay.context import ContextAugmenter
from chat_relay.errors import ValidationFailure
from chat_relay.normalize import normalize_turns
from chat_relay.relay import DEFAULT_HEARTBEAT_INTERVAL, StreamRelay
from chat_relay.types import ChatRequest, ChatTurn

logger = logging.getLogger(__name__)


def parse_chat_request(body: Any) -> ChatRequest:
    """Validate a ``{messages, model?}`` body into a ``ChatRequest``."""
    if not isinstance(body, dict) or not isinstance(body.get("messages"), list):
        raise ValidationFailure("messages must be a list of chat turns.")
    try:
        return ChatRequest.model_validate(body)
    except ValidationError as exc:
        raise ValidationFailure(str(exc)) from exc


class ChatService:
    """Preamble, augmentation, normalization, then the upstream call."""

    def __init__(
        self,
        client: ChatClient,
        *,
        default_model: str,
        system_preamble: str | None = None,
        augmenter: ContextAugmenter | None = None,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
    ) -> None:
        self._client = client
        self._default_model = default_model
        self._system_preamble = system_preamble
        self._augmenter = augmenter
        self._heartbeat_interval = heartbeat_interval

    async def build_input(self, req: ChatRequest) -> list[dict[str, Any]]:
        turns: list[ChatTurn] = list(req.turns)
        if self._system_preamble and not any(t.role == "system" for t in turns):
            turns.insert(0, ChatTurn(role="system", content=self._system_preamble))
        if self._augmenter is not None:
            turns = await self._augmenter.augment(turns)
        return normalize_turns(turns)

    async def reply(self, req: ChatRequest) -> str:
        """Return the complete model output for ``req``."""
        input_items = await self.build_input(req)
        model = req.model or self._default_model
        logger.info("Chat request: %d turns, model=%s", len(input_items), model)
        return await self._client.invoke(input_items, model)

    async def ask(self, prompt: str, model: str | None = None) -> str:
        """Send ``prompt`` as the only turn, without preamble or context."""
        input_items = normalize_turns([ChatTurn(role="user", content=prompt)])
        return await self._client.invoke(input_items, model or self._default_model)

    async def open_stream(
        self,
        req: ChatRequest,
        *,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> StreamRelay:
        """Open the upstream session and wrap it in a relay.

        Raises ``UpstreamFailure`` if the session cannot be opened, before
        anything has been written to the client.
        """
        input_items = await self.build_input(req)
        model = req.model or self._default_model
        logger.info("Streaming chat request: %d turns, model=%s", len(input_items), model)
        events = await self._client.invoke(input_items, model, streaming=True)
        return StreamRelay(
            events,
            heartbeat_interval=self._heartbeat_interval,
            is_disconnected=is_disconnected,
        )
