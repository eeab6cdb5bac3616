"""Chat relay: proxy chat turns to a model provider as JSON or SSE."""

from chat_relay.client import ChatClient
from chat_relay.context import ContextAugmenter, SitemapContextSource
from chat_relay.errors import (
    ChatFailure,
    ChatRelayError,
    ContextRetrievalFailure,
    UpstreamFailure,
    ValidationFailure,
)
from chat_relay.normalize import extract_output_text, normalize_turns
from chat_relay.relay import StreamRelay
from chat_relay.service import ChatService
from chat_relay.types import ChatRequest, ChatTurn, RelayState, StreamFrame, UpstreamEvent

__all__ = [
    "ChatClient",
    "ChatFailure",
    "ChatRelayError",
    "ChatRequest",
    "ChatService",
    "ChatTurn",
    "ContextAugmenter",
    "ContextRetrievalFailure",
    "RelayState",
    "SitemapContextSource",
    "StreamFrame",
    "StreamRelay",
    "UpstreamEvent",
    "UpstreamFailure",
    "ValidationFailure",
    "extract_output_text",
    "normalize_turns",
]
