"""Provider-agnostic base interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from chat_relay.types import UpstreamEvent


class BaseProvider(ABC):
    """Abstract base class for provider implementations.

    ``complete`` is the blocking call. ``open_stream`` opens a token-stream
    session and must raise before returning if the session cannot be
    opened; the returned iterator is finite, single-use, and releases the
    session when closed.
    """

    name: str

    @abstractmethod
    async def complete(self, input_items: list[dict[str, Any]], model: str) -> str:
        """Return the complete output text for the normalized input."""
        raise NotImplementedError

    @abstractmethod
    async def open_stream(
        self, input_items: list[dict[str, Any]], model: str
    ) -> AsyncIterator[UpstreamEvent]:
        """Open a streaming session and return its event iterator."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release any pooled connections."""
