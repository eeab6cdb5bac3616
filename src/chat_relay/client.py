"""Async invoker dispatching normalized input to a configured provider."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from chat_relay.errors import UnsupportedProviderError, UpstreamFailure
from chat_relay.providers.base import BaseProvider
from chat_relay.types import UpstreamEvent

logger = logging.getLogger(__name__)


class ChatClient:
    """High-level coordinator for calling registered providers."""

    def __init__(self, *providers: BaseProvider, default: str | None = None) -> None:
        self._providers: dict[str, BaseProvider] = {}
        for provider in providers:
            self._providers[provider.name] = provider
        self._default = default or (providers[0].name if providers else None)

    def get_provider(self, name: str | None = None) -> BaseProvider:
        """Return a provider by its registered name, or the default one."""
        key = name or self._default
        if key is None:
            raise UnsupportedProviderError("<none>")
        try:
            return self._providers[key]
        except KeyError as exc:
            raise UnsupportedProviderError(key) from exc

    async def invoke(
        self,
        input_items: list[dict[str, Any]],
        model: str,
        *,
        streaming: bool = False,
        provider: str | None = None,
    ) -> str | AsyncIterator[UpstreamEvent]:
        """Run one completion, or open a token stream when ``streaming``.

        Every failure before output exists surfaces as ``UpstreamFailure``.
        """
        target = self.get_provider(provider)
        try:
            if streaming:
                return await target.open_stream(input_items, model)
            return await target.complete(input_items, model)
        except UpstreamFailure as exc:
            logger.error("Upstream call to %s failed: %s", target.name, exc)
            raise
        except httpx.HTTPError as exc:
            logger.error("Upstream call to %s failed: %s", target.name, exc)
            raise UpstreamFailure(target.name, str(exc) or type(exc).__name__) from exc

    async def aclose(self) -> None:
        for provider in self._providers.values():
            await provider.aclose()
