"""OpenAI provider implementation (Responses API)."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from chat_relay.errors import ProviderError, UpstreamFailure
from chat_relay.normalize import extract_output_text
from chat_relay.providers.base import BaseProvider
from chat_relay.types import UpstreamEvent

_DEFAULT_BASE_URL = "https://api.openai.com"
_RESPONSES_PATH = "/v1/responses"


class OpenAIProvider(BaseProvider):
    """Minimal async wrapper for the OpenAI Responses API."""

    name = "openai"
    _logger = logging.getLogger(__name__)

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str | None = None,
        timeout_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url or _DEFAULT_BASE_URL,
            timeout=timeout_s,
            transport=transport,
        )
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def complete(self, input_items: list[dict[str, Any]], model: str) -> str:
        """Call the Responses API and normalize the result to text."""
        payload = self._build_payload(input_items, model)
        try:
            response = await self._client.post(_RESPONSES_PATH, headers=self._headers, json=payload)
        except httpx.HTTPError as exc:
            raise UpstreamFailure(self.name, str(exc) or type(exc).__name__) from exc
        data = self._json_or_error(response)
        return extract_output_text(data)

    async def open_stream(
        self, input_items: list[dict[str, Any]], model: str
    ) -> AsyncIterator[UpstreamEvent]:
        """Open the SSE session; HTTP errors raise here, before any event."""
        payload = self._build_payload(input_items, model)
        payload["stream"] = True
        request = self._client.build_request(
            "POST", _RESPONSES_PATH, headers=self._headers, json=payload
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise UpstreamFailure(self.name, str(exc) or type(exc).__name__) from exc

        if response.status_code >= 400:
            try:
                body = await response.aread()
            finally:
                await response.aclose()
            raise ProviderError(
                self.name,
                self._error_message(body) or response.reason_phrase,
                status_code=response.status_code,
            )

        return _ResponseEvents(response, self._events(response))

    async def _events(self, response: httpx.Response) -> AsyncIterator[UpstreamEvent]:
        try:
            async for line in response.aiter_lines():
                line = line.strip()
                if not line:
                    continue

                # The Responses stream is SSE; the payload type is repeated in the data.
                if not line.startswith("data:"):
                    continue

                data_str = line[len("data:") :].strip()
                if data_str == "[DONE]":
                    yield UpstreamEvent.end()
                    return

                try:
                    event = json.loads(data_str)
                except json.JSONDecodeError:
                    self._logger.debug("Skipping non-JSON streaming chunk: %s", data_str)
                    continue
                if not isinstance(event, dict):
                    continue

                mapped = self._map_event(event)
                if mapped is None:
                    continue
                yield mapped
                if mapped.type == "end":
                    return
        finally:
            await response.aclose()

    @staticmethod
    def _map_event(event: dict[str, Any]) -> UpstreamEvent | None:
        kind = event.get("type")
        if kind == "response.output_text.delta":
            delta = event.get("delta")
            if isinstance(delta, str) and delta:
                return UpstreamEvent.delta(delta, raw=event)
            return None
        if kind == "error":
            message = event.get("message")
            return UpstreamEvent.error(message if isinstance(message, str) else "Upstream error", raw=event)
        if kind == "response.failed":
            body = event.get("response")
            error = body.get("error") if isinstance(body, dict) else None
            message = error.get("message") if isinstance(error, dict) else None
            return UpstreamEvent.error(message or "Response failed", raw=event)
        if kind == "response.completed":
            return UpstreamEvent.end(raw=event)
        return None

    @staticmethod
    def _build_payload(input_items: list[dict[str, Any]], model: str) -> dict[str, Any]:
        return {"model": model, "input": input_items}

    @staticmethod
    def _error_message(body: bytes) -> str:
        text = body.decode("utf-8", errors="replace")
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return text
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        return text

    def _json_or_error(self, response: httpx.Response) -> dict[str, Any]:
        if response.status_code >= 400:
            raise ProviderError(
                self.name,
                self._error_message(response.content) or response.reason_phrase,
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamFailure(self.name, "Malformed response body") from exc
        if not isinstance(data, dict):
            raise UpstreamFailure(self.name, "Malformed response body")
        return data


class _ResponseEvents:
    """Event iterator that owns the streaming HTTP response.

    ``aclose`` releases the response even when iteration never started.
    """

    def __init__(self, response: httpx.Response, events: AsyncIterator[UpstreamEvent]) -> None:
        self._response = response
        self._events = events

    def __aiter__(self) -> _ResponseEvents:
        return self

    async def __anext__(self) -> UpstreamEvent:
        return await self._events.__anext__()

    async def aclose(self) -> None:
        try:
            await self._events.aclose()
        finally:
            await self._response.aclose()
