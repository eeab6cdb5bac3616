"""Incremental relay from a provider token stream to an SSE response.

The relay has two layers. ``StreamRelay.frames`` is the state machine over
upstream events and can be driven by any async iterator of
``UpstreamEvent``. ``StreamRelay.stream`` is the transport side: it runs the
frame producer and a heartbeat as two tasks feeding one queue, encodes each
frame as SSE text and cancels both tasks on every exit path.

Frame sequence for one response::

    ready (delta | error)* done close      # upstream finished
    ready (delta | error)* error close     # upstream raised
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from typing import cast

from chat_relay.sse import PING, encode_frame
from chat_relay.types import RelayState, StreamFrame, UpstreamEvent

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 15.0

HEARTBEAT_TASK_NAME = "relay-heartbeat"
PUMP_TASK_NAME = "relay-pump"

_PING = object()
_END = object()


class StreamRelay:
    """Relay one upstream event sequence to one client."""

    def __init__(
        self,
        events: AsyncIterator[UpstreamEvent],
        *,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> None:
        if heartbeat_interval <= 0:
            raise ValueError("heartbeat_interval must be positive")
        self._events = events
        self._heartbeat_interval = heartbeat_interval
        self._is_disconnected = is_disconnected
        self._consumed = False
        self._managed = False
        self._released = False
        self.state = RelayState.INIT
        self.text = ""

    async def frames(self) -> AsyncIterator[StreamFrame]:
        """Yield the frame sequence for the upstream events.

        Provider error events are forwarded and streaming continues. An
        exception from the upstream iterator ends the sequence with an
        error frame followed by close; no done frame is produced then.
        """
        yield StreamFrame(type="ready")
        self.state = RelayState.STREAMING
        accumulated: list[str] = []
        try:
            try:
                async for event in self._events:
                    if event.type == "text_delta":
                        if not event.text:
                            continue
                        accumulated.append(event.text)
                        yield StreamFrame(type="delta", text=event.text)
                    elif event.type == "error":
                        logger.warning("Provider reported a mid-stream error: %s", event.message)
                        yield StreamFrame(type="error", message=event.message or "Upstream error")
                    elif event.type == "end":
                        break
            except Exception as exc:
                logger.error("Upstream stream failed: %s", exc)
                self.state = RelayState.TERMINATING
                self.text = "".join(accumulated)
                yield StreamFrame(type="error", message=_describe(exc))
                yield StreamFrame(type="close")
                return

            self.state = RelayState.TERMINATING
            self.text = "".join(accumulated)
            yield StreamFrame(type="done", text=self.text)
            yield StreamFrame(type="close")
        finally:
            await self._release_upstream()
            if not self._managed:
                self.state = RelayState.CLOSED

    def stream(self) -> RelayStream:
        """Return the SSE text iterator for the response, with heartbeats interleaved."""
        if self._consumed:
            raise RuntimeError("StreamRelay can only be consumed once")
        self._consumed = True
        self._managed = True
        return RelayStream(self, self._stream())

    async def _stream(self) -> AsyncIterator[str]:
        queue: asyncio.Queue[object] = asyncio.Queue()
        pump = asyncio.create_task(self._pump(queue), name=PUMP_TASK_NAME)
        heartbeat: asyncio.Task[None] | None = None
        try:
            while True:
                item = await queue.get()
                if item is _END:
                    break
                if await self._peer_gone():
                    logger.info("Client disconnected; stopping relay")
                    break
                if item is _PING:
                    yield PING
                    continue

                frame = cast(StreamFrame, item)
                yield encode_frame(frame)
                if frame.type == "ready" and heartbeat is None:
                    heartbeat = asyncio.create_task(self._heartbeat(queue), name=HEARTBEAT_TASK_NAME)
                elif frame.type == "close":
                    break
        finally:
            self.state = RelayState.TERMINATING
            tasks = [task for task in (heartbeat, pump) if task is not None]
            for task in tasks:
                task.cancel()
            try:
                results = await asyncio.gather(*tasks, return_exceptions=True)
                for result in results:
                    if isinstance(result, Exception):
                        logger.error("Relay task failed: %s", result)
            finally:
                # The pump may never have run; the session must still be released.
                await self._release_upstream()
                self.state = RelayState.CLOSED

    async def _pump(self, queue: asyncio.Queue[object]) -> None:
        try:
            async with aclosing(self.frames()) as frames:
                async for frame in frames:
                    queue.put_nowait(frame)
        finally:
            queue.put_nowait(_END)

    async def _heartbeat(self, queue: asyncio.Queue[object]) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            queue.put_nowait(_PING)

    async def _peer_gone(self) -> bool:
        if self._is_disconnected is None:
            return False
        return await self._is_disconnected()

    async def _release_upstream(self) -> None:
        if self._released:
            return
        self._released = True
        aclose = getattr(self._events, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception:
            logger.warning("Failed to close upstream session", exc_info=True)


def _describe(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or type(exc).__name__


class RelayStream:
    """Single-use iterator over a relay's SSE text.

    ``aclose`` releases the upstream session even if iteration never
    started.
    """

    def __init__(self, relay: StreamRelay, chunks: AsyncIterator[str]) -> None:
        self._relay = relay
        self._chunks = chunks

    def __aiter__(self) -> RelayStream:
        return self

    async def __anext__(self) -> str:
        return await self._chunks.__anext__()

    async def aclose(self) -> None:
        try:
            await self._chunks.aclose()
        finally:
            await self._relay._release_upstream()
            self._relay.state = RelayState.CLOSED
