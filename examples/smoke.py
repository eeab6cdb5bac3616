import asyncio
from collections.abc import AsyncIterator

from chat_relay.relay import StreamRelay
from chat_relay.types import UpstreamEvent


async def fake_upstream() -> AsyncIterator[UpstreamEvent]:
    for text in ("Hi", " there", "!"):
        await asyncio.sleep(0.3)
        yield UpstreamEvent.delta(text)
    yield UpstreamEvent.error("demo: non-fatal provider warning")
    yield UpstreamEvent.end()


async def main() -> None:
    # Short heartbeat so the ": ping" comments show up between deltas
    relay = StreamRelay(fake_upstream(), heartbeat_interval=0.25)
    async for chunk in relay.stream():
        print(chunk, end="")
    print("final state:", relay.state.value)


if __name__ == "__main__":
    asyncio.run(main())
