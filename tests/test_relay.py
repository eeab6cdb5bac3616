import asyncio
import unittest

from fakes import Tracker, endless_deltas, from_list

from chat_relay.relay import HEARTBEAT_TASK_NAME, PUMP_TASK_NAME, StreamRelay
from chat_relay.sse import PING, iter_events
from chat_relay.types import RelayState, StreamFrame, UpstreamEvent


async def _collect(relay: StreamRelay) -> list[str]:
    return [chunk async for chunk in relay.stream()]


async def _frames(relay: StreamRelay) -> list[StreamFrame]:
    return [frame async for frame in relay.frames()]


def _relay_tasks() -> list[asyncio.Task]:
    return [
        task
        for task in asyncio.all_tasks()
        if task.get_name() in (HEARTBEAT_TASK_NAME, PUMP_TASK_NAME) and not task.done()
    ]


class RelayFrameTests(unittest.TestCase):
    def test_round_trip(self) -> None:
        relay = StreamRelay(
            from_list([UpstreamEvent.delta("Hi"), UpstreamEvent.delta(" there"), UpstreamEvent.end()])
        )

        chunks = asyncio.run(_collect(relay))

        self.assertEqual(
            list(iter_events(chunks)),
            [
                ("ready", {"ok": True}),
                (None, {"delta": "Hi"}),
                (None, {"delta": " there"}),
                (None, {"done": True, "text": "Hi there"}),
                ("close", {}),
            ],
        )
        self.assertEqual(chunks[0], 'event: ready\ndata: {"ok":true}\n\n')
        self.assertEqual(chunks[-1], "event: close\ndata: {}\n\n")
        self.assertEqual(relay.state, RelayState.CLOSED)
        self.assertEqual(relay.text, "Hi there")

    def test_provider_error_does_not_stop_stream(self) -> None:
        relay = StreamRelay(
            from_list(
                [
                    UpstreamEvent.delta("a"),
                    UpstreamEvent.error("rate limited"),
                    UpstreamEvent.delta("b"),
                    UpstreamEvent.end(),
                ]
            )
        )

        frames = asyncio.run(_frames(relay))

        self.assertEqual(
            [(f.type, f.text or f.message) for f in frames],
            [
                ("ready", None),
                ("delta", "a"),
                ("error", "rate limited"),
                ("delta", "b"),
                ("done", "ab"),
                ("close", None),
            ],
        )
        self.assertEqual(relay.state, RelayState.CLOSED)

    def test_upstream_exception_ends_with_error_and_close(self) -> None:
        relay = StreamRelay(from_list([UpstreamEvent.delta("partial"), ConnectionError("socket reset")]))

        frames = asyncio.run(_frames(relay))

        self.assertEqual(
            [f.type for f in frames],
            ["ready", "delta", "error", "close"],
        )
        self.assertEqual(frames[2].message, "socket reset")

    def test_exhausted_upstream_counts_as_end(self) -> None:
        relay = StreamRelay(from_list([UpstreamEvent.delta("only")]))

        frames = asyncio.run(_frames(relay))

        self.assertEqual([f.type for f in frames], ["ready", "delta", "done", "close"])
        self.assertEqual(frames[2].text, "only")

    def test_events_after_end_are_ignored(self) -> None:
        relay = StreamRelay(
            from_list([UpstreamEvent.delta("a"), UpstreamEvent.end(), UpstreamEvent.delta("late")])
        )

        frames = asyncio.run(_frames(relay))

        self.assertEqual([f.type for f in frames], ["ready", "delta", "done", "close"])

    def test_deltas_concatenate_to_done_text(self) -> None:
        scripts = [
            [],
            [UpstreamEvent.delta("é"), UpstreamEvent.delta("\n"), UpstreamEvent.delta('"q"')],
            [UpstreamEvent.error("x"), UpstreamEvent.delta("a"), UpstreamEvent.delta(""), UpstreamEvent.end()],
        ]
        for script in scripts:
            with self.subTest(script=script):
                chunks = asyncio.run(_collect(StreamRelay(from_list(script))))
                events = list(iter_events(chunks))
                deltas = "".join(data["delta"] for _, data in events if "delta" in data)
                done = [data for _, data in events if data.get("done")]
                self.assertEqual(len(done), 1)
                self.assertEqual(done[0]["text"], deltas)
                self.assertEqual([e for e, _ in events].count("ready"), 1)
                self.assertEqual([e for e, _ in events].count("close"), 1)
                self.assertEqual(events[0][0], "ready")
                self.assertEqual(events[-1][0], "close")

    def test_rejects_non_positive_interval(self) -> None:
        with self.assertRaises(ValueError):
            StreamRelay(from_list([]), heartbeat_interval=0)


class RelayTransportTests(unittest.TestCase):
    def test_heartbeat_interleaves_and_stops_at_close(self) -> None:
        async def slow():
            for text in ("a", "b"):
                await asyncio.sleep(0.05)
                yield UpstreamEvent.delta(text)
            yield UpstreamEvent.end()

        relay = StreamRelay(slow(), heartbeat_interval=0.01)
        chunks = asyncio.run(_collect(relay))

        self.assertIn(PING, chunks)
        self.assertTrue(chunks[0].startswith("event: ready"))
        self.assertTrue(chunks[-1].startswith("event: close"))
        payload = [c for c in chunks if c != PING]
        self.assertEqual(
            [data for _, data in iter_events(payload)][1:3],
            [{"delta": "a"}, {"delta": "b"}],
        )

    def test_concurrent_relays_leave_no_tasks(self) -> None:
        async def run() -> list[asyncio.Task]:
            async def one(i: int) -> list[str]:
                async def events():
                    for _ in range(3):
                        await asyncio.sleep(0.005 * (i % 4))
                        yield UpstreamEvent.delta(str(i))
                    if i % 3 == 0:
                        raise RuntimeError("upstream dropped")
                    yield UpstreamEvent.end()

                return await _collect(StreamRelay(events(), heartbeat_interval=0.002))

            results = await asyncio.gather(*(one(i) for i in range(25)))
            for chunks in results:
                self.assertTrue(chunks[-1].startswith("event: close"))
            return _relay_tasks()

        self.assertEqual(asyncio.run(run()), [])

    def test_consumer_abort_cleans_up(self) -> None:
        tracker = Tracker()

        async def run() -> tuple[StreamRelay, str, list[asyncio.Task]]:
            relay = StreamRelay(endless_deltas(tracker), heartbeat_interval=0.01)
            agen = relay.stream()
            first = await agen.__anext__()
            await agen.__anext__()
            await agen.aclose()
            return relay, first, _relay_tasks()

        relay, first, leftover = asyncio.run(run())

        self.assertTrue(first.startswith("event: ready"))
        self.assertEqual(leftover, [])
        self.assertTrue(tracker.closed)
        self.assertEqual(relay.state, RelayState.CLOSED)

    def test_disconnect_stops_writes(self) -> None:
        tracker = Tracker()
        probes = 0

        async def is_disconnected() -> bool:
            nonlocal probes
            probes += 1
            return probes >= 3

        async def run() -> tuple[StreamRelay, list[str], list[asyncio.Task]]:
            relay = StreamRelay(
                endless_deltas(tracker),
                heartbeat_interval=0.5,
                is_disconnected=is_disconnected,
            )
            chunks = await _collect(relay)
            return relay, chunks, _relay_tasks()

        relay, chunks, leftover = asyncio.run(run())

        self.assertEqual(len(chunks), 2)
        self.assertTrue(chunks[0].startswith("event: ready"))
        self.assertFalse(any(c.startswith("event: close") for c in chunks))
        self.assertEqual(leftover, [])
        self.assertTrue(tracker.closed)
        self.assertEqual(relay.state, RelayState.CLOSED)

    def test_stream_is_single_use(self) -> None:
        async def run() -> None:
            relay = StreamRelay(from_list([UpstreamEvent.end()]))
            await _collect(relay)
            with self.assertRaises(RuntimeError):
                await relay.stream().__anext__()

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
