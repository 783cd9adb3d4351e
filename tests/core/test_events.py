"""
EventStream / sinks 单元测试
"""
import unittest
import asyncio
import json

from core.events import CallbackSink, CollectingSink, EventChannel, EventStream
from core.models import QrFinding


def _finding(payload="wxp://abc"):
    return QrFinding.create("https://example.com/", "https://example.com/qr.png", payload)


class TestEventStream(unittest.TestCase):

    def test_sequence_is_monotonic(self):
        async def run():
            sink = CollectingSink()
            events = EventStream(sink)
            await events.page(1, 10, "https://example.com/", 0, 0)
            await events.qr_found(_finding(), 1)
            await events.error("HTTP 404", url="https://example.com/x")
            await events.summary(1, 1, 1)
            return sink

        sink = asyncio.run(run())
        self.assertEqual([e.sequence for e in sink.events], [1, 2, 3, 4])
        self.assertEqual([e.type for e in sink.events], ["page", "qr_found", "error", "summary"])

    def test_event_payloads(self):
        async def run():
            sink = CollectingSink()
            events = EventStream(sink)
            await events.page(3, 10, "https://example.com/a", 2, 5)
            await events.error(ValueError("boom"), url="https://example.com/a")
            await events.summary(3, 5, 2, cancelled=True)
            return sink

        sink = asyncio.run(run())
        page, error, summary = sink.events
        self.assertEqual(page.processed_count, 3)
        self.assertEqual(page.depth, 2)
        self.assertIn("3/10", page.message)
        self.assertEqual(error.error, "boom")
        self.assertEqual(error.url, "https://example.com/a")
        self.assertTrue(summary.cancelled)
        self.assertEqual(summary.variant_count, 2)

    def test_without_sink_only_counts(self):
        async def run():
            events = EventStream()
            await events.summary(0, 0, 0)
            return events.sequence

        self.assertEqual(asyncio.run(run()), 1)

    def test_json_serializable(self):
        async def run():
            sink = CollectingSink()
            await EventStream(sink).qr_found(_finding("https://weixin.qq.com/r/abc"), 1)
            return sink.events[0]

        event = asyncio.run(run())
        data = json.loads(event.model_dump_json())
        self.assertEqual(data["type"], "qr_found")
        self.assertTrue(data["finding"]["is_wechat_variant"])


class TestSinks(unittest.TestCase):

    def test_collecting_sink_of_type(self):
        async def run():
            sink = CollectingSink()
            events = EventStream(sink)
            await events.page(1, 5, "https://example.com/", 0, 0)
            await events.summary(1, 0, 0)
            return sink

        sink = asyncio.run(run())
        self.assertEqual(len(sink.of_type("page")), 1)
        self.assertEqual(len(sink.of_type("qr_found")), 0)

    def test_callback_sink_sync(self):
        received = []

        async def run():
            await EventStream(CallbackSink(received.append)).summary(0, 0, 0)

        asyncio.run(run())
        self.assertEqual(len(received), 1)

    def test_callback_sink_async(self):
        received = []

        async def callback(event):
            await asyncio.sleep(0)
            received.append(event.type)

        async def run():
            events = EventStream(CallbackSink(callback))
            await events.page(1, 5, "https://example.com/", 0, 0)
            await events.summary(1, 0, 0)

        asyncio.run(run())
        self.assertEqual(received, ["page", "summary"])


class TestEventChannel(unittest.TestCase):

    def test_producer_consumer_order(self):
        async def run():
            channel = EventChannel(maxsize=2)
            events = EventStream(channel)

            async def produce():
                for i in range(5):
                    await events.page(i + 1, 5, f"https://example.com/{i}", 0, 0)
                await channel.close()

            producer = asyncio.create_task(produce())
            received = [e.processed_count async for e in channel]
            await producer
            return received

        self.assertEqual(asyncio.run(run()), [1, 2, 3, 4, 5])

    def test_emit_after_close_raises(self):
        async def run():
            channel = EventChannel()
            await channel.close()
            self.assertTrue(channel.closed)
            with self.assertRaises(RuntimeError):
                await EventStream(channel).summary(0, 0, 0)

        asyncio.run(run())

    def test_iteration_after_close_ends(self):
        async def run():
            channel = EventChannel()
            await channel.close()
            first = [e async for e in channel]
            second = [e async for e in channel]
            return first, second

        self.assertEqual(asyncio.run(run()), ([], []))

    def test_detach_discards_and_unblocks(self):
        async def run():
            channel = EventChannel(maxsize=1)
            events = EventStream(channel)
            await events.summary(0, 0, 0)
            blocked = asyncio.create_task(events.summary(0, 0, 0))
            await asyncio.sleep(0)
            self.assertFalse(blocked.done())
            channel.detach()
            await asyncio.wait_for(blocked, timeout=1)
            # 之后的事件直接丢弃，即使队列已满也不阻塞
            await asyncio.wait_for(events.summary(0, 0, 0), timeout=1)
            await asyncio.wait_for(events.summary(0, 0, 0), timeout=1)

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
