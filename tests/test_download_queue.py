"""
Tests for the bounded download queue.
"""

import asyncio
import unittest
from unittest.mock import MagicMock

from linkspyder.crawler.download_queue import DownloadItem, DownloadQueue

from fakes import FakeTransport


def item(name):
    return DownloadItem(url=f"http://a.test/{name}.mp4", tag_type="video")


class TestDownloadQueue(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.transport = FakeTransport()

    async def test_second_enqueue_waits_for_dequeue(self):
        """Scenario: capacity 1, two items enqueued back to back before any dequeue."""
        queue = DownloadQueue(self.transport, capacity=1)
        await queue.enqueue(item("one"))

        second = asyncio.create_task(queue.enqueue(item("two")))
        await asyncio.sleep(0.01)
        self.assertFalse(second.done())

        first = await queue.dequeue()
        self.assertEqual(first, item("one"))
        await asyncio.wait_for(second, timeout=1)
        self.assertEqual(queue.qsize(), 1)

    async def test_producer_blocks_while_worker_is_busy(self):
        self.transport.gate = asyncio.Event()
        queue = DownloadQueue(self.transport, capacity=1)
        queue.start()

        await queue.enqueue(item("one"))
        await asyncio.sleep(0.01)
        await queue.enqueue(item("two"))
        third = asyncio.create_task(queue.enqueue(item("three")))
        await asyncio.sleep(0.01)
        self.assertFalse(third.done())

        self.transport.gate.set()
        await asyncio.wait_for(third, timeout=1)
        queue.set_input_complete()
        await asyncio.wait_for(queue.join(), timeout=1)

        self.assertEqual(self.transport.downloaded,
                         [item("one").url, item("two").url, item("three").url])

    async def test_drain_finishes_after_input_complete(self):
        queue = DownloadQueue(self.transport, capacity=5)
        queue.start()
        await queue.enqueue(item("one"))
        queue.set_input_complete()
        queue.set_input_complete()

        await asyncio.wait_for(queue.join(), timeout=1)

        self.assertEqual(queue.completed, 1)
        self.assertIsNone(await queue.dequeue())

    async def test_dequeue_wakes_on_input_complete(self):
        queue = DownloadQueue(self.transport)
        waiter = asyncio.create_task(queue.dequeue())
        await asyncio.sleep(0.01)
        self.assertFalse(waiter.done())

        queue.set_input_complete()
        self.assertIsNone(await asyncio.wait_for(waiter, timeout=1))

    async def test_failed_download_does_not_stop_worker(self):
        transport = FakeTransport(failures={item("two").url})
        monitor = MagicMock()
        queue = DownloadQueue(transport, monitor=monitor)
        queue.start()
        for name in ("one", "two", "three"):
            await queue.enqueue(item(name))
        queue.set_input_complete()
        await asyncio.wait_for(queue.join(), timeout=1)

        self.assertEqual(queue.attempted, 3)
        self.assertEqual(queue.completed, 2)
        self.assertEqual(queue.failed, 1)
        self.assertEqual(transport.downloaded, [item("one").url, item("three").url])
        monitor.record_download.assert_any_call('failed')

    async def test_enqueue_after_input_complete_is_rejected(self):
        queue = DownloadQueue(self.transport)
        queue.set_input_complete()
        with self.assertRaises(RuntimeError):
            await queue.enqueue(item("late"))

    async def test_close_drops_pending_items(self):
        self.transport.gate = asyncio.Event()
        queue = DownloadQueue(self.transport, capacity=5)
        queue.start()
        for name in ("one", "two", "three"):
            await queue.enqueue(item(name))
        await asyncio.sleep(0.01)

        await queue.close()

        self.assertEqual(queue.qsize(), 0)
        self.assertEqual(self.transport.downloaded, [])

    def test_capacity_must_be_positive(self):
        with self.assertRaises(ValueError):
            DownloadQueue(self.transport, capacity=0)


if __name__ == '__main__':
    unittest.main()
