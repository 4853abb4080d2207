"""
Bounded background queue for media downloads.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .fetcher import DownloadTransport
from ..exceptions import DownloadError
from ..utils.monitoring import CrawlerMonitor


@dataclass(frozen=True)
class DownloadItem:
    """A media URL found in an HTML tag."""
    url: str
    tag_type: str


class DownloadQueue:
    """
    Bounded FIFO of download items drained by a single worker.

    ``enqueue`` applies backpressure once ``capacity`` items are waiting.
    After ``set_input_complete`` the drain worker keeps going until the queue
    is empty and then exits.
    """

    def __init__(self, transport: DownloadTransport, capacity: int = 100,
                 monitor: Optional[CrawlerMonitor] = None):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.transport = transport
        self.capacity = capacity
        self.monitor = monitor
        self.logger = logging.getLogger(__name__)

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self._input_complete = asyncio.Event()
        self._worker: Optional[asyncio.Task] = None

        self.enqueued = 0
        self.attempted = 0
        self.completed = 0
        self.failed = 0

    @property
    def input_complete(self) -> bool:
        return self._input_complete.is_set()

    def qsize(self) -> int:
        return self._queue.qsize()

    async def enqueue(self, item: DownloadItem):
        """Add an item, waiting while the queue is full."""
        if self._input_complete.is_set():
            raise RuntimeError("enqueue called after set_input_complete")
        await self._queue.put(item)
        self.enqueued += 1
        self.logger.debug(f"Queued download {item.url} ({self._queue.qsize()}/{self.capacity})")

    def set_input_complete(self):
        """Signal that no more items will be enqueued. Idempotent."""
        if not self._input_complete.is_set():
            self._input_complete.set()
            self.logger.debug("Download queue input complete")

    async def dequeue(self) -> Optional[DownloadItem]:
        """
        Wait for the next item.

        Returns None once input is complete and the queue is empty.
        """
        while True:
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._input_complete.is_set():
                return None

            getter = asyncio.ensure_future(self._queue.get())
            completion = asyncio.ensure_future(self._input_complete.wait())
            try:
                await asyncio.wait({getter, completion}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                completion.cancel()
                if not getter.done():
                    getter.cancel()
            if getter.done() and not getter.cancelled():
                return getter.result()

    def start(self) -> asyncio.Task:
        """Start the drain worker."""
        if self._worker is None:
            self._worker = asyncio.create_task(self._drain(), name="download-drain")
        return self._worker

    async def join(self):
        """Wait for the drain worker to finish; requires set_input_complete."""
        if self._worker is not None:
            await self._worker

    async def close(self):
        """Stop the drain worker without processing the remaining items."""
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            dropped += 1
        if dropped:
            self.logger.info(f"Dropped {dropped} queued downloads")

    async def _drain(self):
        self.logger.info("Download worker started")
        while True:
            item = await self.dequeue()
            if item is None:
                break
            await self._process(item)
        self.logger.info(f"Download worker finished: {self.completed} completed, {self.failed} failed")

    async def _process(self, item: DownloadItem):
        self.attempted += 1
        try:
            path = await self.transport.download(item)
        except DownloadError as e:
            self.failed += 1
            self.logger.warning(str(e))
            self._record('failed')
        except Exception as e:
            self.failed += 1
            self.logger.error(f"Unexpected error downloading {item.url}: {e}", exc_info=True)
            self._record('failed')
        else:
            self.completed += 1
            self.logger.info(f"Downloaded {item.tag_type} {item.url} -> {path}")
            self._record('completed')

    def _record(self, outcome: str):
        if self.monitor:
            self.monitor.record_download(outcome)
