"""
URL frontier, visited set and per-session crawl state.
"""

import asyncio
import logging
import threading
import time
from typing import FrozenSet, Iterable, Optional, Set
from urllib.parse import urlparse
from dataclasses import dataclass, field
from enum import Enum

from ..utils.config import Config


class LinkOrigin(Enum):
    """Whether a link belongs to a seed host or to some other host."""
    SEED = "seed"
    EXTERNAL = "external"


@dataclass(frozen=True)
class CrawlTask:
    """A URL scheduled for crawling. Consumed exactly once by a worker."""
    url: str
    depth: int
    origin: LinkOrigin = LinkOrigin.SEED
    parent_url: Optional[str] = None


def get_host(url: str) -> str:
    """Extract the lowercased host (without port) from a URL."""
    return (urlparse(url).hostname or "").lower()


class VisitedSet:
    """
    Normalized URLs already scheduled or processed in a session.

    ``add`` is an atomic check-and-insert: exactly one caller ever gets True
    for a given URL.
    """

    def __init__(self):
        self._urls: Set[str] = set()
        self._lock = threading.Lock()

    def add(self, url: str) -> bool:
        """Insert the URL; return False if it was already present."""
        with self._lock:
            if url in self._urls:
                return False
            self._urls.add(url)
            return True

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)


class URLFrontier:
    """
    FIFO of crawl tasks with outstanding-work accounting.

    A task counts as outstanding from ``add`` until the worker that took it
    calls ``task_done``; ``join`` returns once nothing is outstanding, which
    is how the controller detects natural completion.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._queue: asyncio.Queue = asyncio.Queue()
        self.total_added = 0

    def add(self, task: CrawlTask):
        """Add a task to the frontier; never blocks."""
        self._queue.put_nowait(task)
        self.total_added += 1
        self.logger.debug(f"Added URL to frontier: {task.url} (depth {task.depth})")

    def add_many(self, tasks: Iterable[CrawlTask]) -> int:
        count = 0
        for task in tasks:
            self.add(task)
            count += 1
        return count

    async def get(self) -> CrawlTask:
        """Wait for the next task."""
        return await self._queue.get()

    def task_done(self):
        self._queue.task_done()

    async def join(self):
        """Wait until every added task has been marked done."""
        await self._queue.join()

    def drain(self) -> int:
        """Drop every queued task, marking each done. Used on cancellation."""
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            dropped += 1
        return dropped

    def qsize(self) -> int:
        return self._queue.qsize()


@dataclass
class CrawlSession:
    """State for one crawl run."""
    config: Config
    seed_urls: tuple
    seed_hosts: FrozenSet[str]
    visited: VisitedSet = field(default_factory=VisitedSet)
    frontier: URLFrontier = field(default_factory=URLFrontier)
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)
    downloads_seen: VisitedSet = field(default_factory=VisitedSet)
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    @classmethod
    def create(cls, config: Config, seed_urls: Iterable[str]) -> 'CrawlSession':
        seeds = tuple(seed_urls)
        return cls(
            config=config,
            seed_urls=seeds,
            seed_hosts=frozenset(get_host(url) for url in seeds),
        )

    @property
    def depth_limit(self) -> int:
        return self.config.crawler.depth_limit

    @property
    def elapsed_time(self) -> float:
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time

    def is_cancelled(self) -> bool:
        return self.cancelled.is_set()

    def finish(self):
        if self.end_time is None:
            self.end_time = time.time()
