"""
In-memory stand-ins for the network capabilities used by the crawler tests.
"""

import asyncio
from collections import Counter

from linkspyder.crawler.fetcher import FetchedPage
from linkspyder.exceptions import DownloadError, FetchError


class FakeFetcher:
    """Serves pages from a dict; unknown URLs fail with HTTP 404."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = Counter()
        self.gates = {}

    def gate(self, url):
        """Hold fetches of url until the returned event is set."""
        event = asyncio.Event()
        self.gates[url] = event
        return event

    async def fetch(self, url):
        self.calls[url] += 1
        if url in self.gates:
            await self.gates[url].wait()
        if url in self.pages:
            return FetchedPage(url=url, content=self.pages[url])
        raise FetchError(url, "HTTP 404", 404)


class FakeTransport:
    """Records downloaded items; URLs in ``failures`` raise DownloadError."""

    def __init__(self, failures=()):
        self.failures = set(failures)
        self.downloaded = []
        self.gate = None

    async def download(self, item):
        if self.gate is not None:
            await self.gate.wait()
        if item.url in self.failures:
            raise DownloadError(item.url, "HTTP 500")
        self.downloaded.append(item.url)
        return item.url


async def wait_until(predicate, timeout=2.0):
    """Poll until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
