"""
Page cache with single-flight fetch coordination.

Every address is fetched at most once for the lifetime of a ``CacheIndex``:
the first caller starts a load task, callers arriving while it runs await
that same task, and later callers are served from memory. When a durable
store holds a page, only its state is kept in memory and the body is read
back from the store on each hit.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .fetcher import PageFetcher
from ..exceptions import CacheStoreError, FetchError, FetchTimeoutError
from ..storage.cache_store import CacheStore
from ..utils.monitoring import CrawlerMonitor


class EntryState(Enum):
    UNCACHED = "uncached"
    FETCHING = "fetching"
    CACHED = "cached"


@dataclass
class PageContent:
    """Content returned by ``CacheIndex.resolve``."""
    address: str
    content: str
    from_cache: bool = False


@dataclass
class CacheEntry:
    """A cached page, or a cached failure, for one address."""
    address: str
    state: EntryState = EntryState.UNCACHED
    content: Optional[str] = None
    error: Optional[FetchError] = None
    from_store: bool = False
    persisted: bool = False
    load: Optional[asyncio.Task] = None


class CacheIndex:
    """
    Resolves addresses to page content through an optional durable store and
    the page fetcher.

    Statistics:
        hits: served from memory, or loaded from the durable store
        misses: required a network fetch
        joins: awaited a fetch another caller had already started
    """

    def __init__(self, fetcher: PageFetcher, store: Optional[CacheStore] = None,
                 fetch_timeout: Optional[float] = None, retry_failed_fetches: bool = False,
                 monitor: Optional[CrawlerMonitor] = None):
        self.fetcher = fetcher
        self.store = store
        self.fetch_timeout = fetch_timeout
        self.retry_failed_fetches = retry_failed_fetches
        self.monitor = monitor
        self.logger = logging.getLogger(__name__)

        self._entries: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0
        self.joins = 0
        self.fetch_failures = 0

    async def initialize(self):
        if self.store is not None:
            await self.store.initialize()
        self.logger.info("Cache index initialized"
                         + (f" with {type(self.store).__name__}" if self.store else ""))

    @property
    def known_addresses(self) -> int:
        """Addresses resolved to content or to a remembered failure."""
        return sum(1 for entry in self._entries.values() if entry.state is EntryState.CACHED)

    @property
    def in_flight(self) -> int:
        return sum(1 for entry in self._entries.values() if entry.state is EntryState.FETCHING)

    def state_of(self, address: str) -> EntryState:
        entry = self._entries.get(address)
        return entry.state if entry else EntryState.UNCACHED

    async def resolve(self, address: str) -> PageContent:
        """
        Return the content for an address.

        Raises:
            FetchError: the page could not be retrieved (FetchTimeoutError if
                the fetch exceeded ``fetch_timeout``)
        """
        start_time = time.monotonic()

        # Check-and-insert happens without an await in between, so two
        # callers can never both create an entry for the same address.
        entry = self._entries.get(address)
        if entry is None:
            entry = CacheEntry(address=address, state=EntryState.FETCHING)
            entry.load = asyncio.create_task(self._load(entry), name=f"cache-load:{address}")
            self._entries[address] = entry
            originator = True
        elif entry.state is EntryState.CACHED:
            if entry.persisted and entry.error is None:
                return await self._resolve_persisted(entry, start_time)
            self.hits += 1
            self._record(start_time, 'memory')
            return self._result(entry, entry.content, from_cache=True)
        else:
            originator = False
            self.joins += 1
            self.logger.debug(f"Joining in-flight fetch for {address}")

        # Shielded so a cancelled caller does not cancel the fetch others await.
        content = await asyncio.shield(entry.load)

        if originator:
            self._record(start_time, 'store' if entry.from_store else 'web')
        else:
            self._record(start_time, 'joined')
        return self._result(entry, content, from_cache=entry.from_store or not originator)

    async def _resolve_persisted(self, entry: CacheEntry, start_time: float) -> PageContent:
        address = entry.address
        content = await self._read_store(address)
        if content is None:
            self.logger.warning(f"Cached page for {address} is gone from the store, fetching it again")
            if self._entries.get(address) is entry:
                del self._entries[address]
            return await self.resolve(address)

        self.hits += 1
        self._record(start_time, 'store')
        return PageContent(address=address, content=content, from_cache=True)

    def _result(self, entry: CacheEntry, content: Optional[str], from_cache: bool) -> PageContent:
        if entry.error is not None:
            raise entry.error
        return PageContent(address=entry.address, content=content, from_cache=from_cache)

    def _record(self, start_time: float, source: str):
        if self.monitor:
            self.monitor.record_page_resolved(source, time.monotonic() - start_time)

    async def _load(self, entry: CacheEntry) -> Optional[str]:
        """
        Fill the entry from the store or the network and return the content.

        Failures are stored on the entry. Content already held by the store is
        not kept in memory.
        """
        address = entry.address
        content = None
        try:
            content = await self._read_store(address)
            if content is not None:
                entry.from_store = True
                entry.persisted = True
                self.hits += 1
                self.logger.debug(f"CACHE HIT (store): {address}")
            else:
                self.misses += 1
                self.logger.debug(f"CACHE MISS: {address}")
                page = await self._fetch(address)
                content = page.content
                entry.persisted = await self._write_store(address, content)
            if not entry.persisted:
                entry.content = content

        except asyncio.CancelledError:
            if self._entries.get(address) is entry:
                del self._entries[address]
            raise
        except FetchError as e:
            entry.error = e
        except Exception as e:
            # The fetcher is an external capability; anything it leaks is a fetch failure.
            self.logger.error(f"Unexpected error fetching {address}: {e}", exc_info=True)
            entry.error = FetchError(address, f"unexpected error: {e}")

        entry.state = EntryState.CACHED
        if entry.error is not None:
            self.fetch_failures += 1
            self.logger.warning(f"Fetch failed for {address}: {entry.error.reason}")
            if self.retry_failed_fetches and self._entries.get(address) is entry:
                del self._entries[address]
        return content

    async def _fetch(self, address: str):
        if self.fetch_timeout is None:
            return await self.fetcher.fetch(address)
        try:
            return await asyncio.wait_for(self.fetcher.fetch(address), timeout=self.fetch_timeout)
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(address, self.fetch_timeout) from e

    async def _read_store(self, address: str) -> Optional[str]:
        if self.store is None:
            return None
        try:
            return await self.store.get(address)
        except CacheStoreError as e:
            self.logger.warning(f"Cache store read failed, fetching from web instead: {e}")
            return None

    async def _write_store(self, address: str, content: str) -> bool:
        if self.store is None:
            return False
        try:
            await self.store.put(address, content)
        except CacheStoreError as e:
            self.logger.warning(f"Cache store write failed: {e}")
            return False
        return True

    async def close(self):
        """Cancel loads still in flight and close the durable store."""
        pending = [entry.load for entry in self._entries.values()
                   if entry.load is not None and not entry.load.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            self.logger.info(f"Cancelled {len(pending)} in-flight fetches")

        if self.store is not None:
            await self.store.close()

    def get_stats(self) -> Dict[str, int]:
        return {
            'hits': self.hits,
            'misses': self.misses,
            'joins': self.joins,
            'fetch_failures': self.fetch_failures,
            'known_addresses': self.known_addresses,
        }
