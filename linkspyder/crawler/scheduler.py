"""
Crawl controller: owns the worker pool and the crawl lifecycle.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from .cache_index import CacheIndex
from .download_queue import DownloadQueue
from .events import CrawlEvents, CrawlFinished, CrawlState, StateChanged
from .fetcher import DownloadTransport, PageFetcher
from .parser import ContentParser
from .traversal import TraversalEngine, is_crawlable_url, matches_exclusion, normalize_url
from .url_frontier import CrawlSession, CrawlTask, LinkOrigin
from ..results import OutputAggregator, SessionStatistics, UrlCategory
from ..exceptions import (ConfigurationError, FetchError, FetchTimeoutError,
                          InvalidStateTransition, ParseError)
from ..storage.cache_store import CacheStore
from ..storage.output_writer import OutputWriter
from ..utils.config import Config
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlerMonitor


ALLOWED_TRANSITIONS = {
    CrawlState.IDLE: {CrawlState.CRAWLING},
    CrawlState.CRAWLING: {CrawlState.PAUSED, CrawlState.COMPLETED, CrawlState.CANCELLED},
    CrawlState.PAUSED: {CrawlState.CRAWLING, CrawlState.CANCELLED},
    # A finished controller may start its next session.
    CrawlState.COMPLETED: {CrawlState.CRAWLING},
    CrawlState.CANCELLED: {CrawlState.CRAWLING},
}


def read_seed_file(path: str, exclusions: Sequence[str] = ()) -> List[str]:
    """
    Read seed URLs, one per line.

    Blank lines and '#' comments are skipped; invalid URLs and URLs matching
    an exclusion pattern are logged and skipped.
    """
    logger = logging.getLogger(__name__)
    seeds = []
    with open(path, 'r', encoding='utf-8') as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            url = normalize_url(line, line)
            if url is None or not is_crawlable_url(url):
                logger.warning(f"Skipping invalid seed URL on line {line_number}: {line}")
                continue
            if matches_exclusion(url, exclusions):
                logger.warning(f"Skipping excluded seed URL on line {line_number}: {line}")
                continue
            if url not in seeds:
                seeds.append(url)
    return seeds


class CrawlController:
    """
    Coordinates the cache index, traversal engine, download queue and output
    aggregator for one crawl session at a time.
    """

    STATS_INTERVAL = 30

    def __init__(self, config: Config, fetcher: PageFetcher,
                 parser: Optional[ContentParser] = None,
                 store: Optional[CacheStore] = None,
                 download_transport: Optional[DownloadTransport] = None,
                 output: Optional[OutputAggregator] = None,
                 output_writer: Optional[OutputWriter] = None,
                 monitor: Optional[CrawlerMonitor] = None,
                 events: Optional[CrawlEvents] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.parser = parser or ContentParser()
        self.cache = CacheIndex(
            fetcher,
            store=store,
            fetch_timeout=config.crawler.fetch_timeout,
            retry_failed_fetches=config.cache.retry_failed_fetches,
            monitor=monitor
        )
        self.download_transport = download_transport
        self.output = output or OutputAggregator()
        self.output_writer = output_writer
        self.monitor = monitor
        self.events = events or CrawlEvents()

        self.state = CrawlState.IDLE
        self.session: Optional[CrawlSession] = None
        self.downloads: Optional[DownloadQueue] = None
        self.workers: List[asyncio.Task] = []
        self.urls_crawled = 0

        self._engine: Optional[TraversalEngine] = None
        self._resume = asyncio.Event()
        self._follow_links = True
        self._initialized = False

    @property
    def is_crawling(self) -> bool:
        return self.state in (CrawlState.CRAWLING, CrawlState.PAUSED)

    @property
    def is_paused(self) -> bool:
        return self.state is CrawlState.PAUSED

    async def initialize(self):
        if not self._initialized:
            await self.cache.initialize()
            self._initialized = True

    # Session control surface

    async def begin_spyder(self, seed_url: str) -> SessionStatistics:
        """Crawl from one seed URL until the frontier is exhausted or the crawl is cancelled."""
        return await self._run_session([seed_url])

    async def start_crawling(self) -> SessionStatistics:
        """Crawl from the configured starting URL."""
        if not self.config.crawler.starting_url:
            raise ConfigurationError(["crawler.starting_url is required to start crawling"])
        return await self.begin_spyder(self.config.crawler.starting_url)

    async def scrape_single_site(self, url: Optional[str] = None) -> SessionStatistics:
        """Fetch one page and record its links without following them."""
        url = url or self.config.crawler.starting_url
        if not url:
            raise ConfigurationError(["a URL or crawler.starting_url is required"])
        return await self._run_session([url], follow_links=False)

    async def begin_processing_input_file(self, path: Optional[str] = None) -> List[SessionStatistics]:
        """
        Crawl every seed in an input file.

        In 'sequential' mode each seed gets its own session, in file order; a
        cancelled session stops the rest of the file. In 'merged' mode one
        session starts from all seeds at once.
        """
        path = path or self.config.input_file.path
        if not path:
            raise ConfigurationError(["input_file.path is required to process an input file"])
        if not Path(path).exists():
            raise ConfigurationError([f"input file not found: {path}"])

        seeds = read_seed_file(path, self.config.crawler.link_pattern_exclusions)
        if not seeds:
            self.logger.warning(f"No valid seed URLs in {path}")
            return []

        mode = self.config.input_file.mode
        self.logger.info(f"Processing {len(seeds)} seed URLs from {path} ({mode} mode)")

        if mode == 'merged':
            return [await self._run_session(seeds)]

        results = []
        for index, seed in enumerate(seeds, start=1):
            self.logger.info(f"Input file seed {index}/{len(seeds)}: {seed}")
            results.append(await self.begin_spyder(seed))
            if self.state is CrawlState.CANCELLED:
                self.logger.warning("Input file processing stopped by cancellation")
                break
        return results

    def pause(self):
        """Stop handing frontier items to workers; in-flight tasks finish."""
        self._transition(CrawlState.PAUSED)
        self._resume.clear()

    def resume(self):
        if self.state is not CrawlState.PAUSED:
            raise InvalidStateTransition(self.state, CrawlState.CRAWLING)
        self._transition(CrawlState.CRAWLING)
        self._resume.set()

    def cancel_crawling_tasks(self):
        """Signal cancellation; the running session unwinds to CANCELLED."""
        if self.session is None or not self.is_crawling:
            self.logger.warning("Cancel requested but no crawl is running")
            return
        self.logger.warning("A request to cancel all crawling tasks has been initiated")
        self.session.cancelled.set()
        # Paused workers must wake up to observe the signal.
        self._resume.set()

    async def close(self):
        """Shut down the cache and hand the final output snapshot to the writer."""
        if self.is_crawling:
            self.cancel_crawling_tasks()
        await self.cache.close()
        if self.output_writer is not None:
            self.output_writer.write(self.output.snapshot())
        self.logger.info("Crawl controller closed")

    @property
    def statistics(self) -> SessionStatistics:
        """Statistics for the current (or last) session, computed now."""
        return SessionStatistics(
            cache_hits=self.cache.hits,
            cache_misses=self.cache.misses,
            cache_joins=self.cache.joins,
            cache_entries=self.cache.known_addresses,
            urls_crawled=self.urls_crawled,
            downloads_attempted=self.downloads.attempted if self.downloads else 0,
            downloads_failed=self.downloads.failed if self.downloads else 0,
            elapsed_time=self.session.elapsed_time if self.session else 0.0,
            collection_counts=self.output.counts(),
        )

    # Lifecycle

    def _transition(self, new_state: CrawlState):
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidStateTransition(self.state, new_state)
        previous = self.state
        self.state = new_state
        self.logger.info(f"Crawler state: {previous.value} -> {new_state.value}")
        self.events.publish(StateChanged(previous=previous, current=new_state))

    def _prepare_seeds(self, seed_urls: Sequence[str]) -> List[str]:
        exclusions = self.config.crawler.link_pattern_exclusions
        seeds = []
        invalid = []
        for raw in seed_urls:
            url = normalize_url(raw, raw) if raw else None
            if url is None or not is_crawlable_url(url):
                invalid.append(f"invalid seed URL: {raw!r}")
            elif matches_exclusion(url, exclusions):
                invalid.append(f"seed URL matches an excluded pattern: {raw!r}")
            elif url not in seeds:
                seeds.append(url)
        if invalid:
            raise ConfigurationError(invalid)
        return seeds

    async def _run_session(self, seed_urls: Sequence[str], follow_links: bool = True) -> SessionStatistics:
        seeds = self._prepare_seeds(seed_urls)
        await self.initialize()

        session = CrawlSession.create(self.config, seeds)
        self._transition(CrawlState.CRAWLING)
        self.session = session
        self.urls_crawled = 0
        self._resume = asyncio.Event()
        self._resume.set()
        self._engine = TraversalEngine(session, self.cache, self.parser, self.output)
        self._follow_links = follow_links

        for url in seeds:
            if session.visited.add(url):
                session.frontier.add(CrawlTask(url=url, depth=0, origin=LinkOrigin.SEED))

        self.downloads = None
        if self.config.downloads.enabled and self.download_transport is not None:
            self.downloads = DownloadQueue(
                self.download_transport,
                capacity=self.config.downloads.queue_capacity,
                monitor=self.monitor
            )
            self.downloads.start()

        worker_count = self.config.crawler.concurrent_crawling_tasks
        self.workers = [
            asyncio.create_task(self._worker(i), name=f"crawl-worker-{i}")
            for i in range(worker_count)
        ]
        stats_task = asyncio.create_task(self._stats_reporter())
        self.logger.info(f"Started crawling {', '.join(seeds)} with {worker_count} workers, "
                         f"depth limit {session.depth_limit}")

        completed = False
        try:
            completed = await self._wait_or_cancel(session.frontier.join())
            if completed and self.is_paused:
                # Nothing left to dispatch, but completion waits for resume.
                completed = await self._wait_or_cancel(self._resume.wait())
            await self._stop_workers()

            if completed and self.downloads is not None:
                self.downloads.set_input_complete()
                completed = await self._wait_or_cancel(self.downloads.join())
        except asyncio.CancelledError:
            session.cancelled.set()
            await self._shutdown_session(session, completed=False)
            raise
        finally:
            stats_task.cancel()

        return await self._shutdown_session(session, completed)

    async def _shutdown_session(self, session: CrawlSession, completed: bool) -> SessionStatistics:
        if not completed:
            await self._stop_workers()
            if self.downloads is not None:
                await self.downloads.close()
            dropped = session.frontier.drain()
            if dropped:
                self.logger.info(f"Discarded {dropped} unprocessed crawl tasks")

        session.finish()
        self._transition(CrawlState.COMPLETED if completed else CrawlState.CANCELLED)

        statistics = self.statistics
        self._log_final_stats(statistics)
        self.events.publish(CrawlFinished(state=self.state, seed_urls=session.seed_urls,
                                          statistics=statistics))
        return statistics

    async def _wait_or_cancel(self, awaitable) -> bool:
        """Await until the awaitable finishes (True) or the session is cancelled (False)."""
        session = self.session
        work = asyncio.ensure_future(awaitable)
        cancel_wait = asyncio.ensure_future(session.cancelled.wait())
        try:
            await asyncio.wait({work, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for future in (work, cancel_wait):
                if not future.done():
                    future.cancel()
        return not session.is_cancelled() and work.done() and not work.cancelled()

    async def _stop_workers(self):
        for worker in self.workers:
            if not worker.done():
                worker.cancel()
        if self.workers:
            await asyncio.gather(*self.workers, return_exceptions=True)
        self.workers = []

    # Workers

    async def _worker(self, worker_id: int):
        log = get_crawler_logger(__name__, worker=f"worker-{worker_id}")
        session = self.session
        log.debug(f"Worker {worker_id} started")

        while True:
            task = await session.frontier.get()
            try:
                await self._resume.wait()
                if session.is_cancelled():
                    continue
                await self._process_task(session, task, log)
            finally:
                session.frontier.task_done()

    async def _process_task(self, session: CrawlSession, task: CrawlTask, log):
        if self.monitor:
            self.monitor.worker_started()
        try:
            expansion = await self._engine.expand(task)
        except FetchError as e:
            self._record_failure(task, 'timeout' if isinstance(e, FetchTimeoutError) else 'fetch', e.reason, log)
            return
        except ParseError as e:
            self._record_failure(task, 'parse', e.reason, log)
            return
        except Exception as e:
            log.error(f"Unexpected error processing {task.url}: {e}", exc_info=True)
            self._record_failure(task, 'unexpected', str(e), log)
            return
        finally:
            if self.monitor:
                self.monitor.worker_finished()

        self.urls_crawled += 1
        self.output.record(task.url, UrlCategory.SCRAPED_THIS_SESSION)

        if self._follow_links and not session.is_cancelled():
            session.frontier.add_many(expansion.children)

        if self.downloads is not None:
            for item in expansion.downloads:
                await self.downloads.enqueue(item)

        if self.monitor:
            self.monitor.update_frontier_size(session.frontier.qsize())

    def _record_failure(self, task: CrawlTask, error_type: str, reason: str, log):
        log.log_url_event(logging.WARNING, task.url, f"Crawl failed for {task.url}: {reason}")
        self.output.record(task.url, UrlCategory.FAILED_URLS)
        if self.monitor:
            self.monitor.record_error(error_type)

    # Reporting

    async def _stats_reporter(self):
        """Periodically log crawl progress."""
        while True:
            await asyncio.sleep(self.STATS_INTERVAL)
            stats = self.statistics
            self.logger.info(
                f"Crawl Progress: "
                f"State={self.state.value}, "
                f"Crawled={stats.urls_crawled}, "
                f"Queued={self.session.frontier.qsize()}, "
                f"Failed={stats.count(UrlCategory.FAILED_URLS)}, "
                f"CacheHits={stats.cache_hits}, "
                f"CacheMisses={stats.cache_misses}"
            )

    def _log_final_stats(self, stats: SessionStatistics):
        self.logger.info(f"=== CRAWL {self.state.value.upper()} ===")
        self.logger.info(f"Cache entries: {stats.cache_entries}")
        self.logger.info(f"URLs scheduled: {self.session.frontier.total_added}")
        self.logger.info(f"URLs crawled: {stats.urls_crawled}")
        self.logger.info(f"Session captured: {stats.count(UrlCategory.SCRAPED_THIS_SESSION)}")
        self.logger.info(f"Failed URLs: {stats.count(UrlCategory.FAILED_URLS)}")
        self.logger.info(f"Seed URLs: {stats.count(UrlCategory.SEED_LINKS)}")
        self.logger.info(f"External URLs: {stats.count(UrlCategory.EXTERNAL_LINKS)}")
        self.logger.info(f"Video URLs: {stats.count(UrlCategory.VIDEO_LINKS)}")
        self.logger.info(f"Downloads: {stats.downloads_attempted} attempted, {stats.downloads_failed} failed")
        self.logger.info(f"Cache hits: {stats.cache_hits}, misses: {stats.cache_misses}, joins: {stats.cache_joins}")
        self.logger.info(f"Elapsed time: {stats.elapsed_time:.2f} seconds")
