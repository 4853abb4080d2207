#!/usr/bin/env python3
"""
Main entry point for Link Spyder.
"""

import asyncio
import argparse
import logging
import signal
import sys
from typing import Optional

from linkspyder import __version__
from linkspyder.crawler.fetcher import HttpDownloader, WebFetcher
from linkspyder.crawler.scheduler import CrawlController
from linkspyder.exceptions import ConfigurationError, FetchError, SpyderError
from linkspyder.storage.cache_store import create_cache_store
from linkspyder.storage.output_writer import OutputWriter
from linkspyder.utils.config import Config, load_config
from linkspyder.utils.logger import log_system_info, setup_logging
from linkspyder.utils.monitoring import CrawlerMonitor


class SpyderApp:
    """Main application class for the crawler."""

    def __init__(self):
        self.controller: Optional[CrawlController] = None
        self.logger = logging.getLogger(__name__)

    def setup_signal_handlers(self):
        """Route SIGINT/SIGTERM to crawl cancellation."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, cancelling crawl...")
            if self.controller:
                self.controller.cancel_crawling_tasks()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except NotImplementedError:
                # Windows event loops do not support add_signal_handler.
                signal.signal(signum, lambda s, f: loop.call_soon_threadsafe(signal_handler, s))

    @staticmethod
    def apply_overrides(config: Config, args) -> Config:
        changes = {}
        if args.url:
            changes['starting_url'] = args.url
        if args.depth is not None:
            changes['depth_limit'] = args.depth
        return config.with_crawler(**changes) if changes else config

    async def run(self, args) -> int:
        """Run the crawler."""
        try:
            config = self.apply_overrides(load_config(args.config), args)
        except ConfigurationError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        setup_logging(config.logging)
        log_system_info()
        self.setup_signal_handlers()

        self.logger.info("=== LINK SPYDER STARTING ===")
        self.logger.info(f"Configuration loaded from: {args.config}")
        self.logger.info(f"Starting URL: {config.crawler.starting_url or '(none)'}")
        self.logger.info(f"Depth limit: {config.crawler.depth_limit}")
        self.logger.info(f"Concurrent crawling tasks: {config.crawler.concurrent_crawling_tasks}")
        self.logger.info(f"Local cache: {config.cache.backend if config.cache.use_local_cache else 'disabled'}")

        if args.dry_run:
            self.logger.info("DRY RUN MODE: No actual crawling will be performed")
            await self._dry_run(config)
            return 0

        monitor = None
        if config.monitoring.metrics_enabled:
            monitor = CrawlerMonitor()
            monitor.start_server(config.monitoring.prometheus_port)

        fetcher = WebFetcher(
            user_agent=config.crawler.user_agent,
            request_timeout=config.crawler.fetch_timeout,
            max_concurrent_requests=config.crawler.concurrent_crawling_tasks
        )
        downloader = None
        if config.downloads.enabled:
            downloader = HttpDownloader(config.downloads.directory, config.crawler.user_agent)

        self.controller = CrawlController(
            config,
            fetcher,
            store=create_cache_store(config.cache),
            download_transport=downloader,
            output_writer=OutputWriter(config.output),
            monitor=monitor
        )

        exit_code = 0
        try:
            await fetcher.start()
            if downloader:
                await downloader.start()

            if args.input_file:
                await self.controller.begin_processing_input_file(args.input_file)
            elif args.single:
                await self.controller.scrape_single_site()
            elif config.crawler.starting_url:
                await self.controller.start_crawling()
            elif config.input_file.path:
                await self.controller.begin_processing_input_file()
            else:
                raise ConfigurationError(["nothing to crawl: set crawler.starting_url, "
                                          "input_file.path, --url or --input-file"])

        except ConfigurationError as e:
            self.logger.error(str(e))
            exit_code = 1
        except SpyderError as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            exit_code = 1

        finally:
            await self.controller.close()
            await fetcher.close()
            if downloader:
                await downloader.close()
            self.logger.info("=== LINK SPYDER FINISHED ===")

        return exit_code

    async def _dry_run(self, config: Config):
        """Check the configured cache backend and fetch the starting URL once."""
        store = create_cache_store(config.cache)
        if store is not None:
            self.logger.info(f"Testing {config.cache.backend} cache store...")
            try:
                await store.initialize()
                self.logger.info("Cache store initialization successful")
            except SpyderError as e:
                self.logger.error(f"Cache store initialization failed: {e}")
            finally:
                await store.close()

        if config.crawler.starting_url:
            self.logger.info("Testing fetcher configuration...")
            async with WebFetcher(
                user_agent=config.crawler.user_agent,
                request_timeout=config.crawler.fetch_timeout,
                max_concurrent_requests=1
            ) as fetcher:
                try:
                    page = await fetcher.fetch(config.crawler.starting_url)
                    self.logger.info(f"Test fetch successful: {page.status_code}")
                except FetchError as e:
                    self.logger.warning(f"Test fetch failed: {e}")

        self.logger.info("Dry run completed")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Link Spyder - concurrent link crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                 # Crawl crawler.starting_url from config.yaml
  python main.py --url https://example.com/      # Crawl a different starting URL
  python main.py --url https://example.com/ --single   # Scrape one page without following links
  python main.py --input-file seeds.txt         # Crawl every URL listed in a file
  python main.py --dry-run                      # Test configuration only
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '--url',
        help='Starting URL, overrides crawler.starting_url'
    )

    parser.add_argument(
        '--input-file',
        help='File of seed URLs, one per line'
    )

    parser.add_argument(
        '--single',
        action='store_true',
        help='Scrape the starting URL only, recording its links without following them'
    )

    parser.add_argument(
        '--depth',
        type=int,
        help='Depth limit, overrides crawler.depth_limit'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Test configuration without actually crawling'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Link Spyder {__version__}'
    )
    return parser


def main():
    """Main entry point."""
    args = build_arg_parser().parse_args()

    app = SpyderApp()
    try:
        return asyncio.run(app.run(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
