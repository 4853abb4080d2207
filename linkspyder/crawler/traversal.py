"""
Link extraction, filtering and classification for one crawl task.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional
from urllib.parse import urljoin, urlparse, urlunparse

from .cache_index import CacheIndex, PageContent
from .download_queue import DownloadItem
from .parser import ContentParser, ParsedContent
from .url_frontier import CrawlSession, CrawlTask, LinkOrigin, get_host
from ..results import OutputAggregator, UrlCategory


def normalize_url(base_url: str, href: str) -> Optional[str]:
    """
    Resolve href against base_url, drop the fragment and lowercase the scheme
    and host. Returns None for references that cannot be parsed.
    """
    try:
        parsed = urlparse(urljoin(base_url, href.strip()))
        netloc = parsed.netloc.lower()
    except ValueError:
        return None

    path = parsed.path
    if netloc and not path:
        path = '/'
    return urlunparse((parsed.scheme.lower(), netloc, path, parsed.params, parsed.query, ''))


def is_crawlable_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.hostname)


def matches_exclusion(url: str, patterns: Iterable[str]) -> bool:
    lowered = url.lower()
    return any(pattern.lower() in lowered for pattern in patterns)


@dataclass
class Expansion:
    """Outcome of expanding one crawl task."""
    task: CrawlTask
    page: PageContent
    parsed: ParsedContent
    children: List[CrawlTask] = field(default_factory=list)
    downloads: List[DownloadItem] = field(default_factory=list)
    seed_links: List[str] = field(default_factory=list)
    external_links: List[str] = field(default_factory=list)
    rejected: int = 0


class TraversalEngine:
    """
    Expands crawl tasks for one session.

    Child links go through normalization, exclusion, the depth limit, origin
    classification and the session's visited set, in that order. Media
    sources found in the configured tags become download items without using
    a depth slot.
    """

    def __init__(self, session: CrawlSession, cache: CacheIndex, parser: ContentParser,
                 output: OutputAggregator):
        self.session = session
        self.cache = cache
        self.parser = parser
        self.output = output
        self.config = session.config
        self.logger = logging.getLogger(__name__)

    async def expand(self, task: CrawlTask) -> Expansion:
        """
        Fetch, parse and filter one task.

        Raises:
            FetchError: the page could not be retrieved
            ParseError: the page markup could not be parsed
        """
        page = await self.cache.resolve(task.url)
        parsed = await asyncio.to_thread(self.parser.parse, task.url, page.content)

        expansion = Expansion(task=task, page=page, parsed=parsed)
        self._filter_links(task, parsed.links, expansion)
        self._collect_media(task, parsed, expansion)

        tag_search = self.config.tag_search
        if tag_search.enabled and parsed.has_tag(tag_search.tag):
            self.output.record(task.url, UrlCategory.TAGGED_PAGES)
            self.logger.info(f"Tag <{tag_search.tag}> found on {task.url}")

        self.logger.debug(
            f"Expanded {task.url} (depth {task.depth}): {len(parsed.links)} links, "
            f"{len(expansion.children)} new tasks, {len(expansion.downloads)} downloads, "
            f"{expansion.rejected} rejected"
        )
        return expansion

    def classify(self, url: str) -> LinkOrigin:
        if get_host(url) in self.session.seed_hosts:
            return LinkOrigin.SEED
        return LinkOrigin.EXTERNAL

    def _filter_links(self, task: CrawlTask, links: List[str], expansion: Expansion):
        crawler = self.config.crawler
        child_depth = task.depth + 1

        for href in links:
            url = normalize_url(task.url, href)
            if url is None or matches_exclusion(url, crawler.link_pattern_exclusions) \
                    or not is_crawlable_url(url):
                expansion.rejected += 1
                continue

            if child_depth > self.session.depth_limit:
                expansion.rejected += 1
                continue

            origin = self.classify(url)
            if origin is LinkOrigin.SEED:
                expansion.seed_links.append(url)
                if crawler.keep_seed_links:
                    self.output.record(url, UrlCategory.SEED_LINKS)
            else:
                expansion.external_links.append(url)
                if crawler.keep_external_links:
                    self.output.record(url, UrlCategory.EXTERNAL_LINKS)
                if not crawler.follow_external_links:
                    expansion.rejected += 1
                    continue

            if not self.session.visited.add(url):
                continue

            expansion.children.append(
                CrawlTask(url=url, depth=child_depth, origin=origin, parent_url=task.url)
            )

    def _collect_media(self, task: CrawlTask, parsed: ParsedContent, expansion: Expansion):
        downloads = self.config.downloads
        exclusions = self.config.crawler.link_pattern_exclusions

        for tag_type, sources in parsed.media.items():
            if tag_type != 'video' and not (downloads.enabled and tag_type in downloads.tags):
                continue
            for src in sources:
                url = normalize_url(task.url, src)
                if url is None or matches_exclusion(url, exclusions) or not is_crawlable_url(url):
                    continue

                if tag_type == 'video':
                    self.output.record(url, UrlCategory.VIDEO_LINKS)

                if downloads.enabled and tag_type in downloads.tags \
                        and self.session.downloads_seen.add(url):
                    expansion.downloads.append(DownloadItem(url=url, tag_type=tag_type))
