"""
Crawler core components.
"""

from .url_frontier import URLFrontier, CrawlTask, CrawlSession, LinkOrigin, VisitedSet
from .fetcher import WebFetcher, HttpDownloader, FetchedPage, PageFetcher, DownloadTransport
from .parser import ContentParser, ParsedContent
from .cache_index import CacheIndex, EntryState, PageContent
from .download_queue import DownloadQueue, DownloadItem
from ..results import OutputAggregator, OutputSnapshot, SessionStatistics, UrlCategory
from .traversal import TraversalEngine, normalize_url
from .events import CrawlEvents, CrawlFinished, CrawlState, StateChanged
from .scheduler import CrawlController

__all__ = [
    'URLFrontier', 'CrawlTask', 'CrawlSession', 'LinkOrigin', 'VisitedSet',
    'WebFetcher', 'HttpDownloader', 'FetchedPage', 'PageFetcher', 'DownloadTransport',
    'ContentParser', 'ParsedContent',
    'CacheIndex', 'EntryState', 'PageContent',
    'DownloadQueue', 'DownloadItem',
    'OutputAggregator', 'OutputSnapshot', 'SessionStatistics', 'UrlCategory',
    'TraversalEngine', 'normalize_url',
    'CrawlEvents', 'CrawlFinished', 'CrawlState', 'StateChanged',
    'CrawlController'
]
