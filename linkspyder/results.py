"""
Categorized URL collections and derived session statistics.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple


class UrlCategory(Enum):
    SEED_LINKS = "seed_links"
    EXTERNAL_LINKS = "external_links"
    VIDEO_LINKS = "video_links"
    FAILED_URLS = "failed_urls"
    SCRAPED_THIS_SESSION = "scraped_this_session"
    TAGGED_PAGES = "tagged_pages"


class ConcurrentUrlCollection:
    """Append-only, insertion-ordered set of URLs, safe to share between threads."""

    def __init__(self):
        self._urls: Dict[str, None] = {}
        self._lock = threading.Lock()

    def add(self, url: str) -> bool:
        """Append the URL unless already present; return whether it was added."""
        with self._lock:
            if url in self._urls:
                return False
            self._urls[url] = None
            return True

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)

    def to_tuple(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._urls)


@dataclass(frozen=True)
class OutputSnapshot:
    """Immutable copy of every collection, taken at one instant."""
    collections: Mapping[UrlCategory, Tuple[str, ...]]

    def urls(self, category: UrlCategory) -> Tuple[str, ...]:
        return self.collections.get(category, ())


class OutputAggregator:
    """
    Sole owner of the categorized URL collections.

    ``record`` and ``snapshot`` take the same lock, so a snapshot never
    copies one category while another is half way through a write.
    """

    def __init__(self):
        self._collections = {category: ConcurrentUrlCollection() for category in UrlCategory}
        self._snapshot_lock = threading.RLock()

    def record(self, url: str, category: UrlCategory) -> bool:
        """Append a URL to a category; duplicates within the category are ignored."""
        with self._snapshot_lock:
            return self._collections[category].add(url)

    def record_many(self, urls, category: UrlCategory) -> int:
        return sum(1 for url in urls if self.record(url, category))

    def contains(self, url: str, category: UrlCategory) -> bool:
        return url in self._collections[category]

    def count(self, category: UrlCategory) -> int:
        return len(self._collections[category])

    def counts(self) -> Dict[UrlCategory, int]:
        return {category: len(collection) for category, collection in self._collections.items()}

    def urls(self, category: UrlCategory) -> List[str]:
        return list(self._collections[category].to_tuple())

    def snapshot(self) -> OutputSnapshot:
        with self._snapshot_lock:
            copied = {category: collection.to_tuple()
                      for category, collection in self._collections.items()}
        return OutputSnapshot(collections=MappingProxyType(copied))


@dataclass(frozen=True)
class SessionStatistics:
    """Read-only statistics computed on demand from the live components."""
    cache_hits: int = 0
    cache_misses: int = 0
    cache_joins: int = 0
    cache_entries: int = 0
    urls_crawled: int = 0
    downloads_attempted: int = 0
    downloads_failed: int = 0
    elapsed_time: float = 0.0
    collection_counts: Mapping[UrlCategory, int] = field(default_factory=dict)

    def count(self, category: UrlCategory) -> int:
        return self.collection_counts.get(category, 0)

    def as_dict(self) -> Dict[str, object]:
        data = {
            'cache_hits': self.cache_hits,
            'cache_misses': self.cache_misses,
            'cache_joins': self.cache_joins,
            'cache_entries': self.cache_entries,
            'urls_crawled': self.urls_crawled,
            'downloads_attempted': self.downloads_attempted,
            'downloads_failed': self.downloads_failed,
            'elapsed_time': round(self.elapsed_time, 3),
        }
        for category in UrlCategory:
            data[category.value] = self.count(category)
        return data
