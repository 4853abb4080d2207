"""
Storage layer for the crawler: durable page cache and output files.
"""

from .cache_store import CacheStore, FileCacheStore, RedisCacheStore, create_cache_store
from .output_writer import OutputWriter

__all__ = ['CacheStore', 'FileCacheStore', 'RedisCacheStore', 'create_cache_store', 'OutputWriter']
