"""
Durable page cache backends.

Pages are keyed by normalized address. The file backend is meant for a single
workstation; the Redis backend lets several runs share one cache.
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Dict, Optional
from datetime import datetime, timezone

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..exceptions import CacheStoreError
from ..utils.config import CacheConfig


def address_hash(address: str) -> str:
    return hashlib.sha256(address.encode('utf-8')).hexdigest()


class CacheStore:
    """Base class for durable cache backends."""

    async def initialize(self):
        """Prepare the backend for use."""
        raise NotImplementedError

    async def get(self, address: str) -> Optional[str]:
        """Return stored content for the address, or None."""
        raise NotImplementedError

    async def put(self, address: str, content: str):
        """Persist content for the address."""
        raise NotImplementedError

    async def close(self):
        raise NotImplementedError


class FileCacheStore(CacheStore):
    """
    Stores each page in its own file under ``<location>/content`` and keeps an
    address index in ``<location>/cache_index.json``.
    """

    INDEX_FILENAME = 'cache_index.json'

    def __init__(self, location: str):
        self.location = Path(location)
        self.logger = logging.getLogger(__name__)
        self.index: Dict[str, Dict[str, str]] = {}

    @property
    def index_file(self) -> Path:
        return self.location / self.INDEX_FILENAME

    async def initialize(self):
        try:
            (self.location / 'content').mkdir(parents=True, exist_ok=True)
            if self.index_file.exists():
                with open(self.index_file, 'r', encoding='utf-8') as f:
                    self.index = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CacheStoreError(f"Failed to initialize file cache at {self.location}: {e}") from e

        self._verify_index()
        self.logger.info(f"File cache initialized at {self.location} with {len(self.index)} entries")

    def _verify_index(self):
        """Drop index entries whose content file has gone missing."""
        missing = [address for address, entry in self.index.items()
                   if not (self.location / entry['file_path']).exists()]
        for address in missing:
            del self.index[address]
        if missing:
            self.logger.warning(f"Removed {len(missing)} cache index entries with missing files")
            self._save_index()

    def _get_file_path(self, address: str) -> Path:
        digest = address_hash(address)
        return self.location / 'content' / digest[:2] / f"{digest}.html"

    async def get(self, address: str) -> Optional[str]:
        entry = self.index.get(address)
        if entry is None:
            return None

        file_path = self.location / entry['file_path']
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return f.read()
        except FileNotFoundError:
            self.logger.warning(f"Cache entry for {address} is missing from disk, dropping it")
            self.index.pop(address, None)
            return None
        except OSError as e:
            raise CacheStoreError(f"Failed to read cache entry for {address}: {e}") from e

    async def put(self, address: str, content: str):
        file_path = self._get_file_path(address)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'w', encoding='utf-8') as f:
                f.write(content)
        except OSError as e:
            raise CacheStoreError(f"Failed to write cache entry for {address}: {e}") from e

        self.index[address] = {
            'file_path': str(file_path.relative_to(self.location)),
            'stored_at': datetime.now(timezone.utc).isoformat(),
        }
        self._save_index()
        self.logger.debug(f"Cached {address} to {file_path}")

    def _save_index(self):
        try:
            tmp_file = self.index_file.with_suffix('.tmp')
            with open(tmp_file, 'w', encoding='utf-8') as f:
                json.dump(self.index, f, ensure_ascii=False, indent=2)
            tmp_file.replace(self.index_file)
        except OSError as e:
            raise CacheStoreError(f"Failed to save cache index: {e}") from e

    async def close(self):
        self._save_index()


class RedisCacheStore(CacheStore):
    """Stores pages as Redis strings with a set of known addresses."""

    def __init__(self, client: redis.Redis, key_prefix: str = "spyder:cache"):
        self.client = client
        self.key_prefix = key_prefix
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: CacheConfig) -> 'RedisCacheStore':
        client = redis.Redis(
            host=config.redis.host,
            port=config.redis.port,
            db=config.redis.db,
            password=config.redis.password,
            decode_responses=False
        )
        return cls(client, config.redis.key_prefix)

    @property
    def addresses_key(self) -> str:
        return f"{self.key_prefix}:addresses"

    def _page_key(self, address: str) -> str:
        return f"{self.key_prefix}:page:{address_hash(address)}"

    async def initialize(self):
        try:
            await self.client.ping()
            count = await self.client.scard(self.addresses_key)
        except RedisError as e:
            raise CacheStoreError(f"Redis cache unavailable: {e}") from e
        self.logger.info(f"Redis cache connected with {count} entries")

    async def get(self, address: str) -> Optional[str]:
        try:
            data = await self.client.get(self._page_key(address))
        except RedisError as e:
            raise CacheStoreError(f"Failed to read cache entry for {address}: {e}") from e
        if data is None:
            return None
        return data.decode('utf-8') if isinstance(data, bytes) else data

    async def put(self, address: str, content: str):
        try:
            await self.client.set(self._page_key(address), content.encode('utf-8'))
            await self.client.sadd(self.addresses_key, address)
        except RedisError as e:
            raise CacheStoreError(f"Failed to write cache entry for {address}: {e}") from e

    async def close(self):
        await self.client.aclose()


def create_cache_store(config: CacheConfig) -> Optional[CacheStore]:
    """Build the configured backend, or None when local caching is disabled."""
    if not config.use_local_cache:
        return None
    if config.backend == 'redis':
        return RedisCacheStore.from_config(config)
    return FileCacheStore(config.location)
