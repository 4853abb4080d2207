"""
Tests for the durable cache backends.
"""

import os
import tempfile
import unittest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from linkspyder.exceptions import CacheStoreError
from linkspyder.storage.cache_store import (FileCacheStore, RedisCacheStore,
                                            address_hash, create_cache_store)
from linkspyder.utils.config import CacheConfig

URL = "http://a.test/page"


class TestFileCacheStore(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.location = os.path.join(self.tmpdir.name, 'cache')

    def tearDown(self):
        self.tmpdir.cleanup()

    async def test_put_then_get(self):
        store = FileCacheStore(self.location)
        await store.initialize()

        self.assertIsNone(await store.get(URL))
        await store.put(URL, "<p>hello</p>")

        self.assertEqual(await store.get(URL), "<p>hello</p>")
        self.assertEqual(list(store.index), [URL])

    async def test_index_survives_restart(self):
        store = FileCacheStore(self.location)
        await store.initialize()
        await store.put(URL, "<p>hello</p>")
        await store.close()

        reopened = FileCacheStore(self.location)
        await reopened.initialize()

        self.assertEqual(await reopened.get(URL), "<p>hello</p>")

    async def test_entries_with_missing_files_are_dropped(self):
        store = FileCacheStore(self.location)
        await store.initialize()
        await store.put(URL, "<p>hello</p>")
        digest = address_hash(URL)
        os.remove(os.path.join(self.location, 'content', digest[:2], f"{digest}.html"))

        reopened = FileCacheStore(self.location)
        await reopened.initialize()

        self.assertNotIn(URL, reopened.index)
        self.assertIsNone(await reopened.get(URL))

    async def test_corrupt_index_raises(self):
        os.makedirs(self.location)
        with open(os.path.join(self.location, FileCacheStore.INDEX_FILENAME), 'w') as f:
            f.write("{not json")

        with self.assertRaises(CacheStoreError):
            await FileCacheStore(self.location).initialize()


class TestRedisCacheStore(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.client = MagicMock()
        for name in ('ping', 'scard', 'get', 'set', 'sadd', 'aclose'):
            setattr(self.client, name, AsyncMock())
        self.store = RedisCacheStore(self.client, key_prefix="test")

    async def test_get_decodes_bytes(self):
        self.client.get.return_value = "<p>hi</p>".encode('utf-8')

        self.assertEqual(await self.store.get(URL), "<p>hi</p>")
        self.client.get.assert_awaited_once_with(f"test:page:{address_hash(URL)}")

    async def test_get_missing(self):
        self.client.get.return_value = None
        self.assertIsNone(await self.store.get(URL))

    async def test_put_records_address(self):
        await self.store.put(URL, "<p>hi</p>")

        self.client.set.assert_awaited_once_with(f"test:page:{address_hash(URL)}", b"<p>hi</p>")
        self.client.sadd.assert_awaited_once_with("test:addresses", URL)

    async def test_redis_errors_become_cache_store_errors(self):
        self.client.get.side_effect = RedisConnectionError("down")
        with self.assertRaises(CacheStoreError):
            await self.store.get(URL)

        self.client.ping.side_effect = RedisConnectionError("down")
        with self.assertRaises(CacheStoreError):
            await self.store.initialize()

    async def test_initialize_and_close(self):
        self.client.scard.return_value = 3

        await self.store.initialize()
        self.client.scard.assert_awaited_once_with("test:addresses")
        await self.store.close()
        self.client.aclose.assert_awaited_once()


class TestCreateCacheStore(unittest.TestCase):
    def test_disabled(self):
        self.assertIsNone(create_cache_store(CacheConfig()))

    def test_file_backend(self):
        store = create_cache_store(CacheConfig(use_local_cache=True, location="somewhere"))
        self.assertIsInstance(store, FileCacheStore)

    def test_redis_backend(self):
        store = create_cache_store(CacheConfig(use_local_cache=True, backend='redis'))
        self.assertIsInstance(store, RedisCacheStore)


if __name__ == '__main__':
    unittest.main()
