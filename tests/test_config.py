"""
Tests for configuration loading and validation.
"""

import os
import tempfile
import unittest

from linkspyder.exceptions import ConfigurationError
from linkspyder.utils.config import DEFAULT_EXCLUSIONS, Config, load_config


class TestConfigFromDict(unittest.TestCase):
    def test_defaults(self):
        config = Config.from_dict(None)

        self.assertEqual(config.crawler.depth_limit, 2)
        self.assertEqual(config.crawler.concurrent_crawling_tasks, 4)
        self.assertEqual(config.crawler.link_pattern_exclusions, DEFAULT_EXCLUSIONS)
        self.assertFalse(config.crawler.follow_external_links)
        self.assertTrue(config.crawler.keep_external_links)
        self.assertFalse(config.cache.use_local_cache)
        self.assertFalse(config.cache.retry_failed_fetches)
        self.assertEqual(config.downloads.queue_capacity, 100)
        self.assertEqual(config.input_file.mode, 'sequential')

    def test_lists_become_tuples(self):
        config = Config.from_dict({'crawler': {'link_pattern_exclusions': ['?x=']},
                                   'downloads': {'tags': ['video', 'img']}})

        self.assertEqual(config.crawler.link_pattern_exclusions, ('?x=',))
        self.assertEqual(config.downloads.tags, ('video', 'img'))

    def test_nested_redis_section(self):
        config = Config.from_dict({'cache': {'backend': 'redis', 'redis': {'port': 6380}}})

        self.assertEqual(config.cache.backend, 'redis')
        self.assertEqual(config.cache.redis.port, 6380)

    def test_all_problems_are_reported_together(self):
        with self.assertRaises(ConfigurationError) as ctx:
            Config.from_dict({
                'crawler': {'depth_limit': -1, 'concurrent_crawling_tasks': 0, 'bogus': 1},
                'downloads': {'queue_capacity': 0},
                'surprise': {},
            })

        errors = ctx.exception.errors
        self.assertIn("unknown section 'surprise'", errors)
        self.assertIn("unknown option 'crawler.bogus'", errors)
        self.assertIn("crawler.depth_limit must be a non-negative integer", errors)
        self.assertIn("crawler.concurrent_crawling_tasks must be at least 1", errors)
        self.assertIn("downloads.queue_capacity must be at least 1", errors)

    def test_invalid_choices(self):
        for data in ({'cache': {'backend': 'memcached'}},
                     {'input_file': {'mode': 'random'}},
                     {'downloads': {'enabled': True, 'tags': ['iframe']}},
                     {'crawler': {'starting_url': 'ftp://a.test/'}},
                     {'logging': {'level': 'LOUD'}}):
            with self.subTest(data=data):
                with self.assertRaises(ConfigurationError):
                    Config.from_dict(data)

    def test_sections_must_be_mappings(self):
        with self.assertRaises(ConfigurationError) as ctx:
            Config.from_dict({'crawler': 'oops', 'cache': ['file'], 'logging': {'level': 3}})

        errors = ctx.exception.errors
        self.assertIn("section 'crawler' must be a mapping", errors)
        self.assertIn("section 'cache' must be a mapping", errors)
        self.assertIn("logging.level is not a valid level: 3", errors)

    def test_nested_redis_section_must_be_a_mapping(self):
        with self.assertRaises(ConfigurationError) as ctx:
            Config.from_dict({'cache': {'redis': 'localhost'}})
        self.assertIn("section 'cache.redis' must be a mapping", ctx.exception.errors)

    def test_list_options_must_be_lists(self):
        with self.assertRaises(ConfigurationError) as ctx:
            Config.from_dict({'crawler': {'link_pattern_exclusions': '?id='},
                              'downloads': {'tags': 7}})

        errors = ctx.exception.errors
        self.assertIn("crawler.link_pattern_exclusions must be non-empty strings", errors)
        self.assertIn("downloads.tags must be a list of tag names", errors)

    def test_config_is_immutable(self):
        config = Config.from_dict({})
        with self.assertRaises(Exception):
            config.crawler.depth_limit = 5

    def test_with_crawler_overrides_and_validates(self):
        config = Config.from_dict({})

        changed = config.with_crawler(depth_limit=5, starting_url="http://a.test/")

        self.assertEqual(changed.crawler.depth_limit, 5)
        self.assertEqual(config.crawler.depth_limit, 2)
        with self.assertRaises(ConfigurationError):
            config.with_crawler(depth_limit=-3)


class TestLoadConfig(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, 'config.yaml')

    def tearDown(self):
        self.tmpdir.cleanup()

    def write(self, text):
        with open(self.path, 'w') as f:
            f.write(text)

    def test_load_yaml(self):
        self.write("crawler:\n  starting_url: http://a.test/\n  depth_limit: 3\n"
                   "input_file:\n  mode: merged\n")

        config = load_config(self.path)

        self.assertEqual(config.crawler.starting_url, "http://a.test/")
        self.assertEqual(config.crawler.depth_limit, 3)
        self.assertEqual(config.input_file.mode, 'merged')

    def test_empty_file_uses_defaults(self):
        self.write("")
        self.assertEqual(load_config(self.path), Config())

    def test_missing_file(self):
        with self.assertRaises(ConfigurationError):
            load_config(self.path)

    def test_scalar_section_in_yaml(self):
        self.write("crawler: oops\n")
        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.path)
        self.assertEqual(ctx.exception.errors, ["section 'crawler' must be a mapping"])

    def test_malformed_yaml(self):
        self.write("crawler: [unclosed\n")
        with self.assertRaises(ConfigurationError):
            load_config(self.path)


if __name__ == '__main__':
    unittest.main()
