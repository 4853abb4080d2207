"""
Tests for writing the URL collections to disk.
"""

import os
import tempfile
import unittest

from linkspyder.results import OutputAggregator, UrlCategory
from linkspyder.storage.output_writer import OutputWriter
from linkspyder.utils.config import OutputConfig


class TestOutputWriter(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.config = OutputConfig(directory=os.path.join(self.tmpdir.name, 'out'))

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_writes_non_empty_collections(self):
        output = OutputAggregator()
        output.record("http://a.test/x", UrlCategory.SEED_LINKS)
        output.record("http://a.test/y", UrlCategory.SEED_LINKS)
        output.record("http://a.test/broken", UrlCategory.FAILED_URLS)

        written = OutputWriter(self.config).write(output.snapshot())

        self.assertEqual(sorted(p.name for p in written),
                         ["CapturedSeedUrls.txt", "FailedUrls.txt"])
        with open(os.path.join(self.config.directory, "CapturedSeedUrls.txt")) as f:
            self.assertEqual(f.read(), "http://a.test/x\nhttp://a.test/y\n")

    def test_every_category_has_a_file_name(self):
        filenames = OutputWriter(self.config).filenames
        self.assertEqual(set(filenames), set(UrlCategory))
        self.assertEqual(len(set(filenames.values())), len(UrlCategory))


if __name__ == '__main__':
    unittest.main()
