"""
Tests that every package imports cleanly in a fresh interpreter.
"""

import os
import subprocess
import sys
import unittest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

MODULES = (
    "linkspyder.storage",
    "linkspyder.storage.cache_store",
    "linkspyder.storage.output_writer",
    "linkspyder.crawler",
    "linkspyder.crawler.scheduler",
    "linkspyder.results",
    "linkspyder.utils.monitoring",
)


class TestFreshImports(unittest.TestCase):
    def test_each_module_imports_first(self):
        for module in MODULES:
            with self.subTest(module=module):
                result = subprocess.run([sys.executable, "-c", f"import {module}"],
                                        cwd=ROOT, capture_output=True, text=True, timeout=60)
                self.assertEqual(result.returncode, 0, result.stderr)

    def test_file_store_imports_before_crawler(self):
        code = ("from linkspyder.storage.cache_store import FileCacheStore\n"
                "from linkspyder.crawler import CrawlController\n")
        result = subprocess.run([sys.executable, "-c", code],
                                cwd=ROOT, capture_output=True, text=True, timeout=60)
        self.assertEqual(result.returncode, 0, result.stderr)


if __name__ == '__main__':
    unittest.main()
