"""
Tests for the Prometheus crawl metrics.
"""

import unittest

from linkspyder.utils.monitoring import CrawlerMonitor


class TestCrawlerMonitor(unittest.TestCase):
    def setUp(self):
        self.monitor = CrawlerMonitor()

    def test_page_sources_are_counted(self):
        self.monitor.record_page_resolved('web', 0.2)
        self.monitor.record_page_resolved('web', 0.1)
        self.monitor.record_page_resolved('memory', 0.0)

        summary = self.monitor.get_summary()

        self.assertEqual(summary['spyder_pages_resolved_total{source=web}'], 2)
        self.assertEqual(summary['spyder_pages_resolved_total{source=memory}'], 1)
        self.assertEqual(summary['spyder_resolve_seconds_count'], 3)

    def test_gauges(self):
        self.monitor.worker_started()
        self.monitor.worker_started()
        self.monitor.worker_finished()
        self.monitor.update_frontier_size(7)

        summary = self.monitor.get_summary()

        self.assertEqual(summary['spyder_active_workers'], 1)
        self.assertEqual(summary['spyder_frontier_size'], 7)

    def test_errors_and_downloads(self):
        self.monitor.record_error('timeout')
        self.monitor.record_download('failed')

        text = self.monitor.export_text().decode('utf-8')

        self.assertIn('spyder_crawl_errors_total{error_type="timeout"} 1.0', text)
        self.assertIn('spyder_downloads_total{outcome="failed"} 1.0', text)

    def test_monitors_do_not_share_registries(self):
        other = CrawlerMonitor()
        other.record_error('fetch')
        self.assertNotIn('spyder_crawl_errors_total{error_type=fetch}', self.monitor.get_summary())


if __name__ == '__main__':
    unittest.main()
