"""
Prometheus metrics for the crawler.
"""

import logging
from typing import Dict, Optional

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest
from prometheus_client import start_http_server


class CrawlerMonitor:
    """
    Records crawl activity into a private Prometheus registry.

    Every method is cheap and synchronous so it can be called from worker
    coroutines without suspending them.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger(__name__)
        self.registry = registry or CollectorRegistry()

        self.pages_resolved = Counter(
            'spyder_pages_resolved_total',
            'Pages resolved by the cache index, by source',
            ['source'],
            registry=self.registry
        )
        self.errors = Counter(
            'spyder_crawl_errors_total',
            'Crawl task failures, by error type',
            ['error_type'],
            registry=self.registry
        )
        self.downloads = Counter(
            'spyder_downloads_total',
            'Media downloads, by outcome',
            ['outcome'],
            registry=self.registry
        )
        self.resolve_time = Histogram(
            'spyder_resolve_seconds',
            'Time spent resolving a page through the cache index',
            registry=self.registry
        )
        self.frontier_size = Gauge(
            'spyder_frontier_size',
            'Crawl tasks waiting in the frontier',
            registry=self.registry
        )
        self.active_workers = Gauge(
            'spyder_active_workers',
            'Workers currently processing a crawl task',
            registry=self.registry
        )

    def start_server(self, port: int):
        """Expose the registry over HTTP."""
        try:
            start_http_server(port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def record_page_resolved(self, source: str, elapsed: float):
        """Record a resolved page; source is 'web', 'store', 'memory' or 'joined'."""
        self.pages_resolved.labels(source=source).inc()
        self.resolve_time.observe(elapsed)

    def record_error(self, error_type: str):
        self.errors.labels(error_type=error_type).inc()

    def record_download(self, outcome: str):
        self.downloads.labels(outcome=outcome).inc()

    def update_frontier_size(self, size: int):
        self.frontier_size.set(size)

    def worker_started(self):
        self.active_workers.inc()

    def worker_finished(self):
        self.active_workers.dec()

    def get_summary(self) -> Dict[str, float]:
        """Flatten current sample values, keyed by sample name and labels."""
        summary = {}
        for metric in self.registry.collect():
            for sample in metric.samples:
                if sample.name.endswith('_created'):
                    continue
                labels = ",".join(f"{k}={v}" for k, v in sorted(sample.labels.items()))
                key = f"{sample.name}{{{labels}}}" if labels else sample.name
                summary[key] = sample.value
        return summary

    def export_text(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)
