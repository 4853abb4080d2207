"""
Link Spyder

A configurable, concurrent web crawler that classifies discovered links and
queues embedded media for background download.
"""

__version__ = "1.0.0"
__description__ = "Concurrent link crawler with single-flight page cache and media download queue"
