"""
Exception hierarchy for the crawler.
"""

from typing import List, Optional


class SpyderError(Exception):
    """Base class for all crawler errors."""
    pass


class FetchError(SpyderError):
    """A page could not be retrieved or rendered."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {reason}")


class FetchTimeoutError(FetchError):
    """A fetch did not complete within its allotted time."""

    def __init__(self, url: str, timeout: float):
        self.timeout = timeout
        super().__init__(url, f"timed out after {timeout:.1f}s")


class ParseError(SpyderError):
    """Markup could not be parsed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to parse {url}: {reason}")


class DownloadError(SpyderError):
    """A media download failed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to download {url}: {reason}")


class CacheStoreError(SpyderError):
    """Durable cache store I/O failed."""
    pass


class ConfigurationError(SpyderError):
    """Invalid options; raised before any crawl session starts."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid configuration: " + "; ".join(self.errors))


class InvalidStateTransition(SpyderError):
    """The crawl controller was asked for a transition its state does not allow."""

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move from {current.value} to {requested.value}")
