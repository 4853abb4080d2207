"""
Page fetching and media download over HTTP.

The engine only depends on the two narrow capabilities defined here,
``PageFetcher`` and ``DownloadTransport``; the aiohttp implementations are the
production ones and tests substitute fakes.
"""

import asyncio
import aiohttp
import hashlib
import logging
import time
from pathlib import Path
from typing import Dict, Optional, Protocol
from urllib.parse import urlparse, unquote
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError

from ..exceptions import DownloadError, FetchError


@dataclass
class FetchedPage:
    """Result of a successful page fetch."""
    url: str
    content: str
    status_code: int = 200
    content_type: Optional[str] = None
    fetch_time: float = 0.0


class PageFetcher(Protocol):
    """Capability: retrieve the markup of a page. Raises FetchError on failure."""

    async def fetch(self, url: str) -> FetchedPage:
        ...


class DownloadTransport(Protocol):
    """Capability: transfer the bytes behind a download item. Raises DownloadError."""

    async def download(self, item) -> Path:
        ...


class WebFetcher:
    """
    Fetches web pages over a shared aiohttp session.
    """

    TEXT_TYPES = (
        'text/html',
        'text/plain',
        'text/xml',
        'application/xml',
        'application/xhtml+xml',
    )

    def __init__(self, user_agent: str, request_timeout: float = 30,
                 max_concurrent_requests: int = 10, max_content_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_concurrent_requests = max_concurrent_requests
        self.max_content_size = max_content_size

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.request_timeout),
                headers={'User-Agent': self.user_agent},
                connector=aiohttp.TCPConnector(
                    limit=self.max_concurrent_requests * 2,
                    limit_per_host=10,
                    ttl_dns_cache=300,
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchedPage:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchedPage with the decoded markup

        Raises:
            FetchError: on transport errors, HTTP errors or non-text content
        """
        if self.session is None:
            await self.start()

        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url) as response:
                content_type = response.headers.get('content-type', '').lower()

                if response.status >= 400:
                    raise FetchError(url, f"HTTP {response.status}", response.status)

                if not self._is_text_content(content_type):
                    raise FetchError(url, f"non-text content type '{content_type}'", response.status)

                content = await self._read_content_safely(response)
                fetch_time = time.time() - start_time

                self.stats['successful_requests'] += 1
                self.stats['total_bytes_downloaded'] += len(content)
                self.logger.debug(f"Fetched {url}: {response.status} ({len(content)} chars) in {fetch_time:.2f}s")

                return FetchedPage(
                    url=str(response.url),
                    content=content,
                    status_code=response.status,
                    content_type=content_type,
                    fetch_time=fetch_time
                )

        except FetchError:
            self.stats['failed_requests'] += 1
            raise
        except asyncio.TimeoutError as e:
            self.stats['failed_requests'] += 1
            raise FetchError(url, "request timeout") from e
        except ClientError as e:
            self.stats['failed_requests'] += 1
            raise FetchError(url, f"client error: {e}") from e

    def _is_text_content(self, content_type: str) -> bool:
        # Servers that omit the header are given the benefit of the doubt.
        if not content_type:
            return True
        return any(text_type in content_type for text_type in self.TEXT_TYPES)

    async def _read_content_safely(self, response) -> str:
        """Read the body in chunks, enforcing the size cap, and decode it."""
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_size:
            raise FetchError(str(response.url), f"content too large ({content_length} bytes)")

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_size:
                raise FetchError(str(response.url), "content exceeded size limit during reading")

        encoding = response.charset or 'utf-8'
        for candidate in (encoding, 'utf-8', 'latin-1'):
            try:
                return content_bytes.decode(candidate)
            except (UnicodeDecodeError, LookupError):
                continue
        return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()


def filename_for_url(url: str) -> str:
    """Derive a local filename from the last path segment of a URL."""
    name = unquote(Path(urlparse(url).path).name)
    if not name:
        name = hashlib.sha256(url.encode('utf-8')).hexdigest()[:16]
    return name


class HttpDownloader:
    """
    Streams media files to a directory over aiohttp.
    """

    def __init__(self, directory: str, user_agent: str, request_timeout: float = 300):
        self.directory = Path(directory)
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

    async def start(self):
        if self.session is None:
            self.directory.mkdir(parents=True, exist_ok=True)
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.request_timeout),
                headers={'User-Agent': self.user_agent}
            )

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None

    def _target_path(self, url: str) -> Path:
        base = Path(filename_for_url(url))
        target = self.directory / base.name
        counter = 1
        while target.exists():
            target = self.directory / f"{base.stem}_{counter}{base.suffix}"
            counter += 1
        return target

    async def download(self, item) -> Path:
        """Download one item; partial files are removed on failure."""
        if self.session is None:
            await self.start()

        target = self._target_path(item.url)
        try:
            async with self.session.get(item.url) as response:
                if response.status >= 400:
                    raise DownloadError(item.url, f"HTTP {response.status}")
                with open(target, 'wb') as f:
                    async for chunk in response.content.iter_chunked(64 * 1024):
                        f.write(chunk)
        except DownloadError:
            target.unlink(missing_ok=True)
            raise
        except (ClientError, asyncio.TimeoutError, OSError) as e:
            target.unlink(missing_ok=True)
            raise DownloadError(item.url, str(e) or type(e).__name__) from e

        self.logger.debug(f"Downloaded {item.url} to {target}")
        return target
