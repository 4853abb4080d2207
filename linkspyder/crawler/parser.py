"""
HTML parser for extracting hyperlinks and embedded media sources.
"""

import logging
from typing import Dict, List, Optional, Set
from dataclasses import dataclass, field
from bs4 import BeautifulSoup

from ..exceptions import ParseError


@dataclass
class ParsedContent:
    """Container for the parts of a page the crawler cares about."""
    url: str
    title: Optional[str] = None
    links: List[str] = field(default_factory=list)
    media: Dict[str, List[str]] = field(default_factory=dict)
    tags_found: Set[str] = field(default_factory=set)

    def has_tag(self, tag: str) -> bool:
        return tag.lower() in self.tags_found


class ContentParser:
    """
    Parses HTML with BeautifulSoup (lxml backend).

    Links and media sources are returned as they appear in the markup, in
    document order and without duplicates; resolving them against the page
    address is left to the caller.
    """

    def __init__(self, media_tags: Optional[List[str]] = None):
        self.media_tags = list(media_tags or ['video', 'img', 'audio'])
        self.logger = logging.getLogger(__name__)

    def parse(self, url: str, html_content: str) -> ParsedContent:
        """
        Parse HTML content.

        Args:
            url: The URL of the page
            html_content: Raw HTML content

        Returns:
            ParsedContent with title, hrefs, media sources and tag names

        Raises:
            ParseError: if the content is not markup that can be parsed
        """
        if not isinstance(html_content, str):
            raise ParseError(url, f"expected markup text, got {type(html_content).__name__}")

        try:
            soup = BeautifulSoup(html_content, 'lxml')
        except Exception as e:
            raise ParseError(url, str(e)) from e

        parsed = ParsedContent(url=url)
        parsed.tags_found = {tag.name.lower() for tag in soup.find_all(True)}

        title_tag = soup.find('title')
        if title_tag:
            parsed.title = " ".join(title_tag.get_text().split())

        parsed.links = self._extract_links(soup)
        parsed.media = self._extract_media(soup)

        self.logger.debug(f"Parsed {url}: {len(parsed.links)} links, "
                          f"{sum(len(v) for v in parsed.media.values())} media sources")
        return parsed

    def _extract_links(self, soup: BeautifulSoup) -> List[str]:
        links = []
        seen = set()
        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if not href or href.startswith('#') or href in seen:
                continue
            seen.add(href)
            links.append(href)
        return links

    def _extract_media(self, soup: BeautifulSoup) -> Dict[str, List[str]]:
        """Collect src attributes of media tags, including nested <source> elements."""
        media: Dict[str, List[str]] = {}
        for tag_name in self.media_tags:
            sources = []
            for element in soup.find_all(tag_name):
                candidates = [element.get('src')]
                candidates.extend(source.get('src') for source in element.find_all('source'))
                for src in candidates:
                    if src and src.strip() and src.strip() not in sources:
                        sources.append(src.strip())
            if sources:
                media[tag_name] = sources
        return media
