"""
Writes the categorized URL collections to text files.
"""

import logging
from pathlib import Path
from typing import Dict, List

from ..results import OutputSnapshot, UrlCategory
from ..utils.config import OutputConfig


class OutputWriter:
    """One file per non-empty collection, one URL per line, in discovery order."""

    def __init__(self, config: OutputConfig):
        self.config = config
        self.directory = Path(config.directory)
        self.logger = logging.getLogger(__name__)

    @property
    def filenames(self) -> Dict[UrlCategory, str]:
        return {
            UrlCategory.SEED_LINKS: self.config.seed_links_filename,
            UrlCategory.EXTERNAL_LINKS: self.config.external_links_filename,
            UrlCategory.VIDEO_LINKS: self.config.video_links_filename,
            UrlCategory.FAILED_URLS: self.config.failed_urls_filename,
            UrlCategory.SCRAPED_THIS_SESSION: self.config.scraped_urls_filename,
            UrlCategory.TAGGED_PAGES: self.config.tagged_pages_filename,
        }

    def write(self, snapshot: OutputSnapshot) -> List[Path]:
        """Write the snapshot and return the paths of the files written."""
        self.directory.mkdir(parents=True, exist_ok=True)
        written = []
        for category, filename in self.filenames.items():
            urls = snapshot.urls(category)
            if not urls:
                continue
            path = self.directory / filename
            with open(path, 'w', encoding='utf-8') as f:
                for url in urls:
                    f.write(url + '\n')
            written.append(path)
            self.logger.info(f"Wrote {len(urls)} {category.value} to {path}")
        return written
