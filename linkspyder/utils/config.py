"""
Configuration management for the crawler.

The loaded configuration is an immutable snapshot: every section is a frozen
dataclass and list options are stored as tuples.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional, Tuple
from dataclasses import dataclass, field, fields, replace
from urllib.parse import urlparse

from ..exceptions import ConfigurationError


DEFAULT_EXCLUSIONS = ("?id=", "file://", "mailto:", "?cb=", "javascript:")
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
MEDIA_TAGS = ("video", "img", "audio")


@dataclass(frozen=True)
class CrawlerConfig:
    """Configuration for crawler behavior."""
    starting_url: str = ""
    depth_limit: int = 2
    concurrent_crawling_tasks: int = 4
    fetch_timeout: float = 30.0
    user_agent: str = DEFAULT_USER_AGENT
    link_pattern_exclusions: Tuple[str, ...] = DEFAULT_EXCLUSIONS
    follow_external_links: bool = False
    keep_external_links: bool = True
    keep_seed_links: bool = True


@dataclass(frozen=True)
class RedisConfig:
    """Connection settings for the Redis cache backend."""
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = "spyder:cache"


@dataclass(frozen=True)
class CacheConfig:
    """Configuration for the page cache."""
    use_local_cache: bool = False
    backend: str = "file"
    location: str = "cache"
    retry_failed_fetches: bool = False
    redis: RedisConfig = field(default_factory=RedisConfig)


@dataclass(frozen=True)
class DownloadConfig:
    """Configuration for media downloads found in HTML tags."""
    enabled: bool = False
    tags: Tuple[str, ...] = ("video",)
    queue_capacity: int = 100
    directory: str = "downloads"


@dataclass(frozen=True)
class TagSearchConfig:
    """Configuration for recording pages that contain a tag."""
    enabled: bool = False
    tag: str = "video"


@dataclass(frozen=True)
class InputFileConfig:
    """Configuration for crawling a file of seed URLs."""
    path: Optional[str] = None
    mode: str = "sequential"


@dataclass(frozen=True)
class OutputConfig:
    """Where the categorized URL collections are written."""
    directory: str = "output"
    seed_links_filename: str = "CapturedSeedUrls.txt"
    external_links_filename: str = "CapturedExternalLinks.txt"
    video_links_filename: str = "CapturedVideoLinks.txt"
    failed_urls_filename: str = "FailedUrls.txt"
    scraped_urls_filename: str = "AllUrlsCaptured.txt"
    tagged_pages_filename: str = "PositiveTagSearchResults.txt"


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/crawler.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass(frozen=True)
class MonitoringConfig:
    """Configuration for monitoring."""
    metrics_enabled: bool = False
    prometheus_port: int = 8000


@dataclass(frozen=True)
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    downloads: DownloadConfig = field(default_factory=DownloadConfig)
    tag_search: TagSearchConfig = field(default_factory=TagSearchConfig)
    input_file: InputFileConfig = field(default_factory=InputFileConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Config':
        """Build and validate a configuration from a plain dictionary."""
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigurationError(["configuration root must be a mapping"])

        errors: List[str] = []
        unknown = set(data) - {f.name for f in fields(cls)}
        for name in sorted(unknown):
            errors.append(f"unknown section '{name}'")

        cache_data = _section_mapping(data.get('cache'), 'cache', errors)
        redis_config = _build_section(RedisConfig, cache_data.pop('redis', None), 'cache.redis', errors)

        config = cls(
            crawler=_build_section(CrawlerConfig, data.get('crawler'), 'crawler', errors),
            cache=_build_section(CacheConfig, cache_data, 'cache', errors, redis=redis_config),
            downloads=_build_section(DownloadConfig, data.get('downloads'), 'downloads', errors),
            tag_search=_build_section(TagSearchConfig, data.get('tag_search'), 'tag_search', errors),
            input_file=_build_section(InputFileConfig, data.get('input_file'), 'input_file', errors),
            output=_build_section(OutputConfig, data.get('output'), 'output', errors),
            logging=_build_section(LoggingConfig, data.get('logging'), 'logging', errors),
            monitoring=_build_section(MonitoringConfig, data.get('monitoring'), 'monitoring', errors),
        )

        errors.extend(validate_config(config))
        if errors:
            raise ConfigurationError(errors)
        return config

    def with_crawler(self, **changes) -> 'Config':
        """Return a validated copy with crawler options overridden (used by the CLI)."""
        config = replace(self, crawler=replace(self.crawler, **changes))
        errors = validate_config(config)
        if errors:
            raise ConfigurationError(errors)
        return config


def _section_mapping(raw: Any, name: str, errors: List[str]) -> Dict[str, Any]:
    """Copy a raw section; anything but a mapping is reported and replaced by defaults."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        errors.append(f"section '{name}' must be a mapping")
        return {}
    return dict(raw)


def _build_section(section_cls, raw: Optional[Dict[str, Any]], name: str,
                   errors: List[str], **extra):
    """Instantiate one configuration section, converting lists to tuples."""
    raw = _section_mapping(raw, name, errors)
    known = {f.name for f in fields(section_cls)}
    for key in sorted(set(raw) - known):
        errors.append(f"unknown option '{name}.{key}'")
        raw.pop(key)

    for key, value in raw.items():
        if isinstance(value, list):
            raw[key] = tuple(value)
    raw.update(extra)
    try:
        return section_cls(**raw)
    except TypeError as e:
        errors.append(f"invalid section '{name}': {e}")
        return section_cls(**extra)


def _is_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def validate_config(config: Config) -> List[str]:
    """Return every problem found in the configuration."""
    errors = []
    crawler = config.crawler

    if crawler.starting_url and not _is_http_url(crawler.starting_url):
        errors.append(f"crawler.starting_url is not an http(s) URL: {crawler.starting_url}")

    if not isinstance(crawler.depth_limit, int) or crawler.depth_limit < 0:
        errors.append("crawler.depth_limit must be a non-negative integer")

    if not isinstance(crawler.concurrent_crawling_tasks, int) or crawler.concurrent_crawling_tasks < 1:
        errors.append("crawler.concurrent_crawling_tasks must be at least 1")

    if not isinstance(crawler.fetch_timeout, (int, float)) or crawler.fetch_timeout <= 0:
        errors.append("crawler.fetch_timeout must be positive")

    if not isinstance(crawler.link_pattern_exclusions, tuple) \
            or any(not isinstance(p, str) or not p for p in crawler.link_pattern_exclusions):
        errors.append("crawler.link_pattern_exclusions must be non-empty strings")

    if config.cache.backend not in ('file', 'redis'):
        errors.append("cache.backend must be 'file' or 'redis'")

    if config.cache.use_local_cache and config.cache.backend == 'file' and not config.cache.location:
        errors.append("cache.location is required when use_local_cache is enabled")

    if not isinstance(config.downloads.queue_capacity, int) or config.downloads.queue_capacity < 1:
        errors.append("downloads.queue_capacity must be at least 1")

    if not isinstance(config.downloads.tags, tuple):
        errors.append("downloads.tags must be a list of tag names")
    elif config.downloads.enabled:
        if not config.downloads.tags:
            errors.append("downloads.tags must name at least one tag when downloads are enabled")
        for tag in config.downloads.tags:
            if tag not in MEDIA_TAGS:
                errors.append(f"downloads.tags contains unsupported tag '{tag}'")
        if not config.downloads.directory:
            errors.append("downloads.directory is required when downloads are enabled")

    if config.tag_search.enabled and not config.tag_search.tag:
        errors.append("tag_search.tag is required when tag search is enabled")

    if config.input_file.mode not in ('sequential', 'merged'):
        errors.append("input_file.mode must be 'sequential' or 'merged'")

    if not config.output.directory:
        errors.append("output.directory is required")

    level = config.logging.level
    if not isinstance(level, str) or level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        errors.append(f"logging.level is not a valid level: {config.logging.level}")

    return errors


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from a YAML file."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError([f"configuration file not found: {path}"])

    try:
        with open(path, 'r') as file:
            config_data = yaml.safe_load(file)
    except yaml.YAMLError as e:
        raise ConfigurationError([f"could not parse {path}: {e}"]) from e

    config = Config.from_dict(config_data)
    logging.getLogger(__name__).info(f"Configuration loaded from {path}")
    return config
