"""
Logging setup for the crawler.

Records can carry crawl context (``url``, ``worker``, ``event_type``) which the
JSON formatter emits as top-level fields.
"""

import logging
import logging.handlers
import json
import sys
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from .config import LoggingConfig

CONTEXT_FIELDS = ('url', 'worker', 'event_type')
LOG_FILE_MAX_BYTES = 20 * 1024 * 1024
LOG_FILE_BACKUPS = 3
QUIET_LOGGERS = ('aiohttp', 'redis', 'asyncio')


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Attaches a fixed crawl context (e.g. the worker name) to every record."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs

    def log_url_event(self, level: int, url: str, message: str):
        """Log an outcome for one URL so it can be filtered by address."""
        self.log(level, message, extra={'url': url, 'event_type': 'url_event'})


def setup_logging(config: LoggingConfig) -> logging.Logger:
    """
    Route records to stdout and to a rotating log file.

    Console output stays at INFO; the file receives everything the configured
    level lets through.
    """
    formatter = JSONFormatter() if config.json else logging.Formatter(config.format)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.file:
        log_file = Path(config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        root_logger.debug(f"Logging to {log_file} at {config.level}")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def get_crawler_logger(name: str, **context) -> CrawlerLogAdapter:
    return CrawlerLogAdapter(logging.getLogger(name), context)


def log_system_info():
    """Log the host resources available to the crawl."""
    import platform
    import psutil

    logger = logging.getLogger(__name__)
    logger.info(f"Platform: {platform.platform()}, Python {sys.version.split()[0]}")
    logger.info(f"CPU cores: {psutil.cpu_count()}, "
                f"memory: {psutil.virtual_memory().total / 1024**3:.1f} GB")
