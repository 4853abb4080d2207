"""
Crawl lifecycle states and the notification channel observers subscribe to.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple


class CrawlState(Enum):
    IDLE = "idle"
    CRAWLING = "crawling"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (CrawlState.COMPLETED, CrawlState.CANCELLED)


@dataclass(frozen=True)
class StateChanged:
    """Published on every state transition."""
    previous: CrawlState
    current: CrawlState

    @property
    def is_crawling(self) -> bool:
        return self.current in (CrawlState.CRAWLING, CrawlState.PAUSED)

    @property
    def is_paused(self) -> bool:
        return self.current is CrawlState.PAUSED


@dataclass(frozen=True)
class CrawlFinished:
    """Published once a session reaches a terminal state."""
    state: CrawlState
    seed_urls: Tuple[str, ...]
    statistics: object


Subscriber = Callable[[object], None]


class CrawlEvents:
    """
    Synchronous publish/subscribe channel.

    Subscribers run inline on the publishing task and must not block; an
    exception raised by one subscriber is logged and does not reach the
    controller or the other subscribers.
    """

    def __init__(self):
        self._subscribers: List[Tuple[Subscriber, Optional[type]]] = []
        self.logger = logging.getLogger(__name__)

    def subscribe(self, callback: Subscriber, event_type: Optional[type] = None) -> Callable[[], None]:
        """Register a callback, optionally for one event type. Returns an unsubscribe function."""
        entry = (callback, event_type)
        self._subscribers.append(entry)

        def unsubscribe():
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event: object):
        for callback, event_type in list(self._subscribers):
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                callback(event)
            except Exception as e:
                self.logger.error(f"Event subscriber {callback!r} failed: {e}", exc_info=True)
