"""Release engine: decides when a subscription reveals its next chapters.

A subscription advances when both hold:
1. at least frequency_days whole days have passed since the last advancement
2. the chapter after current_chapter exists on the remote site

On advancement current_chapter grows by batch_size and the day is recorded.
Only the next chapter is requested unless strict_batch is enabled, so a batch
larger than one may reveal chapters that are not published yet.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from .catalog import find_story
from .config import DripfeedConfig
from .errors import NotFoundError
from .logging_config import get_logger
from .models import CatalogEntry, FeedPlan, Subscription
from .source import ChapterSource
from .subscriptions import find_subscription, save_subscription

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400


def current_epoch_day(now: Optional[float] = None) -> int:
    """Whole days since the Unix epoch (UTC, no calendar awareness)."""
    if now is None:
        now = time.time()
    return int(now // SECONDS_PER_DAY)


def needs_update(subscription: Subscription, today: int) -> bool:
    return today >= subscription.last_update_epoch_day + subscription.frequency_days


class _LockTable:
    """Per-key locks that exist only while some caller holds or waits on them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[str, list] = {}  # key -> [lock, users]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]


class ReleaseEngine:
    """Loads a subscription, advances it when due, and returns its feed plan."""

    def __init__(
        self,
        config: DripfeedConfig,
        source: Optional[ChapterSource] = None,
        clock: Callable[[], int] = current_epoch_day,
    ):
        """
        Args:
            config: Loaded configuration
            source: Chapter existence check; only needed when resolving with advance=True
            clock: Returns today's epoch day
        """
        self.config = config
        self.source = source
        self.clock = clock
        self._locks = _LockTable()

    def _load(self, reading_id: str) -> tuple[Subscription, CatalogEntry]:
        subscription = find_subscription(self.config.subscriptions_path, reading_id)
        try:
            story = find_story(self.config.catalog_path, subscription.story_id)
        except NotFoundError:
            logger.error(
                f"Subscription {reading_id} references unknown story {subscription.story_id}"
            )
            raise
        return subscription, story

    def _batch_available(self, story: CatalogEntry, subscription: Subscription) -> bool:
        first = subscription.current_chapter + 1
        if self.config.release.strict_batch:
            return self.source.all_exist(
                story, range(first, first + subscription.batch_size)
            )
        return self.source.exists(story, first)

    def resolve(self, reading_id: str, advance: bool = True) -> FeedPlan:
        """Return the feed plan for a subscription, advancing it first if due.

        With advance=False nothing is fetched or written and no source is needed.

        Raises:
            NotFoundError: unknown subscription, or a dangling story reference
            StoreIOError / StoreParseError: a store could not be read or parsed
            UpstreamError: the chapter request failed at the transport level
        """
        subscription, story = self._load(reading_id)
        if not advance:
            return FeedPlan(story=story, subscription=subscription)
        if self.source is None:
            raise ValueError("ReleaseEngine needs a ChapterSource to advance subscriptions")

        # Only ids present in the store reach this point.
        with self._locks.hold(reading_id):
            subscription, story = self._load(reading_id)

            today = self.clock()
            if not needs_update(subscription, today):
                logger.debug(
                    f"{reading_id}: not due until day {subscription.next_release_day} (today {today})"
                )
                return FeedPlan(story=story, subscription=subscription)

            if not self._batch_available(story, subscription):
                logger.info(
                    f"{reading_id}: chapter {subscription.current_chapter + 1} of {story.id} not published yet"
                )
                return FeedPlan(story=story, subscription=subscription)

            advanced = subscription.model_copy(
                update={
                    "current_chapter": subscription.current_chapter + subscription.batch_size,
                    "last_update_epoch_day": today,
                }
            )
            save_subscription(self.config.subscriptions_path, advanced)
            logger.info(
                f"{reading_id}: advanced {story.id} from chapter "
                f"{subscription.current_chapter} to {advanced.current_chapter}"
            )
            return FeedPlan(story=story, subscription=advanced, advanced=True)
