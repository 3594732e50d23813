"""The poll, detect, process and publish control loop."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Sequence

from ..errors import IdentityMismatch, ShutdownRequested
from ..integrations import FeedItem
from ..logging_utils import item_logger
from ..state import CursorStore, touch_heartbeat
from .feed import unseen
from .identity import IdentityGuard
from .processing import ItemProcessor, OutcomeKind
from .publishing import Publisher
from .rate_limit import RateLimitGovernor

logger = logging.getLogger(__name__)


class FeedSource(Protocol):
    def fetch(self) -> list[FeedItem]: ...


@dataclass(frozen=True, slots=True)
class BatchResult:
    """What one walk over an unseen batch achieved."""

    last_published_id: str | None
    published: int
    backoff_seconds: float | None = None


class PollLoop:
    """Single worker that moves the cursor through the feed, oldest first.

    The cursor is read once per cycle and written at most once, after every
    item of the batch is settled; it only ever names an item whose publish
    call returned successfully.
    """

    def __init__(
        self,
        *,
        feed: FeedSource,
        store: CursorStore,
        processor: ItemProcessor,
        publisher: Publisher,
        identity: IdentityGuard,
        governor: RateLimitGovernor,
        poll_seconds: float,
        heartbeat_path: Path | None = None,
        clock: Callable[[], float] = time.time,
        stop_requested: Callable[[], bool] = lambda: False,
    ) -> None:
        self.feed = feed
        self.store = store
        self.processor = processor
        self.publisher = publisher
        self.identity = identity
        self.governor = governor
        self.poll_seconds = poll_seconds
        self.heartbeat_path = heartbeat_path
        self._clock = clock
        self._stop_requested = stop_requested

    def run_forever(self, wait: Callable[[float], bool]) -> None:
        """Run cycles until ``wait`` reports that a stop was requested."""
        while True:
            delay = self.run_cycle()
            logger.debug("Sleeping seconds=%.1f", delay)
            if wait(delay):
                logger.info("Stop requested; leaving poll loop.")
                return

    def run_cycle(self) -> float:
        """Run one cycle and return how many seconds to sleep before the next."""
        if self.heartbeat_path is not None:
            touch_heartbeat(self.heartbeat_path, self._clock)
        logger.info("Polling feed ...")
        try:
            self.identity.ensure_confirmed()
            cursor = self.store.read()
            batch = unseen(cursor, self.feed.fetch())
            if not batch:
                logger.info("No new items. Sleeping %ss.", self.poll_seconds)
                return self.poll_seconds

            logger.info("Found %d unseen item(s). Processing oldest to newest.", len(batch))
            result = self.process_batch(batch, cursor)
        except IdentityMismatch:
            raise
        except ShutdownRequested as exc:
            logger.info("Cycle interrupted: %s", exc)
            return 0.0
        except Exception as exc:
            classified = self.governor.classify(exc)
            if classified.is_rate_limited:
                delay = self.governor.backoff_delay(classified.reset_at)
                logger.warning("Rate limited (%s). Sleeping ~%ds.", exc, round(delay))
                return delay
            logger.exception("Cycle failed: %s", exc)
            return self.governor.jittered(self.poll_seconds)

        logger.info(
            "Cycle done: %d of %d item(s) posted; cursor at %s.",
            result.published,
            len(batch),
            result.last_published_id or "<none>",
        )
        if result.backoff_seconds is not None:
            return result.backoff_seconds + self.poll_seconds
        return self.poll_seconds

    def process_batch(self, batch: Sequence[FeedItem], cursor: str | None) -> BatchResult:
        last_published = cursor
        published = 0
        backoff: float | None = None
        try:
            for item in reversed(batch):
                log = item_logger(logger, item.id)
                if self._stop_requested():
                    log.info("Stop requested; leaving the rest of the batch for the next run.")
                    break
                log.info("Processing %s", item.title)
                outcome = self.processor.process(item)
                try:
                    if outcome.kind in (OutcomeKind.DEFER, OutcomeKind.SKIP):
                        log.info("Stopping batch (%s); retrying next cycle.", outcome.reason)
                        break
                    if outcome.kind is OutcomeKind.FAILURE:
                        log.error("Stopping batch: %s", outcome.reason)
                        break
                    if not self.identity.confirmed:
                        log.info("Waiting for identity confirmation; not posting this cycle.")
                        break
                    try:
                        self.publisher.publish(item, outcome.artifacts.clip)
                    except ShutdownRequested:
                        raise
                    except Exception as exc:
                        classified = self.governor.classify(exc)
                        if classified.is_rate_limited:
                            backoff = self.governor.backoff_delay(classified.reset_at)
                            log.warning("429 while posting. Backing off ~%ds.", round(backoff))
                        else:
                            log.error("Post failed: %s", exc)
                        break
                    last_published = item.id
                    published += 1
                    log.info("Successfully posted")
                finally:
                    outcome.cleanup()
        finally:
            if last_published and last_published != cursor:
                self.store.write(last_published)
                logger.info("Updated cursor to %s", last_published)
        return BatchResult(last_published, published, backoff)
