"""Publishing of normalized clips, with server-side readiness polling."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal, Protocol, Sequence

from ..errors import (
    MediaProcessingFailed,
    MediaProcessingTimeout,
    PublishError,
    RateLimited,
    ShutdownRequested,
)
from ..integrations import FeedItem

logger = logging.getLogger(__name__)

DEFAULT_STATUS_DELAY_SECONDS = 2.0

MediaState = Literal["pending", "ready", "failed"]


@dataclass(frozen=True, slots=True)
class MediaStatus:
    """Server-side processing state of an uploaded media handle."""

    state: MediaState
    retry_after: float | None = None
    error: str | None = None


class PublishApi(Protocol):
    def who_am_i(self) -> str: ...

    def upload_media(self, path: Path) -> str: ...

    def media_status(self, handle: str) -> MediaStatus: ...

    def create_post(self, text: str, media_handles: Sequence[str] | None = None) -> str: ...


def build_caption(item: FeedItem) -> str:
    return f"{item.title}\n\nWatch full on YouTube: {item.short_url}"


class Publisher:
    """Upload a clip, wait until the platform can use it, then post.

    The caller must have confirmed the publishing identity. Rate limits
    always propagate as ``RateLimited`` so the whole loop pauses, and a stop
    reported by ``sleep`` (it returns True) raises ``ShutdownRequested``. Any
    other failure may degrade to a link-only post when ``allow_link_fallback``
    is set.
    """

    def __init__(
        self,
        api: PublishApi,
        *,
        dry_run: bool = False,
        allow_link_fallback: bool = False,
        max_status_checks: int = 40,
        max_status_delay: float = 10.0,
        sleep: Callable[[float], bool | None] = time.sleep,
    ) -> None:
        self.api = api
        self.dry_run = dry_run
        self.allow_link_fallback = allow_link_fallback
        self.max_status_checks = max_status_checks
        self.max_status_delay = max_status_delay
        self._sleep = sleep

    def publish(self, item: FeedItem, clip_path: Path) -> str | None:
        text = build_caption(item)
        if self.dry_run:
            logger.info("[DRY_RUN] Would upload %s and post for %s: %r", clip_path, item.id, text)
            return None

        try:
            handle = self.api.upload_media(clip_path)
            self.wait_for_media_ready(handle)
            post_id = self.api.create_post(text, [handle])
        except (RateLimited, ShutdownRequested):
            raise
        except PublishError as exc:
            logger.error("Native video post failed for %s: %s", item.id, exc)
            return self._link_only_fallback(item, text, exc)

        logger.info("Posted %s with native video as post %s", item.id, post_id)
        return post_id

    def wait_for_media_ready(self, handle: str) -> None:
        for attempt in range(1, self.max_status_checks + 1):
            status = self.api.media_status(handle)
            if status.state == "ready":
                logger.debug("Media %s ready after %d status check(s)", handle, attempt)
                return
            if status.state == "failed":
                raise MediaProcessingFailed(f"Media processing failed: {status.error or 'unknown'}")
            delay = min(status.retry_after or DEFAULT_STATUS_DELAY_SECONDS, self.max_status_delay)
            if self._sleep(delay):
                raise ShutdownRequested(f"Stop requested while waiting for media {handle}")
        raise MediaProcessingTimeout(
            f"Media {handle} not ready after {self.max_status_checks} status checks"
        )

    def _link_only_fallback(self, item: FeedItem, text: str, cause: PublishError) -> str:
        if not self.allow_link_fallback:
            logger.warning("Skipping link-only fallback for %s (ALLOW_LINK_FALLBACK disabled).", item.id)
            raise cause

        try:
            post_id = self.api.create_post(text)
        except RateLimited:
            raise
        except PublishError as exc:
            logger.error("Fallback link-only post failed for %s: %s", item.id, exc)
            raise PublishError(f"Native and link-only posts failed for {item.id}: {exc}") from exc
        logger.warning("Fallback link-only post %s published for %s.", post_id, item.id)
        return post_id
