"""YouTube channel feed ingestion utilities."""

from __future__ import annotations

import calendar
import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, List

import feedparser
import requests
from requests import exceptions as requests_exceptions

from ..errors import FeedFetchFailed, RateLimited
from . import FeedItem

logger = logging.getLogger(__name__)


def _parse_published_at(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        if value.endswith("Z"):
            value = value.replace("Z", "+00:00")
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _entry_published_at(entry: Any) -> datetime | None:
    published = _parse_published_at(entry.get("published") or entry.get("updated"))
    if published is not None:
        return published
    struct = entry.get("published_parsed") or entry.get("updated_parsed")
    if struct:
        return datetime.fromtimestamp(calendar.timegm(struct), tz=timezone.utc)
    return None


def _extract_video_id(entry: Any) -> str | None:
    vid = entry.get("yt_videoid")
    if vid:
        return str(vid).strip() or None
    link = entry.get("link") or ""
    if "watch?v=" in link:
        return link.split("watch?v=", 1)[1].split("&", 1)[0] or None
    return None


def _retry_after_epoch(header: str | None, now: float) -> float | None:
    """Translate a Retry-After header (seconds or HTTP date) into an epoch."""
    if not header:
        return None
    header = header.strip()
    if header.isdigit():
        return now + int(header)
    try:
        return parsedate_to_datetime(header).timestamp()
    except (TypeError, ValueError):
        return None


def parse_feed_document(content: bytes | str) -> list[FeedItem]:
    """Turn an Atom/RSS document into feed items, in document order."""
    parsed = feedparser.parse(content)
    items: List[FeedItem] = []
    for entry in parsed.entries or []:
        video_id = _extract_video_id(entry)
        if not video_id:
            logger.debug("Skipping feed entry without a video id: %s", entry.get("title"))
            continue
        published_at = _entry_published_at(entry)
        if published_at is None:
            logger.debug("Skipping feed entry %s without a usable publish time", video_id)
            continue
        items.append(
            FeedItem(
                id=video_id,
                title=(entry.get("title") or "").strip(),
                published_at=published_at,
            )
        )
    if parsed.get("bozo") and not items:
        logger.warning("Feed document could not be parsed: %s", parsed.get("bozo_exception"))
    return items


class YouTubeFeedClient:
    """Fetch a channel's uploads feed and normalize its entries."""

    def __init__(
        self,
        feed_url: str,
        *,
        user_agent: str = "clipwire/1.0",
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.feed_url = feed_url
        self.user_agent = user_agent
        self.timeout = timeout
        self._clock = clock

    def fetch(self) -> list[FeedItem]:
        try:
            resp = requests.get(
                self.feed_url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
        except requests_exceptions.RequestException as exc:
            raise FeedFetchFailed(f"Feed request to {self.feed_url} failed: {exc}") from exc

        if resp.status_code == 429:
            raise RateLimited(
                "Feed rate limited",
                reset_at=_retry_after_epoch(resp.headers.get("Retry-After"), self._clock()),
                source="feed",
            )
        if resp.status_code >= 400:
            raise FeedFetchFailed(f"Feed fetch failed: HTTP {resp.status_code}")

        items = parse_feed_document(resp.content)
        logger.debug("Fetched %d feed items from %s", len(items), self.feed_url)
        return items
