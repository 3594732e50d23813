"""Feed diffing: which items are newer than the persisted cursor."""

from __future__ import annotations

import logging
from typing import Sequence

from ..errors import FeedEmpty
from ..integrations import FeedItem

logger = logging.getLogger(__name__)

MAX_UNSEEN_PER_CYCLE = 5


def unseen(cursor: str | None, feed_items: Sequence[FeedItem]) -> list[FeedItem]:
    """Return the unseen batch, newest first.

    Items are ordered by publish time, newest first; equal timestamps keep
    their feed order. With a known cursor everything strictly newer than it
    is unseen. Without a cursor, or when the cursor has slid out of the feed
    window, only the single newest item is returned. The batch never holds
    more than ``MAX_UNSEEN_PER_CYCLE`` items.
    """
    if not feed_items:
        raise FeedEmpty("Feed yielded no parsable items")

    ordered = sorted(feed_items, key=lambda item: item.published_at, reverse=True)
    index = next((i for i, item in enumerate(ordered) if item.id == cursor), -1) if cursor else -1

    if index >= 0:
        batch = ordered[:index]
    else:
        if cursor:
            logger.warning("Cursor %s not found in the current feed window; taking newest item only", cursor)
        batch = ordered[:1]
    return batch[:MAX_UNSEEN_PER_CYCLE]
