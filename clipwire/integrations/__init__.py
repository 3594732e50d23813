"""Integration helpers for the feed, download toolchain and publishing platform."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class FeedItem:
    """Normalized representation of one entry of the publication feed."""

    id: str
    title: str
    published_at: datetime

    @property
    def short_url(self) -> str:
        return f"https://youtu.be/{self.id}"


__all__ = ["FeedItem"]
