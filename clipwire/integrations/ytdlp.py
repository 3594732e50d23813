"""yt-dlp backed acquisition of feed items, plus live-status probing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from yt_dlp import YoutubeDL
from yt_dlp.utils import YoutubeDLError, download_range_func
from yt_dlp.version import __version__ as YT_DLP_VERSION

from ..errors import AcquisitionFailed
from ..services.processing import LiveStatus
from ..utils.media import render_publish_clip

logger = logging.getLogger(__name__)

CLIP_FORMAT = "bv*[ext=mp4][vcodec^=avc1][height<=720]+ba[ext=m4a]/mp4"


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


class YtDlpToolchain:
    """Download bounded clips of YouTube videos and normalize them for posting."""

    def __init__(
        self,
        *,
        user_agent: str | None = None,
        cookies_file: Path | None = None,
        concurrent_fragments: int = 8,
    ) -> None:
        self.user_agent = user_agent
        self.cookies_file = cookies_file
        self.concurrent_fragments = concurrent_fragments

    @staticmethod
    def version() -> str:
        return YT_DLP_VERSION

    def _base_options(self) -> dict[str, Any]:
        opts: dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
        }
        if self.user_agent:
            opts["http_headers"] = {"User-Agent": self.user_agent}
        if self.cookies_file is not None:
            opts["cookiefile"] = str(self.cookies_file)
        return opts

    def check_live_status(self, item_id: str) -> LiveStatus:
        opts = {**self._base_options(), "skip_download": True}
        try:
            with YoutubeDL(opts) as ydl:
                info = ydl.extract_info(watch_url(item_id), download=False)
        except YoutubeDLError as exc:
            logger.warning("Live status check failed for %s: %s", item_id, exc)
            return LiveStatus.UNKNOWN
        return LiveStatus.parse((info or {}).get("live_status"))

    def download_options(self, status: LiveStatus, duration: int, destination: Path) -> dict[str, Any]:
        opts = {
            **self._base_options(),
            "outtmpl": str(destination),
            "overwrites": True,
            "nopart": True,
            "concurrent_fragment_downloads": self.concurrent_fragments,
            "merge_output_format": "mp4",
            "download_ranges": download_range_func(None, [(0, duration)]),
        }
        if status is LiveStatus.IS_LIVE:
            opts["live_from_start"] = True
        else:
            opts["format"] = CLIP_FORMAT
        return opts

    def acquire(self, item_id: str, status: LiveStatus, duration: int, destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        opts = self.download_options(status, duration, destination)
        logger.info(
            "Downloading %s (%s) first %ss -> %s",
            item_id,
            "live from start" if status is LiveStatus.IS_LIVE else "clip",
            duration,
            destination,
        )
        try:
            with YoutubeDL(opts) as ydl:
                ydl.download([watch_url(item_id)])
        except YoutubeDLError as exc:
            raise AcquisitionFailed(f"yt-dlp failed for {item_id}: {exc}") from exc
        if not destination.exists():
            raise AcquisitionFailed(f"yt-dlp produced no file for {item_id} at {destination}")
        return destination

    def transcode(self, source: Path, duration: int, destination: Path) -> Path:
        return render_publish_clip(source, destination, duration=duration)
