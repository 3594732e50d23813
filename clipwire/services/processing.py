"""Per-item pipeline: classify, acquire, normalize."""

from __future__ import annotations

import enum
import glob
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..errors import AcquisitionFailed, ConversionFailed, ShutdownRequested
from ..integrations import FeedItem

logger = logging.getLogger(__name__)


class LiveStatus(str, enum.Enum):
    NOT_LIVE = "not_live"
    IS_UPCOMING = "is_upcoming"
    IS_LIVE = "is_live"
    WAS_LIVE = "was_live"
    POST_LIVE = "post_live"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "LiveStatus":
        if not value:
            return cls.NOT_LIVE
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class MediaToolchain(Protocol):
    """External tooling that turns an item id into a publishable clip."""

    def check_live_status(self, item_id: str) -> LiveStatus: ...

    def acquire(self, item_id: str, status: LiveStatus, duration: int, destination: Path) -> Path: ...

    def transcode(self, source: Path, duration: int, destination: Path) -> Path: ...


@dataclass(frozen=True, slots=True)
class Artifacts:
    """Local files produced for one item; removed once the item is settled.

    Cleanup also removes every ``<id>.*`` sibling of ``raw``, which covers
    yt-dlp format intermediates and moviepy temp audio left by a failed run.
    """

    raw: Path
    clip: Path

    def leftovers(self) -> list[Path]:
        stem = glob.escape(self.raw.stem)
        return sorted(set(self.raw.parent.glob(f"{stem}.*")) | {self.raw, self.clip})

    def cleanup(self) -> None:
        for path in self.leftovers():
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove artifact %s: %s", path, exc)


class OutcomeKind(enum.Enum):
    SKIP = "skip"
    DEFER = "defer"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True, slots=True)
class ProcessingOutcome:
    kind: OutcomeKind
    item_id: str
    reason: str = ""
    artifacts: Artifacts | None = None
    error: Exception | None = None

    @classmethod
    def skip(cls, item_id: str, reason: str) -> "ProcessingOutcome":
        return cls(OutcomeKind.SKIP, item_id, reason)

    @classmethod
    def defer(cls, item_id: str, reason: str) -> "ProcessingOutcome":
        return cls(OutcomeKind.DEFER, item_id, reason)

    @classmethod
    def success(cls, item_id: str, artifacts: Artifacts) -> "ProcessingOutcome":
        return cls(OutcomeKind.SUCCESS, item_id, "ready", artifacts=artifacts)

    @classmethod
    def failure(cls, item_id: str, error: Exception) -> "ProcessingOutcome":
        return cls(OutcomeKind.FAILURE, item_id, str(error), error=error)

    def cleanup(self) -> None:
        if self.artifacts is not None:
            self.artifacts.cleanup()


class ItemProcessor:
    """Drive one feed item from classification to a normalized clip.

    Never touches the cursor. On failure any partial files are removed
    before returning; on success the caller owns ``outcome.artifacts``.
    """

    def __init__(
        self,
        toolchain: MediaToolchain,
        *,
        work_dir: Path,
        clip_seconds: int,
        max_retries: int,
        retry_delay: float,
        sleep: Callable[[float], bool | None] = time.sleep,
    ) -> None:
        self.toolchain = toolchain
        self.work_dir = Path(work_dir)
        self.clip_seconds = clip_seconds
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    def artifact_paths(self, item_id: str) -> Artifacts:
        return Artifacts(
            raw=self.work_dir / f"{item_id}.mp4",
            clip=self.work_dir / f"{item_id}.clip.mp4",
        )

    def process(self, item: FeedItem) -> ProcessingOutcome:
        status = self.toolchain.check_live_status(item.id)
        if status is LiveStatus.UNKNOWN:
            logger.warning("Live status unknown for %s; treating as not live", item.id)
        else:
            logger.info("Live status for %s: %s", item.id, status.value)

        if status is LiveStatus.IS_UPCOMING:
            logger.info("Live is upcoming for %s. Will retry later.", item.id)
            return ProcessingOutcome.defer(item.id, "live_upcoming")
        if status is LiveStatus.POST_LIVE:
            logger.info("Replay for %s is still being processed. Will retry later.", item.id)
            return ProcessingOutcome.skip(item.id, "replay_processing")

        artifacts = self.artifact_paths(item.id)
        try:
            self._acquire_with_retry(item.id, status, artifacts.raw)
            self.toolchain.transcode(artifacts.raw, self.clip_seconds, artifacts.clip)
        except (AcquisitionFailed, ConversionFailed) as exc:
            artifacts.cleanup()
            logger.error("Download/process failed for %s: %s", item.id, exc)
            return ProcessingOutcome.failure(item.id, exc)
        except BaseException:
            artifacts.cleanup()
            raise

        logger.info("Clip ready for %s at %s", item.id, artifacts.clip)
        return ProcessingOutcome.success(item.id, artifacts)

    def _acquire_with_retry(self, item_id: str, status: LiveStatus, destination: Path) -> Path:
        attempts = self.max_retries + 1

        def _log_retry(retry_state) -> None:
            logger.warning(
                "Download failed for %s (attempt %d/%d): %s. Retrying in %ss",
                item_id,
                retry_state.attempt_number,
                attempts,
                retry_state.outcome.exception(),
                self.retry_delay,
            )

        retryer = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(AcquisitionFailed),
            before_sleep=_log_retry,
            sleep=self._retry_sleep,
            reraise=True,
        )
        return retryer(self.toolchain.acquire, item_id, status, self.clip_seconds, destination)

    def _retry_sleep(self, seconds: float) -> None:
        if self._sleep(seconds):
            raise ShutdownRequested("Stop requested during download retry delay")
