from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable

import pytest

from clipwire.errors import AcquisitionFailed, ConversionFailed, PublishError
from clipwire.integrations import FeedItem
from clipwire.services.identity import IdentityGuard
from clipwire.services.poll_loop import PollLoop
from clipwire.services.processing import ItemProcessor, LiveStatus
from clipwire.services.publishing import MediaStatus, Publisher
from clipwire.services.rate_limit import RateLimitGovernor
from clipwire.state import CursorStore

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_item(item_id: str, minutes: int, title: str | None = None) -> FeedItem:
    return FeedItem(id=item_id, title=title or f"Video {item_id}", published_at=BASE_TIME + timedelta(minutes=minutes))


def make_feed(*ids: str) -> list[FeedItem]:
    """Items listed newest first, one minute apart."""
    count = len(ids)
    return [make_item(item_id, count - index) for index, item_id in enumerate(ids)]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeFeed:
    def __init__(self, items: Iterable[FeedItem] = ()) -> None:
        self.items = list(items)
        self.error: Exception | None = None
        self.calls = 0

    def fetch(self) -> list[FeedItem]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.items)


class FakeToolchain:
    def __init__(self) -> None:
        self.statuses: dict[str, LiveStatus] = {}
        self.acquire_failures: dict[str, int] = {}
        self.transcode_failures: set[str] = set()
        self.acquired: list[tuple[str, LiveStatus, int]] = []
        self.transcoded: list[Path] = []

    def check_live_status(self, item_id: str) -> LiveStatus:
        return self.statuses.get(item_id, LiveStatus.NOT_LIVE)

    def acquire(self, item_id: str, status: LiveStatus, duration: int, destination: Path) -> Path:
        self.acquired.append((item_id, status, duration))
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"raw:" + item_id.encode())
        remaining = self.acquire_failures.get(item_id, 0)
        if remaining:
            self.acquire_failures[item_id] = remaining - 1
            raise AcquisitionFailed(f"yt-dlp hiccup for {item_id}")
        return destination

    def transcode(self, source: Path, duration: int, destination: Path) -> Path:
        self.transcoded.append(source)
        if source.stem in self.transcode_failures:
            raise ConversionFailed(f"ffmpeg failed on {source.name}")
        destination.write_bytes(b"clip:" + source.read_bytes())
        return destination


class FakeApi:
    def __init__(self, username: str = "relay_bot") -> None:
        self.username = username
        self.identity_errors: list[Exception] = []
        self.identity_calls = 0
        self.statuses: list[MediaStatus] = []
        self.post_errors: dict[str, Exception] = {}
        self.upload_errors: list[Exception] = []
        self.uploads: list[Path] = []
        self.posts: list[tuple[str, tuple[str, ...]]] = []
        self.seen_clips: list[bytes] = []

    def who_am_i(self) -> str:
        self.identity_calls += 1
        if self.identity_errors:
            raise self.identity_errors.pop(0)
        return self.username

    def upload_media(self, path: Path) -> str:
        if self.upload_errors:
            raise self.upload_errors.pop(0)
        self.uploads.append(path)
        self.seen_clips.append(Path(path).read_bytes())
        return f"media-{len(self.uploads)}"

    def media_status(self, handle: str) -> MediaStatus:
        if self.statuses:
            return self.statuses.pop(0)
        return MediaStatus("ready")

    def create_post(self, text: str, media_handles=None) -> str:
        for marker, error in list(self.post_errors.items()):
            if marker in text:
                raise error
        self.posts.append((text, tuple(media_handles or ())))
        return f"post-{len(self.posts)}"

    def posted_ids(self) -> list[str]:
        return [text.rsplit("/", 1)[-1] for text, _ in self.posts]


class FailingApi(FakeApi):
    def create_post(self, text: str, media_handles=None) -> str:
        raise PublishError("boom")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def governor(clock: FakeClock) -> RateLimitGovernor:
    return RateLimitGovernor(clock=clock, rng=random.Random(7))


@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def feed() -> FakeFeed:
    return FakeFeed()


@pytest.fixture
def store(tmp_path: Path) -> CursorStore:
    return CursorStore(tmp_path / "state" / "last.txt")


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def make_processor(toolchain: FakeToolchain, work_dir: Path, sleeps: list[float]) -> Callable[..., ItemProcessor]:
    def _make(**overrides) -> ItemProcessor:
        options = dict(work_dir=work_dir, clip_seconds=90, max_retries=2, retry_delay=60, sleep=sleeps.append)
        options.update(overrides)
        return ItemProcessor(toolchain, **options)

    return _make


@pytest.fixture
def make_loop(
    feed: FakeFeed,
    store: CursorStore,
    api: FakeApi,
    governor: RateLimitGovernor,
    clock: FakeClock,
    make_processor,
    sleeps: list[float],
    tmp_path: Path,
) -> Callable[..., PollLoop]:
    def _make(
        *,
        expected_username: str | None = None,
        identity_enabled: bool = True,
        stop_requested: Callable[[], bool] = lambda: False,
        **publisher_options,
    ) -> PollLoop:
        publisher_options.setdefault("sleep", sleeps.append)
        return PollLoop(
            feed=feed,
            store=store,
            processor=make_processor(),
            publisher=Publisher(api, **publisher_options),
            identity=IdentityGuard(
                api,
                governor,
                expected_username=expected_username,
                enabled=identity_enabled,
                clock=clock,
            ),
            governor=governor,
            poll_seconds=120,
            heartbeat_path=tmp_path / "heartbeat",
            clock=clock,
            stop_requested=stop_requested,
        )

    return _make
