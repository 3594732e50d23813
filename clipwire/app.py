"""Top-level application controller for the clipwire relay."""

from __future__ import annotations

import json
import logging
import signal
import threading
from types import FrameType
from typing import Any, Optional

from .config import AppConfig, load_config
from .integrations.x_api import build_x_client
from .integrations.youtube_feed import YouTubeFeedClient
from .integrations.ytdlp import YtDlpToolchain
from .logging_utils import configure_logging
from .services.identity import IdentityGuard
from .services.poll_loop import FeedSource, PollLoop
from .services.processing import ItemProcessor, MediaToolchain
from .services.publishing import PublishApi, Publisher
from .services.rate_limit import RateLimitGovernor
from .state import CursorStore

logger = logging.getLogger(__name__)


def _log_event(level: int, event: str, **fields: Any) -> None:
    """Emit structured log events with consistent metadata."""
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, separators=(",", ":")))


class ClipwireApp:
    """Wires the collaborators together and runs the poll loop until stopped."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        feed: FeedSource | None = None,
        toolchain: MediaToolchain | None = None,
        api: PublishApi | None = None,
        governor: RateLimitGovernor | None = None,
    ) -> None:
        self.config = config or load_config()
        configure_logging(self.config)
        self._stop_event = threading.Event()
        self._lifecycle_lock = threading.Lock()
        self._is_running = False
        self._signals_installed = False

        cfg = self.config
        self.toolchain = toolchain or YtDlpToolchain(
            user_agent=cfg.download_user_agent,
            cookies_file=cfg.usable_cookies_file,
        )
        self.api = api or build_x_client(cfg)
        self.governor = governor or RateLimitGovernor()
        self.loop = PollLoop(
            feed=feed or YouTubeFeedClient(cfg.feed_url, user_agent=cfg.feed_user_agent, timeout=cfg.feed_timeout_seconds),
            store=CursorStore(cfg.state_path),
            processor=ItemProcessor(
                self.toolchain,
                work_dir=cfg.work_dir,
                clip_seconds=cfg.clip_seconds,
                max_retries=cfg.max_download_retries,
                retry_delay=cfg.retry_delay_seconds,
                sleep=self._sleep,
            ),
            publisher=Publisher(
                self.api,
                dry_run=cfg.dry_run,
                allow_link_fallback=cfg.allow_link_fallback,
                max_status_checks=cfg.media_status_max_checks,
                max_status_delay=cfg.media_status_max_delay,
                sleep=self._sleep,
            ),
            identity=IdentityGuard(
                self.api,
                self.governor,
                expected_username=cfg.expected_username,
                enabled=cfg.identity_check_enabled,
            ),
            governor=self.governor,
            poll_seconds=cfg.poll_seconds,
            heartbeat_path=cfg.heartbeat_path,
            stop_requested=self._stop_event.is_set,
        )
        _log_event(
            logging.INFO,
            "clipwire.initialized",
            environment=cfg.environment,
            feed_url=cfg.feed_url,
            dry_run=cfg.dry_run,
            clip_seconds=cfg.clip_seconds,
            poll_seconds=cfg.poll_seconds,
        )

    def _sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``; True means a stop was requested meanwhile."""
        return self._stop_event.wait(seconds)

    def _install_signal_handlers(self) -> None:
        """Attach SIGTERM/SIGINT handlers when running on the main thread."""
        if self._signals_installed:
            return
        if threading.current_thread() is not threading.main_thread():
            _log_event(logging.WARNING, "clipwire.signal_handlers_skipped", reason="not_main_thread")
            return

        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)
        self._signals_installed = True
        _log_event(logging.INFO, "clipwire.signal_handlers_installed")

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        """Signal handler that forwards into the graceful stop logic."""
        _log_event(logging.WARNING, "clipwire.signal_received", signal=signum)
        self.stop()

    def run_once(self) -> float:
        """Run a single cycle; returns the delay the loop would sleep next."""
        _log_event(logging.INFO, "clipwire.single_cycle", yt_dlp_version=self._toolchain_version())
        delay = self.loop.run_cycle()
        _log_event(logging.INFO, "clipwire.single_cycle_done", next_delay_s=round(delay, 1))
        return delay

    def _toolchain_version(self) -> str:
        version = getattr(self.toolchain, "version", None)
        return version() if callable(version) else "unknown"

    def start(self) -> None:
        """Run the poll loop and block until termination is requested."""
        with self._lifecycle_lock:
            if self._is_running:
                _log_event(logging.INFO, "clipwire.start_ignored", reason="already_running")
                return
            self._is_running = True
            self._stop_event.clear()

        self._install_signal_handlers()
        _log_event(logging.INFO, "clipwire.starting", yt_dlp_version=self._toolchain_version())

        try:
            self.loop.run_forever(self._stop_event.wait)
        except Exception as exc:
            _log_event(logging.CRITICAL, "clipwire.loop_failed", error_type=type(exc).__name__, error=str(exc))
            raise
        finally:
            with self._lifecycle_lock:
                self._is_running = False
            self._stop_event.clear()
            _log_event(logging.INFO, "clipwire.stopped")

    def stop(self) -> None:
        """Signal the application to stop."""
        with self._lifecycle_lock:
            if not self._is_running:
                _log_event(logging.INFO, "clipwire.stop_ignored", reason="not_running")
                return
            if self._stop_event.is_set():
                _log_event(logging.DEBUG, "clipwire.stop_redundant")
                return
            self._stop_event.set()
            _log_event(logging.WARNING, "clipwire.stop_requested")
