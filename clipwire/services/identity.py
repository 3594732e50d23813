"""Non-blocking confirmation of the publishing identity."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Protocol

from ..errors import IdentityMismatch
from .rate_limit import RateLimitGovernor

logger = logging.getLogger(__name__)


class IdentityLookup(Protocol):
    def who_am_i(self) -> str: ...


@dataclass(slots=True)
class IdentityState:
    """Whether the publishing identity is confirmed, and when to try again."""

    confirmed: bool = False
    next_check_at: float = 0.0


class IdentityGuard:
    """Confirm the authenticated account with its own backoff clock.

    Polling never waits on this guard; the loop only refuses to publish
    while ``confirmed`` is false.
    """

    def __init__(
        self,
        api: IdentityLookup,
        governor: RateLimitGovernor,
        *,
        expected_username: str | None = None,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.api = api
        self.governor = governor
        self.expected_username = (expected_username or "").strip().lstrip("@").lower() or None
        self.enabled = enabled
        self._clock = clock
        self.state = IdentityState(confirmed=not enabled)
        if not enabled:
            logger.warning("Identity check disabled; publishing without confirming the account.")

    @property
    def confirmed(self) -> bool:
        return self.state.confirmed

    def ensure_confirmed(self) -> None:
        if self.state.confirmed or not self.enabled:
            return
        now = self._clock()
        if now < self.state.next_check_at:
            return

        try:
            username = self.api.who_am_i()
        except Exception as exc:
            classified = self.governor.classify(exc)
            reset_at = classified.reset_at or (now + self.governor.default_window)
            self.state.next_check_at = reset_at + self.governor.jitter()
            logger.warning(
                "Identity check deferred (%s: %s). Will retry after %s",
                classified.kind.value,
                exc,
                datetime.fromtimestamp(self.state.next_check_at, tz=timezone.utc).isoformat(),
            )
            return

        actual = (username or "").strip().lstrip("@").lower()
        if self.expected_username and actual != self.expected_username:
            raise IdentityMismatch(actual, self.expected_username)
        self.state.confirmed = True
        logger.info("Identity confirmed as @%s", username)
