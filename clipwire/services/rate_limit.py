"""Uniform rate-limit classification and jittered backoff."""

from __future__ import annotations

import enum
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable

from ..errors import RateLimited

logger = logging.getLogger(__name__)

DEFAULT_RESET_WINDOW_SECONDS = 15 * 60
MAX_JITTER_SECONDS = 5.0


class ErrorKind(enum.Enum):
    RATE_LIMITED = "rate_limited"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class ClassifiedError:
    """An external failure reduced to what the loop needs to decide on."""

    kind: ErrorKind
    reset_at: float | None
    error: BaseException

    @property
    def is_rate_limited(self) -> bool:
        return self.kind is ErrorKind.RATE_LIMITED


class RateLimitGovernor:
    """Classify errors from any call site and compute how long to back off."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
        default_window: float = DEFAULT_RESET_WINDOW_SECONDS,
        max_jitter: float = MAX_JITTER_SECONDS,
    ) -> None:
        self._clock = clock
        self._rng = rng or random.Random()
        self.default_window = default_window
        self.max_jitter = max_jitter

    def classify(self, error: BaseException) -> ClassifiedError:
        if isinstance(error, RateLimited):
            reset_at = error.reset_at
            if reset_at is None or reset_at <= self._clock():
                reset_at = self._clock() + self.default_window
            return ClassifiedError(ErrorKind.RATE_LIMITED, reset_at, error)
        return ClassifiedError(ErrorKind.OTHER, None, error)

    def jitter(self) -> float:
        return self._rng.uniform(0.0, self.max_jitter)

    def jittered(self, seconds: float) -> float:
        return seconds + self.jitter()

    def backoff_delay(self, reset_at: float | None) -> float:
        """Seconds to sleep until ``reset_at``, plus jitter.

        A missing or already elapsed reset falls back to the default window.
        """
        now = self._clock()
        wait = reset_at - now if reset_at is not None and reset_at > now else self.default_window
        return self.jittered(wait)
