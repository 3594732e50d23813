"""Durable cursor storage and the liveness heartbeat."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)


class CursorStore:
    """Single-value store holding the id of the last published item.

    Writes go to a temporary file in the same directory which is then
    renamed over the target, so a crash never leaves a truncated cursor.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self) -> str | None:
        if not self.path.exists():
            return None
        value = self.path.read_text(encoding="utf-8").strip()
        return value or None

    def write(self, item_id: str) -> None:
        value = item_id.strip()
        if not value:
            raise ValueError("cursor value must not be empty")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Cursor persisted to %s: %s", self.path, value)


def touch_heartbeat(path: Path, clock: Callable[[], float] = time.time) -> None:
    """Record the current epoch second for external health checks."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(str(int(clock())), encoding="utf-8")
    except OSError as exc:
        logger.error("Failed to write heartbeat %s: %s", path, exc)
