"""Logging setup: readable console lines plus a rotating JSON log file."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, MutableMapping

from .config import AppConfig

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
QUIET_LOGGERS = ("urllib3", "yt_dlp", "tweepy", "requests_oauthlib")
LOG_BACKUP_DAYS = 14


class JsonFormatter(logging.Formatter):
    """One JSON object per record, carrying the relay's context fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "event": getattr(record, "event", record.funcName),
            "environment": getattr(record, "environment", "unknown"),
            "dry_run": getattr(record, "dry_run", False),
        }
        for key in ("item_id", "source"):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ContextFilter(logging.Filter):
    """Stamp the deployment environment and dry-run flag on every record."""

    def __init__(self, environment: str, dry_run: bool = False) -> None:
        super().__init__()
        self.environment = environment
        self.dry_run = dry_run

    def filter(self, record: logging.LogRecord) -> bool:
        record.environment = self.environment
        record.dry_run = self.dry_run
        if not hasattr(record, "event"):
            record.event = record.funcName
        return True


class ItemLogAdapter(logging.LoggerAdapter):
    """Attach the feed item id to records and prefix it to the message."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("item_id", self.extra["item_id"])
        kwargs["extra"] = extra
        return f"[{self.extra['item_id']}] {msg}", kwargs


def item_logger(logger: logging.Logger, item_id: str) -> ItemLogAdapter:
    return ItemLogAdapter(logger, {"item_id": item_id})


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(path),
        when="midnight",
        backupCount=LOG_BACKUP_DAYS,
        utc=True,
        encoding="utf-8",
    )
    handler.setFormatter(JsonFormatter())
    return handler


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def configure_logging(config: AppConfig) -> None:
    """Replace root handlers with console and JSON file output for ``config``."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if config.environment == "development" else logging.INFO)
    for existing in list(root.handlers):
        root.removeHandler(existing)

    context = ContextFilter(config.environment, dry_run=config.dry_run)
    for handler in (_console_handler(), _file_handler(config.log_path)):
        handler.addFilter(context)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO)
