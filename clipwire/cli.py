"""Operator commands: cursor override and feed/credential diagnostics."""

from __future__ import annotations

import argparse
import logging
from typing import Sequence

from .config import AppConfig, ConfigError, load_config
from .errors import ClipwireError
from .integrations.x_api import XClient
from .integrations.youtube_feed import YouTubeFeedClient
from .services.feed import unseen
from .state import CursorStore
from .utils.secrets import mask_secret

logger = logging.getLogger("clipwire.cli")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def _feed_client(config: AppConfig) -> YouTubeFeedClient:
    return YouTubeFeedClient(
        config.feed_url,
        user_agent=config.feed_user_agent,
        timeout=config.feed_timeout_seconds,
    )


def cmd_backfill(config: AppConfig, args: argparse.Namespace) -> int:
    store = CursorStore(config.state_path)
    previous = store.read()
    store.write(args.item_id)
    logger.info("Cursor moved %s -> %s", previous or "<none>", args.item_id)
    logger.info("Every item newer than %s is unseen on the next poll cycle.", args.item_id)
    return 0


def cmd_cursor(config: AppConfig, args: argparse.Namespace) -> int:
    value = CursorStore(config.state_path).read()
    logger.info("Cursor at %s: %s", config.state_path, value or "<none>")
    return 0


def cmd_check_creds(config: AppConfig, args: argparse.Namespace) -> int:
    if not config.has_x_credentials:
        logger.error("Missing X credentials (X_APP_KEY, X_APP_SECRET, X_ACCESS_TOKEN, X_ACCESS_SECRET).")
        return 1
    logger.info("Using access token %s", mask_secret(config.x_access_token))
    try:
        username = XClient.from_config(config).who_am_i()
    except ClipwireError as exc:
        logger.error("Identity lookup failed: %s", exc)
        return 1
    logger.info("OK as @%s", username)
    expected = config.expected_username
    if expected and username.lower() != expected:
        logger.error("Refusing: authenticated @%s != expected @%s", username, expected)
        return 2
    return 0


def cmd_unseen(config: AppConfig, args: argparse.Namespace) -> int:
    cursor = args.cursor if args.cursor is not None else CursorStore(config.state_path).read()
    logger.info("Computing unseen batch for cursor %s", cursor or "<none>")
    batch = unseen(cursor, _feed_client(config).fetch())
    logger.info("Unseen items: %d (processed oldest first)", len(batch))
    for item in reversed(batch):
        logger.info("  %s  %s  %s", item.published_at.isoformat(), item.id, item.title[:60])
    return 0


def cmd_feed(config: AppConfig, args: argparse.Namespace) -> int:
    items = _feed_client(config).fetch()
    logger.info("Feed returned %d item(s); newest %d:", len(items), min(args.limit, len(items)))
    newest = sorted(items, key=lambda item: item.published_at, reverse=True)
    for item in newest[: args.limit]:
        logger.info("  %s  %s  %s", item.published_at.isoformat(), item.id, item.title)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="clipwire operator commands")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_backfill = subparsers.add_parser("backfill", help="Overwrite the cursor to reprocess newer items")
    p_backfill.add_argument("item_id", help="Item id to treat as the last published one")
    p_backfill.set_defaults(func=cmd_backfill)

    p_cursor = subparsers.add_parser("cursor", help="Show the persisted cursor")
    p_cursor.set_defaults(func=cmd_cursor)

    p_creds = subparsers.add_parser("check-creds", help="Verify the publishing identity")
    p_creds.set_defaults(func=cmd_check_creds)

    p_unseen = subparsers.add_parser("unseen", help="Show the batch the next cycle would process")
    p_unseen.add_argument("--cursor", help="Use this cursor instead of the persisted one")
    p_unseen.set_defaults(func=cmd_unseen)

    p_feed = subparsers.add_parser("feed", help="Show the newest feed items")
    p_feed.add_argument("--limit", type=int, default=10)
    p_feed.set_defaults(func=cmd_feed)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    setup_logging("INFO")
    args = build_parser().parse_args(argv)
    try:
        config = load_config()
        return args.func(config, args)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 1
    except ClipwireError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
