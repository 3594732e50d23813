"""Upload handler and post client that wrap the X (Twitter) API via tweepy."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

import tweepy
from requests import exceptions as requests_exceptions

from ..config import AppConfig, ConfigError
from ..errors import ClipwireError, IdentityLookupFailed, PublishError, RateLimited
from ..services.publishing import MediaStatus
from ..utils.secrets import secret_value

logger = logging.getLogger(__name__)


def _reset_epoch(exc: tweepy.TooManyRequests) -> float | None:
    headers = getattr(exc.response, "headers", None) or {}
    raw = headers.get("x-rate-limit-reset")
    try:
        return float(raw) if raw else None
    except (TypeError, ValueError):
        return None


@contextmanager
def _x_errors(operation: str, error_cls: type[ClipwireError]) -> Iterator[None]:
    """Translate tweepy/requests failures into the relay's error taxonomy."""
    try:
        yield
    except tweepy.TooManyRequests as exc:
        raise RateLimited(f"X rate limited during {operation}", reset_at=_reset_epoch(exc), source="x") from exc
    except (tweepy.TweepyException, requests_exceptions.RequestException) as exc:
        raise error_cls(f"X {operation} failed: {exc}") from exc


def _media_status_from(media: Any) -> MediaStatus:
    info = getattr(media, "processing_info", None) or {}
    state = info.get("state")
    if not info or state == "succeeded":
        return MediaStatus("ready")
    if state == "failed":
        error = info.get("error") or {}
        return MediaStatus("failed", error=error.get("message") or error.get("name") or "unknown")
    return MediaStatus("pending", retry_after=info.get("check_after_secs"))


class XClient:
    """Minimal X client: identity lookup, chunked video upload and posting."""

    def __init__(self, client: tweepy.Client, api: tweepy.API, *, authenticated: bool = True) -> None:
        self.client = client
        self.api = api
        self.authenticated = authenticated

    @classmethod
    def from_config(cls, config: AppConfig) -> "XClient":
        keys = {
            "consumer_key": secret_value(config.x_app_key),
            "consumer_secret": secret_value(config.x_app_secret),
            "access_token": secret_value(config.x_access_token),
            "access_token_secret": secret_value(config.x_access_secret),
        }
        auth = None
        if all(keys.values()):
            auth = tweepy.OAuth1UserHandler(
                keys["consumer_key"],
                keys["consumer_secret"],
                keys["access_token"],
                keys["access_token_secret"],
            )
        else:
            logger.warning("X credentials incomplete; identity checks and posts will fail until they are set.")
        return cls(client=tweepy.Client(**keys), api=tweepy.API(auth), authenticated=auth is not None)

    def who_am_i(self) -> str:
        if not self.authenticated:
            raise IdentityLookupFailed("X credentials are not configured")
        with _x_errors("identity lookup", IdentityLookupFailed):
            response = self.client.get_me(user_auth=True)
        user = getattr(response, "data", None)
        username = getattr(user, "username", None)
        if not username:
            raise IdentityLookupFailed("X identity lookup returned no username")
        return str(username)

    def upload_media(self, path: Path) -> str:
        if not Path(path).is_file():
            raise PublishError(f"Clip {path} does not exist")
        with _x_errors("media upload", PublishError):
            media = self.api.media_upload(
                filename=str(path),
                chunked=True,
                media_category="tweet_video",
                wait_for_async_finalize=False,
            )
        logger.debug("Uploaded %s as media %s", path, media.media_id)
        return str(media.media_id)

    def media_status(self, handle: str) -> MediaStatus:
        with _x_errors("media status", PublishError):
            media = self.api.get_media_upload_status(handle)
        return _media_status_from(media)

    def create_post(self, text: str, media_handles: Sequence[str] | None = None) -> str:
        media_ids = list(media_handles) if media_handles else None
        with _x_errors("post creation", PublishError):
            response = self.client.create_tweet(text=text, media_ids=media_ids, user_auth=True)
        return str(response.data["id"])


def build_x_client(config: AppConfig) -> XClient:
    """Build the publish-API client, refusing a live run without credentials."""
    if not config.has_x_credentials and not config.dry_run:
        raise ConfigError("X_APP_KEY, X_APP_SECRET, X_ACCESS_TOKEN and X_ACCESS_SECRET are required")
    return XClient.from_config(config)
