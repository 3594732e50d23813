"""Configuration loader for the clipwire feed-to-post relay (Pydantic edition)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Literal

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOGGER = logging.getLogger(__name__)
DEFAULT_DOWNLOAD_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
)


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded safely."""


class AppConfig(BaseSettings):
    """Strongly typed runtime configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        validate_default=True,
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        validation_alias=AliasChoices("APP_ENVIRONMENT", "APP_ENV"),
    )

    # Feed and clip shaping
    feed_url: str = Field(validation_alias=AliasChoices("APP_FEED_URL", "FEED_URL"))
    clip_seconds: int = Field(90, ge=1, validation_alias=AliasChoices("APP_CLIP_SECONDS", "TEASER_SECONDS"))
    feed_user_agent: str = Field("clipwire/1.0", validation_alias="APP_FEED_USER_AGENT")
    feed_timeout_seconds: float = Field(30.0, gt=0, validation_alias="APP_FEED_TIMEOUT")

    # Loop cadence and retries
    poll_seconds: int = Field(120, ge=1, validation_alias=AliasChoices("APP_POLL_SECONDS", "POLL_SECONDS"))
    max_download_retries: int = Field(2, ge=0, validation_alias=AliasChoices("APP_MAX_RETRIES", "MAX_RETRIES"))
    retry_delay_seconds: int = Field(60, ge=0, validation_alias=AliasChoices("APP_RETRY_DELAY_S", "RETRY_DELAY_S"))
    media_status_max_checks: int = Field(40, ge=1, validation_alias="APP_MEDIA_STATUS_MAX_CHECKS")
    media_status_max_delay: float = Field(10.0, gt=0, validation_alias="APP_MEDIA_STATUS_MAX_DELAY")

    # Filesystem layout
    state_path: Path = Field(
        default=Path("data/last.txt"),
        validation_alias=AliasChoices("APP_STATE_FILE", "STATE_FILE"),
    )
    heartbeat_path: Path = Field(
        default=Path("data/heartbeat"),
        validation_alias=AliasChoices("APP_HEARTBEAT_FILE", "HEARTBEAT_FILE"),
    )
    work_dir: Path = Field(default=Path("data/work"), validation_alias="APP_WORK_DIR")
    log_path: Path = Field(
        default=Path("logs/clipwire.log"),
        validation_alias=AliasChoices("APP_LOG_PATH", "LOG_PATH"),
    )
    cookies_file: Path | None = Field(default=None, validation_alias=AliasChoices("APP_COOKIES_FILE", "COOKIES_FILE"))
    download_user_agent: str = Field(DEFAULT_DOWNLOAD_USER_AGENT, validation_alias="APP_DOWNLOAD_USER_AGENT")

    # Publishing policy
    expected_username: str | None = Field(
        default=None,
        validation_alias=AliasChoices("APP_EXPECTED_USERNAME", "X_EXPECTED_USERNAME"),
    )
    dry_run: bool = Field(False, validation_alias=AliasChoices("APP_DRY_RUN", "DRY_RUN"))
    skip_identity_check: bool = Field(
        False, validation_alias=AliasChoices("APP_SKIP_IDENTITY_CHECK", "SKIP_IDENTITY_CHECK")
    )
    allow_link_fallback: bool = Field(
        False, validation_alias=AliasChoices("APP_ALLOW_LINK_FALLBACK", "ALLOW_LINK_FALLBACK")
    )

    # Credentials
    x_app_key: SecretStr | None = Field(default=None, validation_alias="X_APP_KEY")
    x_app_secret: SecretStr | None = Field(default=None, validation_alias="X_APP_SECRET")
    x_access_token: SecretStr | None = Field(default=None, validation_alias="X_ACCESS_TOKEN")
    x_access_secret: SecretStr | None = Field(default=None, validation_alias="X_ACCESS_SECRET")

    @field_validator("state_path", "heartbeat_path", "work_dir", "log_path", "cookies_file", mode="after")
    @classmethod
    def _expand_path(cls, value: Path | None) -> Path | None:
        if value is None:
            return None
        expanded = value.expanduser()
        return expanded if expanded.is_absolute() else (Path.cwd() / expanded).resolve()

    @field_validator("feed_url", mode="after")
    @classmethod
    def _require_feed_url(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("feed_url must not be empty")
        return stripped

    @field_validator("expected_username", mode="before")
    @classmethod
    def _normalize_username(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = str(value).strip().lstrip("@").lower()
        return normalized or None

    def ensure_runtime_directories(self) -> None:
        """Create directories required for runtime operation."""
        _ensure_directories(
            (
                self.state_path.parent,
                self.heartbeat_path.parent,
                self.log_path.parent,
                self.work_dir,
            )
        )

    @property
    def has_x_credentials(self) -> bool:
        return all((self.x_app_key, self.x_app_secret, self.x_access_token, self.x_access_secret))

    @property
    def identity_check_enabled(self) -> bool:
        """Whether the publishing account must be confirmed before posting.

        A dry run without credentials never talks to X, so there is nothing
        to confirm.
        """
        if self.skip_identity_check:
            return False
        if self.dry_run and not self.has_x_credentials:
            LOGGER.warning("Dry run without X credentials; identity check disabled.")
            return False
        return True

    @property
    def usable_cookies_file(self) -> Path | None:
        """Return the cookies file only when it is actually present on disk."""
        if self.cookies_file is not None and self.cookies_file.is_file():
            return self.cookies_file
        return None


def _ensure_directories(paths: Iterable[Path]) -> None:
    for directory in paths:
        directory.mkdir(parents=True, exist_ok=True)


def load_config(env_path: Path | None = None) -> AppConfig:
    """Load configuration from .env/environment with validation."""
    load_kwargs: dict[str, str] = {}
    if env_path is not None:
        load_dotenv(env_path, override=False)
        load_kwargs["_env_file"] = str(env_path)
    else:
        load_dotenv(override=False)
    try:
        config = AppConfig(**load_kwargs)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

    config.ensure_runtime_directories()

    LOGGER.info(
        "AppConfig loaded",
        extra={
            "event": "config.loaded",
            "environment": config.environment,
            "paths": {
                "state": str(config.state_path),
                "log": str(config.log_path),
                "work": str(config.work_dir),
            },
        },
    )
    return config
