from unittest.mock import patch

import pytest

from clipwire import cli

from conftest import make_feed


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    for name in ("APP_FEED_URL", "APP_STATE_FILE", "X_APP_KEY", "X_APP_SECRET", "X_ACCESS_TOKEN", "X_ACCESS_SECRET"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("FEED_URL", "https://feeds.example/videos.xml")
    monkeypatch.setenv("STATE_FILE", str(tmp_path / "last.txt"))
    return tmp_path


def test_backfill_overwrites_cursor(cli_env):
    (cli_env / "last.txt").write_text("old", encoding="utf-8")
    assert cli.main(["backfill", "vid9"]) == 0
    assert (cli_env / "last.txt").read_text(encoding="utf-8") == "vid9"


def test_cursor_command_reads_state(cli_env):
    assert cli.main(["cursor"]) == 0


def test_check_creds_without_credentials_fails(cli_env):
    assert cli.main(["check-creds"]) == 1


def test_unseen_uses_given_cursor(cli_env):
    with patch.object(cli, "YouTubeFeedClient") as mock_cls:
        mock_cls.return_value.fetch.return_value = make_feed("vidC", "vidB", "vidA")
        assert cli.main(["unseen", "--cursor", "vidA"]) == 0
    mock_cls.return_value.fetch.assert_called_once_with()


def test_feed_errors_exit_nonzero(cli_env):
    from clipwire.errors import FeedFetchFailed

    with patch.object(cli, "YouTubeFeedClient") as mock_cls:
        mock_cls.return_value.fetch.side_effect = FeedFetchFailed("HTTP 500")
        assert cli.main(["feed"]) == 1


def test_missing_feed_url_exits_nonzero(cli_env, monkeypatch):
    monkeypatch.delenv("FEED_URL")
    assert cli.main(["cursor"]) == 1
