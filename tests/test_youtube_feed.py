from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from clipwire.errors import FeedFetchFailed, RateLimited
from clipwire.integrations.youtube_feed import (
    YouTubeFeedClient,
    _retry_after_epoch,
    parse_feed_document,
)

FEED_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns:yt="http://www.youtube.com/xml/schemas/2015"
      xmlns:media="http://search.yahoo.com/mrss/"
      xmlns="http://www.w3.org/2005/Atom">
  <title>Channel</title>
  <entry>
    <id>yt:video:vid222</id>
    <yt:videoId>vid222</yt:videoId>
    <title>Second upload</title>
    <link rel="alternate" href="https://www.youtube.com/watch?v=vid222"/>
    <published>2024-05-02T10:00:00+00:00</published>
  </entry>
  <entry>
    <id>yt:video:vid111</id>
    <yt:videoId>vid111</yt:videoId>
    <title>First upload</title>
    <link rel="alternate" href="https://www.youtube.com/watch?v=vid111"/>
    <published>2024-05-01T10:00:00+00:00</published>
  </entry>
  <entry>
    <id>yt:video:nodate</id>
    <yt:videoId>nodate</yt:videoId>
    <title>No date</title>
  </entry>
</feed>
"""


def _response(status_code=200, content=FEED_XML, headers=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.content = content
    resp.headers = headers or {}
    return resp


def test_parse_feed_document_extracts_items_in_document_order():
    items = parse_feed_document(FEED_XML)
    assert [item.id for item in items] == ["vid222", "vid111"]
    assert items[0].title == "Second upload"
    assert items[0].published_at == datetime(2024, 5, 2, 10, 0, tzinfo=timezone.utc)


def test_parse_feed_document_falls_back_to_watch_link():
    xml = b"""<?xml version="1.0"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <entry>
    <title>Linked</title>
    <link rel="alternate" href="https://www.youtube.com/watch?v=abc123&amp;t=4"/>
    <updated>2024-05-03T08:00:00Z</updated>
  </entry>
</feed>
"""
    items = parse_feed_document(xml)
    assert [item.id for item in items] == ["abc123"]


def test_parse_feed_document_tolerates_garbage():
    assert parse_feed_document(b"not xml at all") == []


def test_fetch_sends_user_agent_and_timeout():
    client = YouTubeFeedClient("https://feeds.example/videos.xml", user_agent="tester/2", timeout=7)
    with patch("clipwire.integrations.youtube_feed.requests.get", return_value=_response()) as mock_get:
        items = client.fetch()

    assert len(items) == 2
    args, kwargs = mock_get.call_args
    assert args[0] == "https://feeds.example/videos.xml"
    assert kwargs["headers"] == {"User-Agent": "tester/2"}
    assert kwargs["timeout"] == 7


def test_fetch_maps_429_to_rate_limited_with_reset():
    client = YouTubeFeedClient("https://feeds.example/videos.xml", clock=lambda: 1000.0)
    resp = _response(status_code=429, headers={"Retry-After": "120"})
    with patch("clipwire.integrations.youtube_feed.requests.get", return_value=resp):
        with pytest.raises(RateLimited) as excinfo:
            client.fetch()
    assert excinfo.value.reset_at == 1120.0
    assert excinfo.value.source == "feed"


def test_fetch_maps_http_errors():
    client = YouTubeFeedClient("https://feeds.example/videos.xml")
    with patch("clipwire.integrations.youtube_feed.requests.get", return_value=_response(status_code=503)):
        with pytest.raises(FeedFetchFailed, match="HTTP 503"):
            client.fetch()


def test_fetch_maps_transport_errors():
    client = YouTubeFeedClient("https://feeds.example/videos.xml")
    with patch(
        "clipwire.integrations.youtube_feed.requests.get",
        side_effect=requests.exceptions.ConnectionError("dns"),
    ):
        with pytest.raises(FeedFetchFailed):
            client.fetch()


def test_retry_after_epoch_variants():
    assert _retry_after_epoch(None, 10.0) is None
    assert _retry_after_epoch("30", 10.0) == 40.0
    assert _retry_after_epoch("Wed, 21 Oct 2015 07:28:00 GMT", 0.0) == 1445412480.0
    assert _retry_after_epoch("soon", 10.0) is None
