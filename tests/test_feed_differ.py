import pytest

from clipwire.errors import FeedEmpty
from clipwire.services.feed import MAX_UNSEEN_PER_CYCLE, unseen

from conftest import make_feed, make_item


def ids(items):
    return [item.id for item in items]


def test_items_newer_than_cursor_are_unseen():
    feed = make_feed("D", "C", "B", "A")
    assert ids(unseen("B", feed)) == ["D", "C"]


def test_cursor_at_newest_item_means_nothing_new():
    feed = make_feed("D", "C", "B", "A")
    assert unseen("D", feed) == []


def test_missing_cursor_returns_single_newest():
    feed = make_feed("D", "C", "B", "A")
    assert ids(unseen(None, feed)) == ["D"]


def test_cursor_outside_feed_window_returns_single_newest():
    feed = make_feed("D", "C", "B", "A")
    assert ids(unseen("ZZ", feed)) == ["D"]


def test_feed_order_is_ignored_in_favour_of_publish_time():
    shuffled = [make_item("B", 2), make_item("D", 4), make_item("A", 1), make_item("C", 3)]
    assert ids(unseen("A", shuffled)) == ["D", "C", "B"]


def test_batch_is_capped():
    feed = make_feed("H", "G", "F", "E", "D", "C", "B", "A")
    batch = unseen("A", feed)
    assert len(batch) == MAX_UNSEEN_PER_CYCLE
    assert ids(batch) == ["H", "G", "F", "E", "D"]


def test_equal_timestamps_keep_feed_order():
    feed = [make_item("X", 5), make_item("Y", 5), make_item("Z", 1)]
    assert ids(unseen("Z", feed)) == ["X", "Y"]
    assert ids(unseen(None, feed)) == ["X"]


def test_empty_feed_raises():
    with pytest.raises(FeedEmpty):
        unseen("A", [])
