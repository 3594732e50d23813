import pytest

from clipwire.state import CursorStore, touch_heartbeat


def test_read_returns_none_when_missing(tmp_path):
    assert CursorStore(tmp_path / "last.txt").read() is None


def test_write_then_read(tmp_path):
    store = CursorStore(tmp_path / "nested" / "last.txt")
    store.write("abc123")
    assert store.read() == "abc123"
    assert (tmp_path / "nested" / "last.txt").read_text(encoding="utf-8") == "abc123"


def test_read_strips_whitespace_and_treats_blank_as_none(tmp_path):
    path = tmp_path / "last.txt"
    path.write_text("  vid9 \n", encoding="utf-8")
    assert CursorStore(path).read() == "vid9"
    path.write_text("\n", encoding="utf-8")
    assert CursorStore(path).read() is None


def test_write_replaces_previous_value_without_leftovers(tmp_path):
    store = CursorStore(tmp_path / "last.txt")
    store.write("first")
    store.write("second")
    assert store.read() == "second"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["last.txt"]


def test_write_rejects_empty_value(tmp_path):
    store = CursorStore(tmp_path / "last.txt")
    with pytest.raises(ValueError):
        store.write("   ")
    assert store.read() is None


def test_failed_replace_keeps_old_value(tmp_path, monkeypatch):
    store = CursorStore(tmp_path / "last.txt")
    store.write("kept")

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("clipwire.state.os.replace", broken_replace)
    with pytest.raises(OSError):
        store.write("lost")
    assert store.read() == "kept"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["last.txt"]


def test_touch_heartbeat_writes_epoch(tmp_path):
    path = tmp_path / "hb" / "heartbeat"
    touch_heartbeat(path, clock=lambda: 1234.9)
    assert path.read_text(encoding="utf-8") == "1234"
