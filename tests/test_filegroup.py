import os
import threading
import time

import pytest

from chatlog.filegroup import EventOp, FileEvent, FileGroup


def _touch(path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x")
    return str(path)


def test_invalid_pattern_raises():
    with pytest.raises(ValueError):
        FileGroup("g", "/tmp", "([", [])


def test_root_dir_is_normalised(tmp_path):
    group = FileGroup("g", str(tmp_path) + os.sep + "sub" + os.sep + "..", r"\.db$", [])
    assert group.root_dir == str(tmp_path)
    assert group.pattern_str == r"\.db$"


def test_match_inside_root(tmp_path):
    group = FileGroup("g", str(tmp_path), r"\.db$", [])
    assert group.match(str(tmp_path / "a" / "msg.db"))
    assert not group.match(str(tmp_path / "a" / "msg.txt"))


def test_match_outside_root(tmp_path):
    group = FileGroup("g", str(tmp_path / "root"), r"\.db$", [])
    assert not group.match(str(tmp_path / "other" / "msg.db"))


def test_match_mixed_relative_and_absolute(tmp_path):
    group = FileGroup("g", str(tmp_path), r"\.db$", [])
    assert not group.match("msg.db")


def test_pattern_applies_to_base_name(tmp_path):
    group = FileGroup("g", str(tmp_path), r"^msg", [])
    assert group.match(str(tmp_path / "x" / "msg_0.db"))
    assert not group.match(str(tmp_path / "msg" / "other.db"))


def test_blacklist_on_relative_path(tmp_path):
    group = FileGroup("g", str(tmp_path), r"\.db$", ["cache"])
    assert not group.match(str(tmp_path / "cache" / "msg.db"))
    assert group.match(str(tmp_path / "data" / "msg.db"))


def test_list_files_in_lexical_order(tmp_path):
    first = _touch(tmp_path / "a.db")
    _touch(tmp_path / "b.txt")
    nested = _touch(tmp_path / "sub" / "c.db")
    group = FileGroup("g", str(tmp_path), r"\.db$", [])
    assert group.list_files() == [first, nested]


def test_list_files_missing_root(tmp_path):
    group = FileGroup("g", str(tmp_path / "missing"), r"\.db$", [])
    assert group.list_files() == []


def test_list_matching_directories(tmp_path):
    _touch(tmp_path / "a.db")
    _touch(tmp_path / "sub" / "c.db")
    _touch(tmp_path / "sub" / "d.db")
    _touch(tmp_path / "other" / "e.txt")
    group = FileGroup("g", str(tmp_path), r"\.db$", [])
    assert group.list_matching_directories() == {str(tmp_path), str(tmp_path / "sub")}


def test_add_and_remove_callback(tmp_path):
    group = FileGroup("g", str(tmp_path), r"\.db$", [])

    def callback(event):
        return None

    group.add_callback(callback)
    assert group.callbacks == (callback,)
    assert group.remove_callback(callback) is True
    assert group.remove_callback(callback) is False
    assert group.callbacks == ()


def test_handle_event_runs_callbacks(tmp_path):
    group = FileGroup("g", str(tmp_path), r"\.db$", [])
    received = []
    done = threading.Event()

    def callback(event):
        received.append(event)
        done.set()

    group.add_callback(callback)
    event = FileEvent(str(tmp_path / "msg.db"), EventOp.WRITE)
    group.handle_event(event)
    assert done.wait(5)
    assert received == [event]


def test_handle_event_ignores_other_files(tmp_path):
    group = FileGroup("g", str(tmp_path), r"\.db$", [])
    done = threading.Event()
    group.add_callback(lambda event: done.set())
    group.handle_event(FileEvent(str(tmp_path / "msg.txt"), EventOp.CREATE))
    assert not done.wait(0.3)


def test_callback_error_is_logged(tmp_path, caplog):
    group = FileGroup("g", str(tmp_path), r"\.db$", [])

    def failing(event):
        raise RuntimeError("boom")

    group.add_callback(failing)
    caplog.set_level("ERROR")
    group.handle_event(FileEvent(str(tmp_path / "msg.db"), EventOp.CREATE))
    deadline = time.monotonic() + 5
    while time.monotonic() < deadline and not caplog.records:
        time.sleep(0.02)
    assert any("Callback error" in record.getMessage() for record in caplog.records)


def test_combined_op_reaches_callback(tmp_path):
    group = FileGroup("g", str(tmp_path), r"\.db$", [])
    received = []
    done = threading.Event()

    def callback(event):
        received.append(event)
        done.set()

    group.add_callback(callback)
    event = FileEvent(str(tmp_path / "msg.db"), EventOp.CREATE | EventOp.WRITE)
    group.handle_event(event)
    assert done.wait(5)
    assert received == [event]
    op = received[0].op
    assert op == EventOp.CREATE | EventOp.WRITE
    assert EventOp.CREATE in op
    assert EventOp.WRITE in op
    assert EventOp.REMOVE not in op