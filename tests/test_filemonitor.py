import os
import queue
import time

import pytest

from chatlog.filegroup import FileGroup
from chatlog.filemonitor import FileMonitor


@pytest.fixture
def root(tmp_path):
    path = tmp_path / "root"
    path.mkdir()
    return os.path.realpath(str(path))


@pytest.fixture
def monitor():
    mon = FileMonitor()
    yield mon
    if mon.is_running():
        mon.stop()


def _wait_for_event(received, name, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            event = received.get(timeout=0.1)
        except queue.Empty:
            continue
        if event.name == name:
            return event
    return None


def test_create_group_registers_it(monitor, root):
    group = monitor.create_group("g", root, r"\.db$", [])
    assert monitor.get_group("g") is group
    assert monitor.get_groups() == [group]


def test_get_group_missing(monitor):
    assert monitor.get_group("nope") is None


def test_duplicate_group_rejected(monitor, root):
    monitor.create_group("g", root, r"\.db$", [])
    with pytest.raises(ValueError):
        monitor.add_group(FileGroup("g", root, r"\.txt$", []))


def test_add_none_group_rejected(monitor):
    with pytest.raises(ValueError):
        monitor.add_group(None)


def test_create_group_invalid_pattern(monitor, root):
    with pytest.raises(ValueError):
        monitor.create_group("g", root, "([", [])
    assert monitor.get_groups() == []


def test_remove_group(monitor, root):
    monitor.create_group("g", root, r"\.db$", [])
    monitor.remove_group("g")
    assert monitor.get_group("g") is None
    with pytest.raises(KeyError):
        monitor.remove_group("g")


def test_start_and_stop(monitor, root):
    monitor.create_group("g", root, r"\.db$", [])
    assert monitor.is_running() is False
    monitor.start()
    assert monitor.is_running() is True
    with pytest.raises(RuntimeError):
        monitor.start()
    monitor.stop()
    assert monitor.is_running() is False


def test_stop_when_not_running(monitor):
    with pytest.raises(RuntimeError):
        monitor.stop()


def test_refresh_when_not_running(monitor):
    with pytest.raises(RuntimeError):
        monitor.refresh_watches()


def test_start_fails_for_missing_root(monitor, tmp_path):
    monitor.create_group("g", str(tmp_path / "missing"), r"\.db$", [])
    with pytest.raises(OSError):
        monitor.start()
    assert monitor.is_running() is False


def test_blacklisted_root_is_skipped(monitor, tmp_path):
    monitor.set_blacklist(["skipme"])
    monitor.create_group("g", str(tmp_path / "skipme"), r"\.db$", [])
    monitor.start()
    assert monitor.is_running() is True


def test_add_group_while_running_fails_for_missing_root(monitor, root, tmp_path):
    monitor.start()
    with pytest.raises(OSError):
        monitor.create_group("g", str(tmp_path / "missing"), r"\.db$", [])
    assert monitor.get_group("g") is None


def test_events_reach_group_callbacks(monitor, root):
    group = monitor.create_group("g", root, r"\.db$", [])
    received = queue.Queue()
    group.add_callback(received.put)
    monitor.start()
    target = os.path.join(root, "msg.db")
    with open(target, "wb") as handle:
        handle.write(b"data")
    event = _wait_for_event(received, target)
    assert event is not None
    assert event.name == target


def test_events_after_refresh(monitor, root):
    group = monitor.create_group("g", root, r"\.db$", [])
    received = queue.Queue()
    group.add_callback(received.put)
    monitor.start()
    monitor.refresh_watches()
    target = os.path.join(root, "after.db")
    with open(target, "wb") as handle:
        handle.write(b"data")
    event = _wait_for_event(received, target)
    assert event is not None
    assert event.name == target