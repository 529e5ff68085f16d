import json
import os
import time

import pytest

from chatlog.filecopy import MAPPING_FILE_NAME, TempCopyManager, _fnv1a_hex


def wait_until(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def original(tmp_path):
    src_dir = tmp_path / "src"
    src_dir.mkdir()
    path = src_dir / "data.txt"
    path.write_bytes(b"hello world")
    return path


@pytest.fixture
def temp_dir(tmp_path):
    return str(tmp_path / "copies")


def test_copy_has_same_content_and_naming(original, temp_dir):
    with TempCopyManager(temp_dir, 0) as manager:
        copy = manager.get_temp_copy(str(original))
        assert os.path.dirname(copy) == temp_dir
        with open(copy, "rb") as handle:
            assert handle.read() == b"hello world"
        name = os.path.basename(copy)
        parts = name.split("_")
        assert parts[0] == "data"
        assert parts[1] == _fnv1a_hex(str(original))[:8]
        assert name.endswith(".txt")
        assert parts[2][: -len(".txt")].isdigit()


def test_unchanged_file_reuses_copy(original, temp_dir):
    with TempCopyManager(temp_dir, 0) as manager:
        first = manager.get_temp_copy(str(original))
        second = manager.get_temp_copy(str(original))
        assert first == second


def test_changed_file_gets_new_copy_and_old_is_deleted(original, temp_dir):
    with TempCopyManager(temp_dir, 0) as manager:
        first = manager.get_temp_copy(str(original))
        original.write_bytes(b"a longer body of text")
        second = manager.get_temp_copy(str(original))
        assert second != first
        with open(second, "rb") as handle:
            assert handle.read() == b"a longer body of text"
        assert wait_until(lambda: not os.path.exists(first))
        assert os.path.exists(second)


def test_missing_original_raises(temp_dir, tmp_path):
    with TempCopyManager(temp_dir, 0) as manager:
        with pytest.raises(FileNotFoundError):
            manager.get_temp_copy(str(tmp_path / "absent.db"))


def test_mappings_survive_restart(original, temp_dir):
    with TempCopyManager(temp_dir, 0) as manager:
        first = manager.get_temp_copy(str(original))
    with TempCopyManager(temp_dir, 0) as manager:
        assert os.path.exists(first)
        assert manager.get_temp_copy(str(original)) == first


def test_mapping_file_contents(original, temp_dir):
    with TempCopyManager(temp_dir, 0) as manager:
        copy = manager.get_temp_copy(str(original))
    with open(os.path.join(temp_dir, MAPPING_FILE_NAME), encoding="utf-8") as handle:
        entries = json.load(handle)
    assert len(entries) == 1
    assert entries[0]["original_path"] == str(original)
    assert entries[0]["temp_path"] == copy
    assert entries[0]["metadata"]["size"] == len(b"hello world")
    assert entries[0]["metadata"]["mod_time"] == os.stat(original).st_mtime_ns


def test_startup_keeps_newest_of_each_group(temp_dir):
    os.makedirs(temp_dir)
    names = ["junk", "a_hash_100.txt", "a_hash_200.txt", "b_hash_xyz.txt"]
    for name in names:
        with open(os.path.join(temp_dir, name), "wb") as handle:
            handle.write(b"x")
    with TempCopyManager(temp_dir, 0):
        remaining = sorted(os.listdir(temp_dir))
    assert "a_hash_200.txt" in remaining
    assert "a_hash_100.txt" not in remaining
    assert "junk" not in remaining
    assert "b_hash_xyz.txt" not in remaining


def test_cleanup_removes_stray_files_but_keeps_active(original, temp_dir):
    with TempCopyManager(temp_dir, 0) as manager:
        copy = manager.get_temp_copy(str(original))
        stray = os.path.join(temp_dir, "stray_x_1")
        with open(stray, "wb") as handle:
            handle.write(b"x")
        manager.cleanup_temp_files()
        assert wait_until(lambda: not os.path.exists(stray))
        assert manager.get_temp_copy(str(original)) == copy


def test_name_without_base_uses_default(tmp_path, temp_dir):
    hidden = tmp_path / ".hidden"
    hidden.write_bytes(b"dot")
    with TempCopyManager(temp_dir, 0) as manager:
        copy = manager.get_temp_copy(str(hidden))
    name = os.path.basename(copy)
    assert name.startswith("file_")
    assert name.endswith(".hidden")


def test_fnv1a_hash_value():
    assert _fnv1a_hex("a") == "e40c292c"
    assert _fnv1a_hex("a") == _fnv1a_hex("a")
    assert _fnv1a_hex("a") != _fnv1a_hex("b")


def test_close_is_idempotent(original, temp_dir):
    manager = TempCopyManager(temp_dir, 0)
    copy = manager.get_temp_copy(str(original))
    manager.close()
    manager.close()
    with TempCopyManager(temp_dir, 0) as reopened:
        assert reopened.get_temp_copy(str(original)) == copy