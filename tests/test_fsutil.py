from __future__ import annotations

from pathlib import Path

import pytest

from safe_apply import fsutil
from safe_apply.errors import IoFailure
from safe_apply.fsutil import read_text_if_exists, remove_file, write_atomic


def test_write_atomic_creates_parents_and_terminates_line(tmp_path: Path):
    dest = tmp_path / "a" / "b" / "c.txt"
    assert write_atomic(dest, "hello") == 6
    assert dest.read_bytes() == b"hello\n"
    assert sorted(p.name for p in dest.parent.iterdir()) == ["c.txt"]


def test_crash_before_rename_leaves_destination_intact(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    dest = tmp_path / "c.txt"
    dest.write_text("old content\n", encoding="utf-8")

    def crash(src, dst):
        raise OSError("simulated crash before rename")

    monkeypatch.setattr(fsutil.os, "replace", crash)

    with pytest.raises(IoFailure):
        write_atomic(dest, "new content that is much longer than before")

    assert dest.read_text(encoding="utf-8") == "old content\n"
    assert [p.name for p in tmp_path.iterdir()] == ["c.txt"]


def test_write_into_directory_target_fails_cleanly(tmp_path: Path):
    (tmp_path / "dir").mkdir()
    with pytest.raises(IoFailure):
        write_atomic(tmp_path / "dir", "x")
    assert [p.name for p in tmp_path.iterdir()] == ["dir"]


def test_read_text_if_exists(tmp_path: Path):
    assert read_text_if_exists(tmp_path / "missing") is None
    (tmp_path / "f").write_text("x", encoding="utf-8")
    assert read_text_if_exists(tmp_path / "f") == "x"
    with pytest.raises(IoFailure):
        read_text_if_exists(tmp_path)


def test_remove_missing_file_raises(tmp_path: Path):
    with pytest.raises(IoFailure):
        remove_file(tmp_path / "missing")
