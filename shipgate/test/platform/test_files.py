from __future__ import annotations

import os
import time
from pathlib import Path

import pytest

from shipgate.platform.files import (
    LockTimeoutError,
    append_line,
    atomic_write_text,
    exclusive_lock,
)


def test_atomic_write_text_creates_parent_dirs(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "run.json"
    atomic_write_text(path, '{"ok":true}\n')

    assert path.read_text(encoding="utf-8") == '{"ok":true}\n'


def test_atomic_write_text_replaces_existing_content(tmp_path: Path) -> None:
    path = tmp_path / "run.json"
    path.write_text("old", encoding="utf-8")

    atomic_write_text(path, "new", encoding="utf-8")

    assert path.read_text(encoding="utf-8") == "new"


def test_atomic_write_text_cleans_temp_file_on_replace_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    path = tmp_path / "run.json"

    def fail_replace(_src: Path, _dst: Path) -> None:
        raise OSError("replace failed")

    monkeypatch.setattr(os, "replace", fail_replace)

    with pytest.raises(OSError, match="replace failed"):
        atomic_write_text(path, "payload", encoding="utf-8")

    assert list(path.parent.glob(f".{path.name}.*.tmp")) == []
    assert not path.exists()


def test_append_line_appends_records(tmp_path: Path) -> None:
    path = tmp_path / "memory" / "outcomes.jsonl"
    append_line(path, '{"n":1}')
    append_line(path, '{"n":2}')

    assert path.read_text(encoding="utf-8") == '{"n":1}\n{"n":2}\n'


def test_append_line_rejects_embedded_newline(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        append_line(tmp_path / "x.jsonl", "a\nb")


def test_exclusive_lock_removes_file_on_exit(tmp_path: Path) -> None:
    lock = tmp_path / "runs" / "lock"
    with exclusive_lock(lock):
        assert lock.read_text(encoding="utf-8") == f"{os.getpid()}\n"
    assert not lock.exists()


def test_exclusive_lock_released_when_block_raises(tmp_path: Path) -> None:
    lock = tmp_path / "lock"
    with pytest.raises(RuntimeError):
        with exclusive_lock(lock):
            raise RuntimeError("boom")
    assert not lock.exists()


def test_exclusive_lock_times_out_while_held(tmp_path: Path) -> None:
    lock = tmp_path / "lock"
    with exclusive_lock(lock):
        with pytest.raises(LockTimeoutError):
            with exclusive_lock(lock, timeout=0.05):
                pass
        assert lock.exists()


def test_exclusive_lock_takes_over_stale_file(tmp_path: Path) -> None:
    lock = tmp_path / "lock"
    lock.write_text("12345\n", encoding="utf-8")
    old = time.time() - 3600
    os.utime(lock, (old, old))

    with exclusive_lock(lock, timeout=0.05, stale_after=60):
        assert lock.read_text(encoding="utf-8") == f"{os.getpid()}\n"
    assert not lock.exists()
