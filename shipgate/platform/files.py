"""Filesystem helpers."""

from __future__ import annotations

import os
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

__all__ = ["LockTimeoutError", "append_line", "atomic_write_text", "exclusive_lock"]


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write text to path atomically using temp file + replace."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def append_line(path: Path, line: str, *, encoding: str = "utf-8") -> None:
    """Append one newline-terminated record and fsync it.

    The record is written with a single ``write`` call so concurrent appenders
    on POSIX do not interleave partial lines.
    """
    if "\n" in line:
        raise ValueError("record must not contain a newline")
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding=encoding, newline="") as handle:
        handle.write(line + "\n")
        handle.flush()
        os.fsync(handle.fileno())


class LockTimeoutError(OSError):
    """``exclusive_lock`` gave up waiting for another holder."""


@contextmanager
def exclusive_lock(
    path: Path,
    *,
    timeout: float = 10.0,
    poll_interval: float = 0.02,
    stale_after: float = 600.0,
) -> Iterator[None]:
    """Hold ``path`` as a lock file for the duration of the block.

    The file is created with ``O_CREAT | O_EXCL`` and holds the owner's pid.
    A lock file older than ``stale_after`` seconds was left behind by a dead
    process and is taken over.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    deadline = time.monotonic() + timeout
    while True:
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            break
        except FileExistsError:
            try:
                age = time.time() - path.stat().st_mtime
            except FileNotFoundError:
                continue
            if age > stale_after:
                path.unlink(missing_ok=True)
                continue
            if time.monotonic() >= deadline:
                raise LockTimeoutError(f"lock is held by another process: {path}") from None
            time.sleep(poll_interval)

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(f"{os.getpid()}\n")
        yield
    finally:
        path.unlink(missing_ok=True)
