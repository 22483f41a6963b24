"""Per-path locks and atomic writes for the shared JSON documents.

Two layers guard every read-modify-write:

- get_path_lock(): a threading.Lock per resolved path, so threads of one
  process (FastMCP dispatches sync tools to a thread pool) queue in memory.
- FileLock: fcntl.flock on a sibling "<name>.lock" file, which serialises
  separate processes (CLI calls, editor hooks, the MCP server). POSIX only.
"""
from __future__ import annotations

import fcntl
import logging
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from threadlinking.errors import LockTimeout

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_path_locks: dict[Path, threading.Lock] = {}

_INITIAL_BACKOFF = 0.01
_MAX_BACKOFF = 0.25

_DIR_MODE = 0o700
_FILE_MODE = 0o600


def get_path_lock(path: Path) -> threading.Lock:
    """Return the in-process lock for *path*, creating it if needed.

    Uses path.resolve() so that relative and absolute references to the
    same file share a single lock.
    """
    resolved = path.resolve()
    with _registry_lock:
        if resolved not in _path_locks:
            _path_locks[resolved] = threading.Lock()
        return _path_locks[resolved]


def ensure_private_dir(directory: Path) -> None:
    """Create *directory* (and parents) and restrict it to the owner."""
    if not directory.exists():
        directory.mkdir(parents=True, exist_ok=True, mode=_DIR_MODE)
        os.chmod(directory, _DIR_MODE)


def atomic_write(path: Path, content: str) -> None:
    """Write *content* to *path* atomically via a uniquely named sibling temp file.

    os.replace() is atomic when src and dst are on the same filesystem, which
    is always true for a sibling. Concurrent writers never share a temp name.
    """
    ensure_private_dir(path.parent)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as f:
        tmp = Path(f.name)
        try:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        except BaseException:
            f.close()
            tmp.unlink(missing_ok=True)
            raise
    try:
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    os.chmod(path, _FILE_MODE)


class FileLock:
    """Cross-process exclusive lock: fcntl.flock on a sibling lock file.

    Acquisition retries a non-blocking flock with exponential backoff until
    *timeout* seconds have passed, then raises LockTimeout. The kernel drops
    the lock when its holder exits or is killed, so a crashed process never
    leaves a lock behind. The lock file itself stays on disk: unlinking it
    would let a waiter lock the old inode while a newcomer locks a new one.
    """

    def __init__(self, path: Path, timeout: float) -> None:
        self.path = path
        self.timeout = timeout
        self._fd: int | None = None

    def _try_lock(self, fd: int) -> bool:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    def acquire(self) -> None:
        ensure_private_dir(self.path.parent)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, _FILE_MODE)
        deadline = time.monotonic() + self.timeout
        delay = _INITIAL_BACKOFF
        try:
            while not self._try_lock(fd):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise LockTimeout(
                        f"Timed out after {self.timeout:g}s waiting for {self.path.name}; "
                        "another threadlinking process is writing"
                    )
                logger.debug("Waiting for %s (%.3fs)", self.path.name, delay)
                time.sleep(min(delay, remaining))
                delay = min(delay * 2, _MAX_BACKOFF)
        except BaseException:
            os.close(fd)
            raise
        # holder pid, for whoever is debugging a LockTimeout
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd

    @property
    def held(self) -> bool:
        return self._fd is not None

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()


def lock_path_for(path: Path) -> Path:
    return path.with_name(path.name + ".lock")


@contextmanager
def locked(path: Path, timeout: float) -> Iterator[None]:
    """Hold both the in-process and the cross-process lock for *path*.

    *timeout* bounds the total wait across both locks.
    """
    deadline = time.monotonic() + timeout
    thread_lock = get_path_lock(path)
    if not thread_lock.acquire(timeout=timeout):
        raise LockTimeout(f"Timed out after {timeout:g}s waiting for {path.name}")
    try:
        remaining = max(deadline - time.monotonic(), 0.0)
        with FileLock(lock_path_for(path), timeout=remaining):
            yield
    finally:
        thread_lock.release()
