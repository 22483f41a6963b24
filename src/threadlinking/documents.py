"""Locked read-modify-write of a single JSON document.

load_document() is the tolerant read: a missing file yields the default, a
corrupt one is moved to "<name>.backup" under the lock and also yields the
default.

update_document() and mutate_document() run the whole cycle (lock, tolerant
load, transform, atomic write, unlock) so concurrent callers against the same
path are applied in some serial order and none of their effects is lost.

mutate_document() takes a decision function returning one of:

    Updated(document, value)   write document, hand value back to the caller
    Unchanged(value)           no write
    Rejected(error)            no write; the caller reports error

Transforms must be pure: no I/O, no clock reads. Everything they need is
computed before the lock is taken.
"""
from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Union

from threadlinking.config import get_lock_timeout
from threadlinking.errors import LockTimeout, StorageCorruption, ThreadlinkingError
from threadlinking.locks import atomic_write, locked

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Updated:
    document: Any
    value: Any = None


@dataclass(frozen=True)
class Unchanged:
    value: Any = None


@dataclass(frozen=True)
class Rejected:
    error: ThreadlinkingError


Outcome = Union[Updated, Unchanged, Rejected]


def backup_path_for(path: Path) -> Path:
    return path.with_name(path.name + ".backup")


_MISSING = object()


def _read(path: Path, validate: Callable[[Any], bool] | None) -> tuple[Any, str | None]:
    """Return (data, problem). data is _MISSING for an absent file; problem is set when corrupt."""
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return _MISSING, None
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        return _MISSING, str(e)
    if validate is not None and not validate(data):
        return _MISSING, f"unexpected top-level {type(data).__name__}"
    return data, None


def _recover_corrupt(path: Path, reason: str) -> None:
    backup = backup_path_for(path)
    logger.warning("Corrupted document %s (%s); backing up to %s", path, reason, backup)
    try:
        os.replace(path, backup)
    except OSError as e:
        raise StorageCorruption(f"Could not back up corrupt document {path}: {e}") from e


def _load_locked(path: Path, default: Any, validate: Callable[[Any], bool] | None) -> Any:
    """Tolerant read for a caller already holding the lock on *path*."""
    data, problem = _read(path, validate)
    if problem is not None:
        _recover_corrupt(path, problem)
    if data is _MISSING:
        return copy.deepcopy(default)
    return data


def load_document(
    path: Path,
    default: Any,
    validate: Callable[[Any], bool] | None = None,
) -> Any:
    """Read and parse *path* without the lock, never failing on missing or corrupt input.

    *validate* checks the top-level shape; a document that parses but fails
    it is handled like malformed JSON. A corrupt file is only moved aside
    under the lock and after a second read, so a write committed since the
    first read is returned instead of being backed up.
    """
    data, problem = _read(path, validate)
    if problem is None:
        return copy.deepcopy(default) if data is _MISSING else data
    try:
        with locked(path, timeout=get_lock_timeout()):
            return _load_locked(path, default, validate)
    except LockTimeout:
        logger.warning("Corrupted document %s left in place; a writer holds the lock", path)
        return copy.deepcopy(default)


def dump_document(document: Any) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


def mutate_document(
    path: Path,
    default: Any,
    decide: Callable[[Any], Outcome],
    validate: Callable[[Any], bool] | None = None,
) -> Outcome:
    """Apply *decide* to the current document under an exclusive lock.

    Raises LockTimeout if the lock cannot be taken. Exceptions from *decide*
    propagate once the lock is released, and nothing is written.
    """
    with locked(path, timeout=get_lock_timeout()):
        current = _load_locked(path, default, validate)
        outcome = decide(current)
        if isinstance(outcome, Updated):
            atomic_write(path, dump_document(outcome.document))
        elif not isinstance(outcome, (Unchanged, Rejected)):
            raise TypeError(f"mutation must return Updated, Unchanged or Rejected, got {outcome!r}")
    return outcome


def update_document(
    path: Path,
    default: Any,
    transform: Callable[[Any], Any],
    validate: Callable[[Any], bool] | None = None,
) -> Any:
    """Replace the document with transform(current) under an exclusive lock.

    Returns the document as written.
    """
    outcome = mutate_document(path, default, lambda current: Updated(transform(current)), validate)
    return outcome.document
