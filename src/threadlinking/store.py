"""Thread Store and Pending Store over the locked document primitive.

Read-only operations use load(): a plain tolerant read without the lock, which
may be one write behind. Every mutating operation is a single update() or
mutate() call holding its whole read-check-write logic.

The two stores are never locked together. track checks the Thread Store with
load() and then updates the Pending Store, so a file can be recorded as pending
just after another process linked it. Listing drops pending entries that are
linked to any thread, which makes that window self-correcting.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

from threadlinking.config import PENDING_EXPIRY_DAYS, get_index_path, get_pending_path
from threadlinking.documents import (
    Outcome,
    Unchanged,
    Updated,
    load_document,
    mutate_document,
)
from threadlinking.models import (
    PendingFile,
    ThreadIndex,
    decode_index,
    encode_index,
    parse_timestamp,
    utc_now,
)


def _is_object(data: Any) -> bool:
    return isinstance(data, dict)


def _is_pending_state(data: Any) -> bool:
    return isinstance(data, dict) and isinstance(data.get("tracked", []), list)


def _translate(decide: Callable[[Any], Outcome], decode, encode) -> Callable[[Any], Outcome]:
    """Adapt a decision over domain objects to one over raw JSON."""
    def raw_decide(raw: Any) -> Outcome:
        outcome = decide(decode(raw))
        if isinstance(outcome, Updated):
            return Updated(encode(outcome.document), outcome)
        return outcome

    return raw_decide


def _unwrap(outcome: Outcome) -> Outcome:
    # Updated.value carries the domain-level outcome produced by raw_decide
    if isinstance(outcome, Updated):
        return outcome.value
    return outcome


class ThreadStore:
    """The thread index document: tag -> Thread."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> ThreadIndex:
        return decode_index(load_document(self.path, {}, _is_object))

    def mutate(self, decide: Callable[[ThreadIndex], Outcome]) -> Outcome:
        raw_decide = _translate(decide, decode_index, encode_index)
        return _unwrap(mutate_document(self.path, {}, raw_decide, _is_object))

    def update(self, transform: Callable[[ThreadIndex], ThreadIndex]) -> ThreadIndex:
        return self.mutate(lambda index: Updated(transform(index))).document


class PendingStore:
    """The pending-files document: {"tracked": [PendingFile, ...]}.

    Entries whose first_seen is older than the expiry window are dropped on
    every load and before every locked update.
    """

    def __init__(self, path: Path, expiry_days: int = PENDING_EXPIRY_DAYS) -> None:
        self.path = path
        self.expiry = timedelta(days=expiry_days)

    def _fresh(self, entry: PendingFile, now: datetime) -> bool:
        first_seen = parse_timestamp(entry.first_seen)
        if first_seen is None:
            return False
        return now - first_seen < self.expiry

    def _decode(self, raw: dict[str, Any]) -> list[PendingFile]:
        now = utc_now()
        entries = [PendingFile.from_dict(e) for e in raw.get("tracked", []) if isinstance(e, dict)]
        return [e for e in entries if e.path and self._fresh(e, now)]

    @staticmethod
    def _encode(entries: list[PendingFile]) -> dict[str, Any]:
        return {"tracked": [e.to_dict() for e in entries]}

    def load(self) -> list[PendingFile]:
        return self._decode(load_document(self.path, {"tracked": []}, _is_pending_state))

    def mutate(self, decide: Callable[[list[PendingFile]], Outcome]) -> Outcome:
        raw_decide = _translate(decide, self._decode, self._encode)
        return _unwrap(mutate_document(self.path, {"tracked": []}, raw_decide, _is_pending_state))

    def update(self, transform: Callable[[list[PendingFile]], list[PendingFile]]) -> list[PendingFile]:
        return self.mutate(lambda entries: Updated(transform(entries))).document

    def remove(self, path: str) -> bool:
        """Drop *path* from the pending list. Returns True if it was present."""
        def decide(entries: list[PendingFile]) -> Outcome:
            kept = [e for e in entries if e.path != path]
            if len(kept) == len(entries):
                return Unchanged(False)
            return Updated(kept, True)

        outcome = self.mutate(decide)
        return bool(outcome.value)

    def clear(self) -> None:
        self.update(lambda entries: [])


def get_thread_store() -> ThreadStore:
    return ThreadStore(get_index_path())


def get_pending_store() -> PendingStore:
    return PendingStore(get_pending_path())

