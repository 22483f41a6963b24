"""LanceDB semantic index over thread summaries and snippets."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import numpy as np
import pyarrow as pa

from threadlinking.locks import atomic_write, ensure_private_dir
from threadlinking.models import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

_TABLE_NAME = "threads"
_TIMESTAMP_FILE = ".last-updated"
PREVIEW_LENGTH = 200
# LanceDB raises OSError (disk/connection), ValueError (bad query),
# and pa.ArrowInvalid (schema mismatch). We catch these specifically
# so programming errors (TypeError, KeyError, etc.) still propagate.
_STORE_ERRORS = (OSError, ValueError, pa.ArrowInvalid)


def _get_dim() -> int:
    from threadlinking.index.models import get_active_model
    return get_active_model().dimensions


def _sq(value: str) -> str:
    """Escape a string for safe interpolation into a LanceDB SQL filter expression.

    LanceDB does not support parameterized queries, so escaping is centralised
    here: standard SQL single-quote doubling.
    """
    return value.replace("'", "''")


@dataclass
class SemanticMetadata:
    thread_id: str
    type: str  # "summary" or "snippet"
    text: str
    timestamp: str
    snippet_index: int | None = None


@dataclass
class SemanticHit:
    score: float
    metadata: SemanticMetadata


@dataclass
class IndexStats:
    total_items: int
    threads: int
    summaries: int
    snippets: int
    last_updated: str | None


def _schema() -> pa.Schema:
    return pa.schema([
        pa.field("thread_id", pa.string()),
        pa.field("type", pa.string()),
        pa.field("snippet_index", pa.int32()),  # -1 for summaries
        pa.field("text", pa.string()),
        pa.field("timestamp", pa.string()),
        pa.field("vector", pa.list_(pa.float32(), _get_dim())),
        pa.field("embedding_model", pa.string()),
    ])


def _row(vector: np.ndarray, meta: SemanticMetadata, model_name: str) -> dict[str, Any]:
    return {
        "thread_id": meta.thread_id,
        "type": meta.type,
        "snippet_index": -1 if meta.snippet_index is None else int(meta.snippet_index),
        "text": meta.text[:PREVIEW_LENGTH],
        "timestamp": meta.timestamp,
        "vector": np.asarray(vector, dtype=np.float32).tolist(),
        "embedding_model": model_name,
    }


def _metadata(row: dict[str, Any]) -> SemanticMetadata:
    index = row.get("snippet_index", -1)
    return SemanticMetadata(
        thread_id=row["thread_id"],
        type=row.get("type", "snippet"),
        text=row.get("text", ""),
        timestamp=row.get("timestamp", ""),
        snippet_index=None if index is None or index < 0 else int(index),
    )


@dataclass
class SemanticIndex:
    """Thin wrapper around a LanceDB table plus a last-updated marker file."""
    db_path: Path
    _db: Any = None
    _table: Any = None

    def _connect(self) -> Any:
        if self._db is None:
            import lancedb
            ensure_private_dir(self.db_path)
            self._db = lancedb.connect(str(self.db_path))
        return self._db

    def _get_table(self) -> Any:
        if self._table is None:
            db = self._connect()
            self._table = db.create_table(_TABLE_NAME, schema=_schema(), exist_ok=True)
        return self._table

    def exists(self) -> bool:
        if not self.db_path.exists():
            return False
        try:
            return _TABLE_NAME in self._connect().table_names()
        except _STORE_ERRORS:
            return False

    def count(self) -> int:
        if not self.exists():
            return 0
        try:
            return self._get_table().count_rows()
        except _STORE_ERRORS:
            return 0

    def add_items(self, items: list[tuple[np.ndarray, SemanticMetadata]]) -> None:
        if not items:
            return
        from threadlinking.index.models import get_active_model
        model_name = get_active_model().name
        self._get_table().add([_row(vector, meta, model_name) for vector, meta in items])
        self._touch()

    def add_item(self, vector: np.ndarray, metadata: SemanticMetadata) -> None:
        self.add_items([(vector, metadata)])

    def search(self, vector: np.ndarray, k: int = 10) -> list[SemanticHit]:
        """Nearest neighbours of *vector*, best first.

        Score is cosine similarity, recovered from LanceDB's squared L2
        distance on unit vectors (d = 2 - 2cos).
        """
        if self.count() == 0:
            return []
        try:
            rows = (
                self._get_table()
                .search(np.asarray(vector, dtype=np.float32).tolist(), vector_column_name="vector")
                .limit(k)
                .to_list()
            )
        except _STORE_ERRORS as e:
            logger.warning("Semantic search failed: %s", e)
            return []
        hits = []
        for row in rows:
            distance = float(row.get("_distance", 2.0))
            hits.append(SemanticHit(score=round(1.0 - distance / 2.0, 4), metadata=_metadata(row)))
        return sorted(hits, key=lambda h: h.score, reverse=True)

    def delete_thread(self, thread_id: str) -> int:
        """Remove every item belonging to *thread_id*. Returns how many were removed."""
        if not self.exists():
            return 0
        table = self._get_table()
        predicate = f"thread_id = '{_sq(thread_id)}'"
        removed = table.count_rows(predicate)
        if removed:
            table.delete(predicate)
            self._touch()
        return removed

    def rename_thread(self, old_id: str, new_id: str) -> int:
        """Move items from *old_id* to *new_id* without re-embedding."""
        if not self.exists():
            return 0
        table = self._get_table()
        predicate = f"thread_id = '{_sq(old_id)}'"
        existing = table.search().where(predicate).limit(100_000).to_list()
        if not existing:
            return 0
        updated = []
        for row in existing:
            row = dict(row)
            row["thread_id"] = new_id
            # remove LanceDB internal fields before re-inserting
            row.pop("_distance", None)
            updated.append(row)
        table.delete(predicate)
        table.add(updated)
        self._touch()
        return len(updated)

    def clear(self) -> None:
        """Drop every item, recreating the table with the active model's dimensions."""
        db = self._connect()
        if _TABLE_NAME in db.table_names():
            db.drop_table(_TABLE_NAME)
        self._table = db.create_table(_TABLE_NAME, schema=_schema())
        self._touch()

    def stats(self) -> IndexStats:
        rows: list[dict] = []
        if self.exists():
            try:
                rows = self._get_table().search().limit(1_000_000).to_list()
            except _STORE_ERRORS as e:
                logger.warning("Could not read semantic index stats: %s", e)
        summaries = sum(1 for r in rows if r.get("type") == "summary")
        return IndexStats(
            total_items=len(rows),
            threads=len({r.get("thread_id") for r in rows}),
            summaries=summaries,
            snippets=len(rows) - summaries,
            last_updated=self.last_updated(),
        )

    def last_updated(self) -> str | None:
        try:
            value = (self.db_path / _TIMESTAMP_FILE).read_text().strip()
        except OSError:
            return None
        return value or None

    def is_stale(self, reference: datetime) -> bool:
        """True if *reference* (e.g. the thread index mtime) is newer than the last index update."""
        last = parse_timestamp(self.last_updated() or "")
        if last is None:
            return True
        return reference > last

    def _touch(self) -> None:
        try:
            atomic_write(self.db_path / _TIMESTAMP_FILE, format_timestamp(utc_now()))
        except OSError as e:
            logger.warning("Could not update semantic index timestamp: %s", e)


_index_cache: dict[Path, SemanticIndex] = {}
_index_lock = threading.Lock()


def get_semantic_index(db_path: Path | None = None) -> SemanticIndex:
    """Return the SemanticIndex for *db_path* (default: the configured one), once per process."""
    if db_path is None:
        from threadlinking.config import get_semantic_index_dir
        db_path = get_semantic_index_dir()
    resolved = db_path.resolve()
    if resolved in _index_cache:
        return _index_cache[resolved]
    with _index_lock:
        if resolved not in _index_cache:
            _index_cache[resolved] = SemanticIndex(db_path=resolved)
        return _index_cache[resolved]


def reset_index_cache() -> None:
    """Clear the index cache. Intended for use in tests only."""
    with _index_lock:
        _index_cache.clear()
