"""Unit tests for the LanceDB semantic index, using a real table in a temp dir."""
from datetime import timedelta
from pathlib import Path

import numpy as np
import pytest

from threadlinking.index.store import (
    PREVIEW_LENGTH,
    SemanticIndex,
    SemanticMetadata,
    get_semantic_index,
    reset_index_cache,
)
from threadlinking.models import parse_timestamp

DIM = 384


def _vec(seed: int) -> np.ndarray:
    v = np.random.default_rng(seed).standard_normal(DIM).astype(np.float32)
    return v / np.linalg.norm(v)


def _meta(thread_id: str, snippet_index: int | None = None, text: str = "text") -> SemanticMetadata:
    return SemanticMetadata(
        thread_id=thread_id,
        type="summary" if snippet_index is None else "snippet",
        text=text,
        timestamp="2026-01-01T00:00:00.000000Z",
        snippet_index=snippet_index,
    )


@pytest.fixture
def index(tmp_path: Path) -> SemanticIndex:
    idx = SemanticIndex(tmp_path / "semantic-index")
    idx.clear()
    return idx


class TestExists:
    def test_missing_dir(self, tmp_path: Path) -> None:
        idx = SemanticIndex(tmp_path / "nope")
        assert not idx.exists()
        assert idx.count() == 0
        assert not (tmp_path / "nope").exists()

    def test_after_clear(self, index: SemanticIndex) -> None:
        assert index.exists()
        assert index.count() == 0


class TestAddAndSearch:
    def test_add_items(self, index: SemanticIndex) -> None:
        index.add_items([(_vec(1), _meta("a")), (_vec(2), _meta("a", 0)), (_vec(3), _meta("b", 0))])
        assert index.count() == 3

    def test_nearest_first_with_cosine_score(self, index: SemanticIndex) -> None:
        index.add_items([(_vec(1), _meta("a", 0)), (_vec(2), _meta("b", 0)), (_vec(3), _meta("c", 0))])
        hits = index.search(_vec(2), k=3)
        assert hits[0].metadata.thread_id == "b"
        assert hits[0].score == pytest.approx(1.0, abs=1e-3)
        assert [h.score for h in hits] == sorted((h.score for h in hits), reverse=True)

    def test_metadata_round_trip(self, index: SemanticIndex) -> None:
        index.add_item(_vec(1), _meta("a", 4, text="x" * 500))
        index.add_item(_vec(2), _meta("a"))
        hits = {h.metadata.type: h.metadata for h in index.search(_vec(1), k=2)}
        assert hits["snippet"].snippet_index == 4
        assert len(hits["snippet"].text) == PREVIEW_LENGTH
        assert hits["summary"].snippet_index is None

    def test_search_empty_index(self, index: SemanticIndex) -> None:
        assert index.search(_vec(1), k=5) == []

    def test_k_limits_results(self, index: SemanticIndex) -> None:
        index.add_items([(_vec(i), _meta(f"t{i}")) for i in range(10)])
        assert len(index.search(_vec(0), k=4)) == 4


class TestMaintenance:
    def test_delete_thread(self, index: SemanticIndex) -> None:
        index.add_items([(_vec(1), _meta("a")), (_vec(2), _meta("a", 0)), (_vec(3), _meta("b"))])
        assert index.delete_thread("a") == 2
        assert index.count() == 1
        assert index.delete_thread("ghost") == 0

    def test_delete_thread_with_quote_in_id(self, index: SemanticIndex) -> None:
        index.add_items([(_vec(1), _meta("it's")), (_vec(2), _meta("other"))])
        assert index.delete_thread("it's") == 1
        assert index.count() == 1

    def test_rename_thread_keeps_vectors(self, index: SemanticIndex) -> None:
        index.add_items([(_vec(1), _meta("old", 0)), (_vec(2), _meta("keep", 0))])
        assert index.rename_thread("old", "new") == 1
        hits = index.search(_vec(1), k=1)
        assert hits[0].metadata.thread_id == "new"
        assert hits[0].score == pytest.approx(1.0, abs=1e-3)
        assert index.count() == 2

    def test_clear(self, index: SemanticIndex) -> None:
        index.add_items([(_vec(1), _meta("a"))])
        index.clear()
        assert index.exists()
        assert index.count() == 0

    def test_stats(self, index: SemanticIndex) -> None:
        index.add_items([(_vec(1), _meta("a")), (_vec(2), _meta("a", 0)), (_vec(3), _meta("b", 0))])
        stats = index.stats()
        assert stats.total_items == 3
        assert stats.threads == 2
        assert stats.summaries == 1
        assert stats.snippets == 2
        assert stats.last_updated is not None


class TestStaleness:
    def test_last_updated_written_on_change(self, index: SemanticIndex) -> None:
        assert parse_timestamp(index.last_updated()) is not None

    def test_is_stale(self, index: SemanticIndex) -> None:
        last = parse_timestamp(index.last_updated())
        assert not index.is_stale(last - timedelta(seconds=1))
        assert index.is_stale(last + timedelta(seconds=1))

    def test_never_updated_is_stale(self, tmp_path: Path) -> None:
        from datetime import datetime, timezone
        assert SemanticIndex(tmp_path / "fresh").is_stale(datetime.now(timezone.utc))


class TestCache:
    def test_same_path_same_instance(self, tmp_path: Path) -> None:
        assert get_semantic_index(tmp_path / "x") is get_semantic_index(tmp_path / "x")

    def test_default_path_from_home(self, home: Path) -> None:
        assert get_semantic_index().db_path == (home / "semantic-index").resolve()

    def test_reset(self, tmp_path: Path) -> None:
        first = get_semantic_index(tmp_path / "x")
        reset_index_cache()
        assert get_semantic_index(tmp_path / "x") is not first
