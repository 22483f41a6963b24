"""Tests for semantic_search and rebuild_semantic_index, with a fake embedding model."""
import os
import time
from pathlib import Path
from unittest.mock import patch

from threadlinking.errors import EMPTY_QUERY, INDEX_ERROR, INDEX_NOT_FOUND
from threadlinking.index.store import get_semantic_index
from threadlinking.tools.semantic import STALE_WARNING, rebuild_semantic_index, semantic_search
from threadlinking.tools.snippets import add_snippet
from threadlinking.tools.threads import create_thread, delete_thread


def _seed() -> None:
    add_snippet("auth", "JWT access tokens expire after fifteen minutes", summary="Authentication")
    add_snippet("auth", "Refresh tokens are stored in an httponly cookie")
    add_snippet("db", "Postgres chosen over MySQL for JSONB support", summary="Database choice")
    create_thread("empty")


class TestRebuild:
    def test_indexes_summaries_and_snippets(self, fake_model) -> None:
        _seed()
        progress = []
        result = rebuild_semantic_index(on_progress=progress.append)
        assert result.success
        # 3 summaries ("empty" has the default summary) + 3 snippets
        assert result.data["threads_indexed"] == 3
        assert result.data["items_created"] == 6
        assert progress
        stats = get_semantic_index().stats()
        assert stats.summaries == 3
        assert stats.snippets == 3

    def test_rebuild_replaces_previous_contents(self, fake_model) -> None:
        _seed()
        rebuild_semantic_index()
        rebuild_semantic_index()
        assert get_semantic_index().count() == 6

    def test_no_threads(self, fake_model) -> None:
        result = rebuild_semantic_index()
        assert result.success
        assert result.message == "No threads to index."
        assert get_semantic_index().exists()

    def test_embedding_failure_is_reported(self) -> None:
        _seed()
        with patch("threadlinking.index.embedder.get_model", side_effect=RuntimeError("no model")):
            result = rebuild_semantic_index()
        assert result.error == INDEX_ERROR


class TestSemanticSearch:
    def test_index_missing(self, fake_model) -> None:
        _seed()
        result = semantic_search("tokens")
        assert result.error == INDEX_NOT_FOUND

    def test_empty_query(self, fake_model) -> None:
        assert semantic_search("  ").error == EMPTY_QUERY

    def test_exact_snippet_ranks_first(self, fake_model) -> None:
        _seed()
        rebuild_semantic_index()
        result = semantic_search("Postgres chosen over MySQL for JSONB support")
        assert result.success
        top = result.data["results"][0]
        assert top["id"] == "db"
        assert top["score"] > 0.99
        assert top["matched_snippets"] == [0]
        assert result.data["stale_warning"] is None

    def test_results_grouped_per_thread(self, fake_model) -> None:
        _seed()
        rebuild_semantic_index()
        result = semantic_search("Refresh tokens are stored in an httponly cookie", limit=10)
        ids = [r["id"] for r in result.data["results"]]
        assert len(ids) == len(set(ids))
        auth = next(r for r in result.data["results"] if r["id"] == "auth")
        assert 1 in auth["matched_snippets"]
        assert auth["matched_snippets"] == sorted(auth["matched_snippets"])

    def test_limit(self, fake_model) -> None:
        _seed()
        rebuild_semantic_index()
        assert len(semantic_search("anything", limit=1).data["results"]) == 1

    def test_deleted_threads_are_dropped(self, fake_model) -> None:
        _seed()
        rebuild_semantic_index()
        delete_thread("db")
        result = semantic_search("Postgres chosen over MySQL for JSONB support")
        assert "db" not in [r["id"] for r in result.data["results"]]

    def test_stale_warning_when_threads_changed_after_index(self, fake_model, home: Path) -> None:
        _seed()
        rebuild_semantic_index()
        future = time.time() + 60
        os.utime(home / "thread_index.json", (future, future))
        result = semantic_search("tokens")
        assert result.data["stale_warning"] == STALE_WARNING

    def test_query_uses_query_embedding(self, fake_model) -> None:
        _seed()
        rebuild_semantic_index()
        semantic_search("cookies")
        assert fake_model.queries == ["cookies"]
