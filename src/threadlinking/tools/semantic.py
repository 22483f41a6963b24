"""Semantic tools: semantic_search and rebuild_semantic_index."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from fastmcp import FastMCP

from threadlinking.config import get_index_path
from threadlinking.errors import (
    EMPTY_QUERY,
    INDEX_ERROR,
    INDEX_NOT_FOUND,
    NotFoundError,
    OperationResult,
    ValidationError,
    fail,
    ok,
)
from threadlinking.index.store import get_semantic_index
from threadlinking.store import get_thread_store
from threadlinking.validation import MAX_SUMMARY_LENGTH, sanitize_string, truncate

logger = logging.getLogger(__name__)

STALE_WARNING = 'Semantic index may be outdated. Run "threadlinking reindex" for best results.'


def _index_mtime() -> datetime | None:
    try:
        return datetime.fromtimestamp(get_index_path().stat().st_mtime, tz=timezone.utc)
    except OSError:
        return None


def semantic_search(query: str, limit: int = 10) -> OperationResult:
    """Rank threads by meaning rather than keywords.

    Hits are grouped per thread: a thread scores as its best-matching item and
    reports which snippets matched. Threads deleted since the last reindex are
    dropped.
    """
    text = sanitize_string(query or "", MAX_SUMMARY_LENGTH)
    if not text:
        return fail(ValidationError("Search query cannot be empty", EMPTY_QUERY))
    if limit < 1:
        return fail(ValidationError("limit must be at least 1"))

    index = get_semantic_index()
    if not index.exists():
        return fail(NotFoundError(
            'Semantic index not found. Run "threadlinking reindex" to build it.', INDEX_NOT_FOUND
        ))

    mtime = _index_mtime()
    stale_warning = STALE_WARNING if mtime is not None and index.is_stale(mtime) else None

    try:
        from threadlinking.index.embedder import embed_query
        hits = index.search(embed_query(text), k=limit * 3)
    except Exception as e:
        logger.warning("Semantic search failed: %s", e)
        return OperationResult(False, f"Semantic search failed: {e}", error=INDEX_ERROR)

    grouped: dict[str, dict] = {}
    for hit in hits:
        entry = grouped.setdefault(hit.metadata.thread_id, {"score": 0.0, "snippets": set()})
        entry["score"] = max(entry["score"], hit.score)
        if hit.metadata.type == "snippet" and hit.metadata.snippet_index is not None:
            entry["snippets"].add(hit.metadata.snippet_index)

    threads = get_thread_store().load()
    results = [
        {
            "id": thread_id,
            "thread": threads[thread_id],
            "score": entry["score"],
            "matched_snippets": sorted(entry["snippets"]),
        }
        for thread_id, entry in grouped.items()
        if thread_id in threads
    ]
    results.sort(key=lambda r: r["score"], reverse=True)
    results = results[:limit]

    if not results:
        message = "No semantically similar threads found."
    else:
        message = f"Found {len(results)} similar thread{'s' if len(results) > 1 else ''}."
    return ok(message, {"query": text, "results": results, "stale_warning": stale_warning})


def rebuild_semantic_index(on_progress: Callable[[str], None] | None = None) -> OperationResult:
    """Clear the semantic index and re-embed every thread summary and snippet."""
    from threadlinking.index.reindex import reindex_all

    threads = get_thread_store().load()
    try:
        result = reindex_all(threads, on_progress=on_progress)
    except Exception as e:
        logger.warning("Reindex failed: %s", e)
        return OperationResult(False, f"Reindex failed: {e}", error=INDEX_ERROR)

    if not result.threads_indexed:
        message = "No threads to index."
    else:
        message = f"Indexed {result.threads_indexed} threads ({result.items_created} items)."
    return ok(message, {
        "threads_indexed": result.threads_indexed,
        "items_created": result.items_created,
        "duration_seconds": result.duration_seconds,
    })


# --- FastMCP tool registration ---

def _register(mcp: FastMCP) -> None:
    @mcp.tool(name="threadlinking_semantic_search")
    def semantic_search_tool(query: str, limit: int = 10) -> str:
        """Search threads by meaning. Finds related context even when the wording differs.

        Requires a semantic index; build it with `threadlinking reindex`.
        """
        result = semantic_search(query, limit=limit)
        if not result.success:
            return result.as_text()
        lines = [result.message]
        if result.data["stale_warning"]:
            lines.append(f"Note: {result.data['stale_warning']}")
        for r in result.data["results"]:
            matched = ""
            if r["matched_snippets"]:
                matched = f" snippets {', '.join(str(i + 1) for i in r['matched_snippets'])}"
            lines.append(f"  [{r['score']:.2f}] {r['id']}: {truncate(r['thread'].summary, 60)}{matched}")
        return "\n".join(lines)
