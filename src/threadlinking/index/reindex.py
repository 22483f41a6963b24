"""Full rebuild of the semantic index from the thread index."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from threadlinking.index.embedder import embed
from threadlinking.index.store import SemanticIndex, SemanticMetadata, get_semantic_index
from threadlinking.models import ThreadIndex

logger = logging.getLogger(__name__)


@dataclass
class ReindexResult:
    threads_indexed: int
    items_created: int
    duration_seconds: float


def collect_items(threads: ThreadIndex) -> list[SemanticMetadata]:
    """One item per non-empty summary and per non-empty snippet."""
    items: list[SemanticMetadata] = []
    for thread_id, thread in threads.items():
        if thread.summary:
            items.append(SemanticMetadata(
                thread_id=thread_id,
                type="summary",
                text=thread.summary,
                timestamp=thread.last_activity,
            ))
        for i, snippet in enumerate(thread.snippets):
            if snippet.content:
                items.append(SemanticMetadata(
                    thread_id=thread_id,
                    type="snippet",
                    text=snippet.content,
                    timestamp=snippet.timestamp,
                    snippet_index=i,
                ))
    return items


def reindex_all(
    threads: ThreadIndex,
    index: SemanticIndex | None = None,
    on_progress: Callable[[str], None] | None = None,
) -> ReindexResult:
    """Clear the semantic index and re-embed every summary and snippet.

    The full text is embedded; only a preview is stored alongside the vector.
    """
    log = on_progress or (lambda message: None)
    if index is None:
        index = get_semantic_index()

    start = time.monotonic()
    log(f"Found {len(threads)} threads.")
    items = collect_items(threads)

    log("Clearing existing index...")
    index.clear()

    if items:
        log(f"Embedding {len(items)} items...")
        vectors = embed([item.text for item in items])
        log("Storing in index...")
        index.add_items(list(zip(vectors, items)))

    duration = round(time.monotonic() - start, 2)
    logger.info("Reindexed %d threads (%d items) in %ss", len(threads), len(items), duration)
    return ReindexResult(
        threads_indexed=len(threads),
        items_created=len(items),
        duration_seconds=duration,
    )
