"""Keep the semantic index in step with thread index commits, best-effort.

Every update runs in its own worker thread after the thread index write has
committed. Failures are logged and never reach the operation that emitted the
event; `threadlinking reindex` repairs anything missed. Workers are non-daemon
so a short-lived CLI process finishes its update before the interpreter exits.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable

from threadlinking.events import EventType, ThreadEvent, on_thread_change

logger = logging.getLogger(__name__)

_workers: list[threading.Thread] = []
_workers_lock = threading.Lock()


def index_snippet(thread_id: str, snippet_index: int, content: str, timestamp: str) -> bool:
    """Embed one snippet and add it to the semantic index, if the index exists.

    Returns True if the snippet was indexed.
    """
    from threadlinking.index.embedder import embed_one
    from threadlinking.index.store import SemanticMetadata, get_semantic_index

    index = get_semantic_index()
    if not index.exists():
        return False
    vector = embed_one(content)
    index.add_item(vector, SemanticMetadata(
        thread_id=thread_id,
        type="snippet",
        text=content,
        timestamp=timestamp,
        snippet_index=snippet_index,
    ))
    return True


def _apply(event: ThreadEvent) -> None:
    from threadlinking.index.store import get_semantic_index

    if event.event_type == EventType.SNIPPET_ADDED:
        index_snippet(event.thread_id, event.snippet_index or 0, event.content, event.timestamp)
        return

    index = get_semantic_index()
    if not index.exists():
        return
    if event.event_type == EventType.DELETED:
        index.delete_thread(event.thread_id)
    elif event.event_type == EventType.RENAMED and event.old_thread_id:
        index.rename_thread(event.old_thread_id, event.thread_id)
    elif event.event_type == EventType.CLEARED:
        index.clear()


def _run_guarded(event: ThreadEvent) -> None:
    try:
        _apply(event)
        logger.debug("Semantic index updated for %s (%s)", event.thread_id, event.event_type.name)
    except Exception as e:
        logger.warning(
            "Semantic index update failed for %s (%s): %s", event.thread_id, event.event_type.name, e
        )


def spawn_update(event: ThreadEvent, run: Callable[[ThreadEvent], None] = _run_guarded) -> threading.Thread:
    """Start a worker for *event* and return it; the caller never waits on it."""
    worker = threading.Thread(
        target=run, args=(event,), name=f"threadlinking-index-{event.event_type.name.lower()}"
    )
    with _workers_lock:
        _workers[:] = [w for w in _workers if w.is_alive()]
        _workers.append(worker)
    worker.start()
    return worker


def wait_for_updates(timeout: float | None = None) -> None:
    """Join outstanding workers. Intended for tests and orderly shutdown."""
    with _workers_lock:
        pending = list(_workers)
    for worker in pending:
        worker.join(timeout)


def register_index_listener() -> None:
    """Subscribe the semantic index updater to thread change events."""
    on_thread_change(spawn_update)
