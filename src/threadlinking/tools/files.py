"""File tools: attach_file, detach_file, explain_file, track_file, clear_pending."""
from __future__ import annotations

import logging
import os

from fastmcp import FastMCP

from threadlinking.documents import Outcome, Rejected, Unchanged, Updated
from threadlinking.errors import (
    NOT_LINKED,
    RECOVERABLE_ERRORS,
    LockTimeout,
    NotFoundError,
    OperationResult,
    fail,
    ok,
)
from threadlinking.models import PendingFile, ThreadIndex, format_timestamp, utc_now
from threadlinking.store import get_pending_store, get_thread_store
from threadlinking.validation import resolve_path, validate_tag

logger = logging.getLogger(__name__)


def attach_file(thread_id: str, file_path: str) -> OperationResult:
    """Link a file to a thread and drop it from the pending list.

    Attaching an already-linked file reports already_linked=True and does not
    rewrite the index. Files that do not exist yet are linked with a warning.
    """
    try:
        tag = validate_tag(thread_id)
        path = resolve_path(file_path)
        now = utc_now()

        def decide(index: ThreadIndex) -> Outcome:
            thread = index.get(tag)
            if thread is None:
                return Rejected(NotFoundError(f"Thread ID '{tag}' not found."))
            if path in thread.linked_files:
                return Unchanged(True)
            thread.linked_files.append(path)
            thread.touch(now)
            return Updated(index, False)

        outcome = get_thread_store().mutate(decide)
        if isinstance(outcome, Rejected):
            return fail(outcome.error)
    except RECOVERABLE_ERRORS as e:
        return fail(e)

    data = {"thread_id": tag, "file_path": path, "already_linked": outcome.value, "pending_removed": True}
    if outcome.value:
        message = f"File '{path}' is already linked to thread '{tag}'."
    elif not os.path.exists(path):
        message = f"File '{path}' attached to thread '{tag}' (warning: file does not exist)."
    else:
        message = f"File '{path}' attached to thread '{tag}'."

    # the link is already committed at this point
    try:
        get_pending_store().remove(path)
    except LockTimeout as e:
        logger.warning("Could not drop %s from pending: %s", path, e)
        data["pending_removed"] = False
        message += " (warning: pending list busy; its stale entry stays hidden from listings)"
    return ok(message, data)


def detach_file(thread_id: str, file_path: str) -> OperationResult:
    """Unlink a file from a thread."""
    try:
        tag = validate_tag(thread_id)
        path = resolve_path(file_path)
        now = utc_now()

        def decide(index: ThreadIndex) -> Outcome:
            thread = index.get(tag)
            if thread is None:
                return Rejected(NotFoundError(f"Thread ID '{tag}' not found."))
            if path not in thread.linked_files:
                return Rejected(NotFoundError(
                    f"File '{path}' is not linked to thread '{tag}'.", NOT_LINKED
                ))
            thread.linked_files.remove(path)
            thread.touch(now)
            return Updated(index)

        outcome = get_thread_store().mutate(decide)
    except RECOVERABLE_ERRORS as e:
        return fail(e)

    if isinstance(outcome, Rejected):
        return fail(outcome.error)
    return ok(
        f"File '{path}' detached from thread '{tag}'.",
        {"thread_id": tag, "file_path": path, "already_linked": False},
    )


def explain_file(file_path: str) -> OperationResult:
    """Return every thread that links *file_path*."""
    try:
        path = resolve_path(file_path)
    except RECOVERABLE_ERRORS as e:
        return fail(e)

    hits = [
        {"thread_id": tag, "thread": thread}
        for tag, thread in get_thread_store().load().items()
        if path in thread.linked_files
    ]
    if not hits:
        return ok("No threadlinking context for that file.", {"file_path": path, "threads": []})
    return ok(
        f"Found {len(hits)} thread{'s' if len(hits) > 1 else ''} for this file.",
        {"file_path": path, "threads": hits},
    )


def track_file(file_path: str) -> OperationResult:
    """Record an edit of an untracked file in the pending list. Called by editor hooks.

    Never raises: a failure here must not interrupt editing, so it is logged at
    debug level and reported as a failed result. Files that do not exist (editor
    temp files) and files already linked to a thread are skipped.

    The linked check reads the thread index without its lock; a file linked
    concurrently may still be counted as pending once, and listing hides it.
    """
    try:
        path = resolve_path(file_path)
        if not os.path.exists(path):
            return ok("Skipped: file does not exist.", {"file_path": path, "tracked": False})

        if any(path in thread.linked_files for thread in get_thread_store().load().values()):
            return ok("Skipped: file is already linked.", {"file_path": path, "tracked": False})

        now = format_timestamp(utc_now())

        def decide(entries: list[PendingFile]) -> Outcome:
            for entry in entries:
                if entry.path == path:
                    entry.last_modified = now
                    entry.count += 1
                    return Updated(entries, entry.count)
            entries.append(PendingFile(path=path, first_seen=now, last_modified=now, count=1))
            return Updated(entries, 1)

        outcome = get_pending_store().mutate(decide)
    except Exception as e:
        logger.debug("track failed for %s: %s", file_path, e)
        return OperationResult(success=False, message=str(e))

    return ok(f"Tracked: {path}", {"file_path": path, "tracked": True, "count": outcome.value})


def clear_pending() -> OperationResult:
    """Empty the pending files list."""
    try:
        get_pending_store().clear()
    except RECOVERABLE_ERRORS as e:
        return fail(e)
    return ok("Pending files cleared.")


# --- FastMCP tool registration ---

def format_explain(threads: list[dict]) -> str:
    if not threads:
        return (
            "No context found for this file.\n\n"
            "Tip: Use threadlinking_snippet to save context, then threadlinking_attach to link the file."
        )
    parts: list[str] = []
    for hit in threads:
        thread = hit["thread"]
        parts.append(f"## Thread: {hit['thread_id']}")
        parts.append(f"*{thread.summary}*")
        parts.append("")
        if thread.snippets:
            parts.append("### Context:")
            for i, s in enumerate(thread.snippets, 1):
                tags = f" [{', '.join(s.tags)}]" if s.tags else ""
                parts.append(f"**[{i}]** {s.source or 'unknown'}{tags}")
                parts.append(s.content)
                parts.append("")
    return "\n".join(parts)


def _register(mcp: FastMCP) -> None:
    @mcp.tool(name="threadlinking_attach")
    def attach_tool(thread_id: str, file_path: str) -> str:
        """Link a file to a thread. The file will be associated with the thread's context."""
        return attach_file(thread_id, file_path).as_text()

    @mcp.tool(name="threadlinking_detach")
    def detach_tool(thread_id: str, file_path: str) -> str:
        """Remove a file link from a thread."""
        return detach_file(thread_id, file_path).as_text()

    @mcp.tool(name="threadlinking_explain")
    def explain_tool(file_path: str) -> str:
        """Show why a file exists: its origin story and the decisions that led to it."""
        result = explain_file(file_path)
        if not result.success:
            return result.as_text()
        return format_explain(result.data["threads"])
