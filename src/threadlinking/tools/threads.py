"""Thread lifecycle tools: create_thread, update_thread, rename_thread, delete_thread, clear_threads."""
from __future__ import annotations

from fastmcp import FastMCP

from threadlinking.documents import Outcome, Rejected, Unchanged, Updated
from threadlinking.errors import (
    RECOVERABLE_ERRORS,
    ConflictError,
    NotFoundError,
    OperationResult,
    ValidationError,
    fail,
    ok,
)
from threadlinking.events import EventType, ThreadEvent, emit
from threadlinking.models import Thread, ThreadIndex, format_timestamp, utc_now
from threadlinking.store import get_thread_store
from threadlinking.validation import (
    MAX_SUMMARY_LENGTH,
    sanitize_string,
    validate_tag,
    validate_url,
)

EMPTY_THREAD_SUMMARY = "(empty thread)"


def _not_found(tag: str) -> Rejected:
    return Rejected(NotFoundError(f"Thread ID '{tag}' not found."))


def create_thread(
    thread_id: str,
    summary: str | None = None,
    chat_url: str | None = None,
) -> OperationResult:
    """Create a new empty thread. Fails with ALREADY_EXISTS if the tag is taken."""
    try:
        tag = validate_tag(thread_id)
        text = sanitize_string(summary, MAX_SUMMARY_LENGTH) if summary else ""
        url = validate_url(chat_url or "")
        created = format_timestamp(utc_now())

        def decide(index: ThreadIndex) -> Outcome:
            if tag in index:
                return Rejected(ConflictError(f"Thread '{tag}' already exists."))
            index[tag] = Thread(
                summary=text or EMPTY_THREAD_SUMMARY,
                date_created=created,
                chat_url=url,
            )
            return Updated(index)

        outcome = get_thread_store().mutate(decide)
    except RECOVERABLE_ERRORS as e:
        return fail(e)

    if isinstance(outcome, Rejected):
        return fail(outcome.error)
    return ok(f"Thread '{tag}' created.", {"thread_id": tag, "created": True})


def update_thread(
    thread_id: str,
    summary: str | None = None,
    chat_url: str | None = None,
) -> OperationResult:
    """Replace a thread's summary and/or chat URL. An empty chat_url clears it."""
    try:
        if not summary and chat_url is None:
            raise ValidationError("Nothing to update. Provide a summary and/or a chat URL.")
        tag = validate_tag(thread_id)
        new_summary = sanitize_string(summary, MAX_SUMMARY_LENGTH) if summary else None
        new_url = validate_url(chat_url) if chat_url is not None else None
        now = utc_now()

        def decide(index: ThreadIndex) -> Outcome:
            thread = index.get(tag)
            if thread is None:
                return _not_found(tag)
            if new_summary:
                thread.summary = new_summary
            if new_url is not None:
                thread.chat_url = new_url
            thread.touch(now)
            return Updated(index)

        outcome = get_thread_store().mutate(decide)
    except RECOVERABLE_ERRORS as e:
        return fail(e)

    if isinstance(outcome, Rejected):
        return fail(outcome.error)
    return ok("Thread updated.", {"thread_id": tag})


def rename_thread(old_id: str, new_id: str) -> OperationResult:
    """Move a thread to a new tag. Neither thread is touched if the new tag exists."""
    try:
        old_tag = validate_tag(old_id)
        new_tag = validate_tag(new_id)
        now = utc_now()

        def decide(index: ThreadIndex) -> Outcome:
            if old_tag not in index:
                return _not_found(old_tag)
            if new_tag in index:
                return Rejected(ConflictError(f"Target ID '{new_tag}' already exists."))
            renamed: ThreadIndex = {}
            for tag, thread in index.items():
                if tag == old_tag:
                    thread.touch(now)
                    renamed[new_tag] = thread
                else:
                    renamed[tag] = thread
            return Updated(renamed)

        outcome = get_thread_store().mutate(decide)
    except RECOVERABLE_ERRORS as e:
        return fail(e)

    if isinstance(outcome, Rejected):
        return fail(outcome.error)
    emit(ThreadEvent(EventType.RENAMED, new_tag, old_thread_id=old_tag))
    return ok(f"Renamed '{old_tag}' -> '{new_tag}'.", {"old_id": old_tag, "new_id": new_tag})


def delete_thread(thread_id: str) -> OperationResult:
    """Delete one thread. The index is left untouched when the tag does not exist."""
    try:
        tag = validate_tag(thread_id)

        def decide(index: ThreadIndex) -> Outcome:
            if tag not in index:
                return _not_found(tag)
            del index[tag]
            return Updated(index)

        outcome = get_thread_store().mutate(decide)
    except RECOVERABLE_ERRORS as e:
        return fail(e)

    if isinstance(outcome, Rejected):
        return fail(outcome.error)
    emit(ThreadEvent(EventType.DELETED, tag))
    return ok(f"Deleted thread '{tag}'.", {"thread_id": tag})


def clear_threads() -> OperationResult:
    """Delete every thread."""
    def decide(index: ThreadIndex) -> Outcome:
        if not index:
            return Unchanged(0)
        return Updated({}, len(index))

    try:
        outcome = get_thread_store().mutate(decide)
    except RECOVERABLE_ERRORS as e:
        return fail(e)

    if isinstance(outcome, Unchanged):
        return ok("Index is already empty.", {"deleted": 0})
    emit(ThreadEvent(EventType.CLEARED))
    return ok("All threads deleted.", {"deleted": outcome.value})


# --- FastMCP tool registration ---

def _register(mcp: FastMCP) -> None:
    @mcp.tool(name="threadlinking_create")
    def create_tool(thread_id: str, summary: str = "", chat_url: str = "") -> str:
        """Create a new empty thread. Use this to set up a thread before adding snippets or files."""
        result = create_thread(thread_id, summary=summary or None, chat_url=chat_url or None)
        if not result.success:
            return result.as_text()
        return f"{result.message}\n\nThread \"{result.data['thread_id']}\" is ready for snippets and file attachments."

    @mcp.tool(name="threadlinking_update")
    def update_tool(thread_id: str, summary: str = "", chat_url: str | None = None) -> str:
        """Update a thread's summary and/or chat URL. Pass chat_url="" to clear it."""
        return update_thread(thread_id, summary=summary or None, chat_url=chat_url).as_text()

    @mcp.tool(name="threadlinking_rename")
    def rename_tool(old_id: str, new_id: str) -> str:
        """Rename a thread tag. Fails if the new tag is already in use."""
        return rename_thread(old_id, new_id).as_text()

    @mcp.tool(name="threadlinking_delete")
    def delete_tool(thread_id: str, confirm: bool = False) -> str:
        """Delete a thread and all its snippets and file links. Requires confirm=True."""
        if not confirm:
            return f"Deleting '{thread_id}' cannot be undone. Call again with confirm=True."
        return delete_thread(thread_id).as_text()
