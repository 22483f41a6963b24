"""Snippet tool: add_snippet (auto-creates the thread)."""
from __future__ import annotations

from fastmcp import FastMCP

from threadlinking.documents import Outcome, Updated
from threadlinking.errors import EMPTY_CONTENT, RECOVERABLE_ERRORS, OperationResult, ValidationError, fail, ok
from threadlinking.events import EventType, ThreadEvent, emit
from threadlinking.models import Snippet, Thread, ThreadIndex, format_timestamp, utc_now
from threadlinking.store import get_thread_store
from threadlinking.validation import (
    MAX_SNIPPET_LENGTH,
    MAX_SUMMARY_LENGTH,
    detect_source,
    parse_tags,
    sanitize_string,
    validate_tag,
    validate_url,
)

_SUMMARY_PREVIEW = 80


def derive_summary(content: str) -> str:
    """Summary for an auto-created thread: the first line, or the first 80 chars if that line is tiny."""
    first_line = content.split("\n")[0][:_SUMMARY_PREVIEW]
    summary = content[:_SUMMARY_PREVIEW] if len(first_line) < 10 else first_line
    if len(content) > _SUMMARY_PREVIEW:
        summary += "..."
    return summary


def add_snippet(
    thread_id: str,
    content: str,
    source: str | None = None,
    url: str | None = None,
    tags: str | list[str] | None = None,
    summary: str | None = None,
) -> OperationResult:
    """Append a snippet to a thread, creating the thread if it does not exist.

    The semantic index is updated afterwards by whoever listens for
    SNIPPET_ADDED; that never delays or fails this call.
    """
    try:
        tag = validate_tag(thread_id)
        if not content or not content.strip():
            raise ValidationError("Snippet content cannot be empty", EMPTY_CONTENT)
        text = sanitize_string(content, MAX_SNIPPET_LENGTH)
        if not text:
            raise ValidationError("Snippet content cannot be empty", EMPTY_CONTENT)

        now = utc_now()
        snippet = Snippet(
            content=text,
            source=sanitize_string(source or "") or detect_source(),
            timestamp=format_timestamp(now),
            url=validate_url(url or ""),
            tags=parse_tags(tags),
        )
        new_summary = sanitize_string(summary, MAX_SUMMARY_LENGTH) if summary else derive_summary(text)

        def decide(index: ThreadIndex) -> Outcome:
            created = tag not in index
            if created:
                index[tag] = Thread(summary=new_summary, date_created=snippet.timestamp)
            thread = index[tag]
            thread.snippets.append(snippet)
            thread.touch(now)
            return Updated(index, (created, len(thread.snippets)))

        outcome = get_thread_store().mutate(decide)
    except RECOVERABLE_ERRORS as e:
        return fail(e)

    created, count = outcome.value
    snippet_index = count - 1
    emit(ThreadEvent(
        EventType.SNIPPET_ADDED,
        tag,
        snippet_index=snippet_index,
        content=snippet.content,
        timestamp=snippet.timestamp,
    ))

    if created:
        message = f"Created thread '{tag}' with snippet"
    else:
        message = f"Added snippet to '{tag}' ({count} snippet{'s' if count > 1 else ''} total)"
    return ok(message, {
        "thread_id": tag,
        "snippet_index": snippet_index,
        "created": created,
        "snippet_count": count,
    })


# --- FastMCP tool registration ---

def _register(mcp: FastMCP) -> None:
    @mcp.tool(name="threadlinking_snippet")
    def snippet_tool(thread_id: str, content: str, tags: str = "", source: str = "", url: str = "") -> str:
        """Add a context snippet to a thread. Auto-creates the thread if needed.

        tags: comma-separated (e.g. "auth,decision"). source defaults to claude-code.
        """
        result = add_snippet(
            thread_id,
            content,
            source=source or "claude-code",
            url=url or None,
            tags=tags or None,
        )
        if not result.success:
            return result.as_text()
        return f"{result.message}\n\nSnippet saved to thread \"{result.data['thread_id']}\"."
