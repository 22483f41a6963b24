"""Read tools: show_thread, list_threads, search_threads, audit_threads, get_analytics, get_status."""
from __future__ import annotations

import os
from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from fastmcp import FastMCP

from threadlinking.errors import (
    EMPTY_QUERY,
    RECOVERABLE_ERRORS,
    NotFoundError,
    OperationResult,
    ValidationError,
    fail,
    ok,
)
from threadlinking.models import Thread, parse_timestamp, utc_now
from threadlinking.store import get_pending_store, get_thread_store
from threadlinking.validation import (
    MAX_QUERY_LENGTH,
    format_date,
    sanitize_string,
    truncate,
    validate_tag,
)
from threadlinking.version import VERSION

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

FEATURES = {
    "core": ["snippet", "attach", "detach", "explain", "show", "list", "search", "create", "context"],
    "maintenance": ["update", "rename", "delete", "audit", "clear", "track"],
    "advanced": ["semantic_search", "analytics", "reindex"],
}


def _days_old(timestamp: str) -> int | None:
    moment = parse_timestamp(timestamp)
    if moment is None:
        return None
    return (utc_now() - moment).days


def show_thread(thread_id: str, filter_tag: str | None = None) -> OperationResult:
    """Return one thread, optionally keeping only snippets carrying *filter_tag*."""
    try:
        tag = validate_tag(thread_id)
    except RECOVERABLE_ERRORS as e:
        return fail(e)

    thread = get_thread_store().load().get(tag)
    if thread is None:
        return fail(NotFoundError(f"Thread ID '{tag}' not found."))
    if filter_tag:
        wanted = filter_tag.strip().lower()
        thread = replace(
            thread,
            snippets=[s for s in thread.snippets if any(t.lower() == wanted for t in s.tags)],
        )
    return ok(f"Thread '{tag}' retrieved.", {"thread_id": tag, "thread": thread})


def list_threads(
    prefix: str | None = None,
    since: int | None = None,
    include_pending: bool = True,
) -> OperationResult:
    """List threads, optionally by tag prefix or last activity within *since* days.

    Pending files already linked to a thread are left out, newest edits first.
    """
    index = get_thread_store().load()
    threads = []
    for tag, thread in index.items():
        if prefix and not tag.startswith(prefix):
            continue
        if since is not None:
            age = _days_old(thread.last_activity)
            if age is not None and age > since:
                continue
        threads.append({
            "id": tag,
            "summary": thread.summary,
            "snippet_count": len(thread.snippets),
            "file_count": len(thread.linked_files),
            "date_modified": thread.last_activity,
        })

    pending = []
    if include_pending:
        linked = {f for thread in index.values() for f in thread.linked_files}
        untracked = [p for p in get_pending_store().load() if p.path not in linked]
        untracked.sort(
            key=lambda p: parse_timestamp(p.last_modified) or _EPOCH,
            reverse=True,
        )
        pending = [
            {
                "path": p.path,
                "basename": os.path.basename(p.path),
                "count": p.count,
                "last_modified": p.last_modified,
            }
            for p in untracked
        ]

    if not threads:
        message = "No threads yet."
    else:
        message = f"Found {len(threads)} thread{'s' if len(threads) > 1 else ''}."
    return ok(message, {"threads": threads, "pending": pending})


def search_threads(query: str) -> OperationResult:
    """Case-insensitive substring search over tags, summaries and snippet content."""
    needle = sanitize_string(query or "", MAX_QUERY_LENGTH).lower()
    if not needle:
        return fail(ValidationError("Search query cannot be empty", EMPTY_QUERY))

    results = []
    for tag, thread in get_thread_store().load().items():
        matched_in = []
        if needle in tag.lower():
            matched_in.append("id")
        if needle in thread.summary.lower():
            matched_in.append("summary")
        if any(needle in s.content.lower() for s in thread.snippets):
            matched_in.append("snippets")
        if matched_in:
            results.append({"id": tag, "thread": thread, "matched_in": matched_in})

    if not results:
        message = "No matching threads found."
    else:
        message = f"Found {len(results)} matching thread{'s' if len(results) > 1 else ''}."
    return ok(message, {"query": needle, "results": results})


def audit_threads(stale_days: int = 90) -> OperationResult:
    """Report linked files that no longer exist, orphan and stale threads, and shared files."""
    if stale_days < 0:
        return fail(ValidationError("stale_days must not be negative"))

    broken: list[dict[str, str]] = []
    orphans: list[str] = []
    stale: list[str] = []
    owners: dict[str, list[str]] = {}

    for tag, thread in get_thread_store().load().items():
        if thread.is_orphan():
            orphans.append(tag)
        for path in thread.linked_files:
            if not os.path.exists(path):
                broken.append({"thread_id": tag, "path": path})
            owners.setdefault(path, []).append(tag)
        age = _days_old(thread.last_activity)
        if age is not None and age > stale_days:
            stale.append(tag)

    duplicates = {path: tags for path, tags in owners.items() if len(tags) > 1}
    issues = len(broken) + len(orphans) + len(stale) + len(duplicates)
    message = "No issues found." if not issues else f"Found {issues} issue{'s' if issues > 1 else ''}."
    return ok(message, {
        "stale_days": stale_days,
        "broken": broken,
        "orphans": orphans,
        "stale": stale,
        "duplicates": duplicates,
    })


def _pick(index: dict[str, Thread], newest: bool) -> dict[str, str] | None:
    dated = [
        (moment, tag, thread.date_created)
        for tag, thread in index.items()
        if (moment := parse_timestamp(thread.date_created)) is not None
    ]
    if not dated:
        return None
    chosen = max(dated) if newest else min(dated)
    return {"id": chosen[1], "date": chosen[2]}


def get_analytics() -> OperationResult:
    """Totals, averages, recent activity, snippet sources and the ten most used tags."""
    index = get_thread_store().load()
    now = utc_now()
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)

    total_threads = len(index)
    total_snippets = sum(len(t.snippets) for t in index.values())
    total_files = sum(len(t.linked_files) for t in index.values())

    created_7 = created_30 = 0
    for thread in index.values():
        created = parse_timestamp(thread.date_created)
        if created is None:
            continue
        if created >= week_ago:
            created_7 += 1
        if created >= month_ago:
            created_30 += 1

    most_active = None
    for tag, thread in index.items():
        if most_active is None or len(thread.snippets) > most_active["snippet_count"]:
            most_active = {"id": tag, "snippet_count": len(thread.snippets)}

    sources: Counter = Counter()
    tags: Counter = Counter()
    for thread in index.values():
        for snippet in thread.snippets:
            sources[snippet.source or "unknown"] += 1
            tags.update(snippet.tags)

    def average(total: int) -> float:
        return round(total / total_threads, 1) if total_threads else 0

    return ok("Analytics generated.", {
        "summary": {
            "total_threads": total_threads,
            "total_snippets": total_snippets,
            "total_linked_files": total_files,
            "avg_snippets_per_thread": average(total_snippets),
            "avg_files_per_thread": average(total_files),
        },
        "activity": {
            "threads_created_last_7_days": created_7,
            "threads_created_last_30_days": created_30,
            "most_active_thread": most_active,
        },
        "sources": dict(sources),
        "tags": [{"tag": t, "count": c} for t, c in tags.most_common(10)],
        "oldest_thread": _pick(index, newest=False),
        "newest_thread": _pick(index, newest=True),
    })


def get_status() -> OperationResult:
    """Version, available features, storage locations and whether a semantic index exists."""
    from threadlinking.config import get_base_dir, get_index_path, get_pending_path, get_semantic_index_dir
    from threadlinking.index.store import get_semantic_index

    return ok(f"Threadlinking v{VERSION}", {
        "version": VERSION,
        "features": FEATURES,
        "paths": {
            "home": str(get_base_dir()),
            "threads": str(get_index_path()),
            "pending": str(get_pending_path()),
            "semantic_index": str(get_semantic_index_dir()),
        },
        "semantic_index": get_semantic_index().exists(),
    })


# --- FastMCP tool registration ---

def format_thread(thread_id: str, thread: Thread) -> str:
    lines = [f"# {thread_id}", "", thread.summary, ""]
    lines.append(f"Created: {format_date(thread.date_created)}")
    if thread.date_modified:
        lines.append(f"Modified: {format_date(thread.date_modified)}")
    if thread.chat_url:
        lines.append(f"Chat: {thread.chat_url}")
    if thread.snippets:
        lines.append("")
        lines.append(f"## Snippets ({len(thread.snippets)})")
        for i, s in enumerate(thread.snippets, 1):
            tags = f" [{', '.join(s.tags)}]" if s.tags else ""
            lines.append(f"**[{i}]** {s.source or 'unknown'} - {format_date(s.timestamp)}{tags}")
            lines.append(s.content)
            lines.append("")
    if thread.linked_files:
        lines.append(f"## Linked files ({len(thread.linked_files)})")
        lines.extend(f"- {f}" for f in thread.linked_files)
    return "\n".join(lines).rstrip()


def format_list(data: dict) -> str:
    if not data["threads"] and not data["pending"]:
        return "No threads yet. Create one with: threadlinking_snippet"
    lines = []
    if data["threads"]:
        lines.append(f"Threads ({len(data['threads'])}):")
        for t in data["threads"]:
            lines.append(
                f"  {t['id']}: {truncate(t['summary'], 60)} "
                f"({t['snippet_count']} snippets, {t['file_count']} files)"
            )
    if data["pending"]:
        lines.append("")
        lines.append(f"Pending files ({len(data['pending'])}), edited but not linked:")
        for p in data["pending"][:10]:
            lines.append(f"  {p['basename']} ({p['count']} edits) {p['path']}")
    return "\n".join(lines)


def format_analytics(data: dict) -> str:
    s, a = data["summary"], data["activity"]
    lines = [
        f"Threads: {s['total_threads']}",
        f"Snippets: {s['total_snippets']} (avg {s['avg_snippets_per_thread']} per thread)",
        f"Linked files: {s['total_linked_files']} (avg {s['avg_files_per_thread']} per thread)",
        f"Created in the last 7 days: {a['threads_created_last_7_days']}",
        f"Created in the last 30 days: {a['threads_created_last_30_days']}",
    ]
    if a["most_active_thread"]:
        m = a["most_active_thread"]
        lines.append(f"Most active: {m['id']} ({m['snippet_count']} snippets)")
    if data["sources"]:
        lines.append("")
        lines.append("Sources:")
        for source, count in sorted(data["sources"].items(), key=lambda x: -x[1]):
            lines.append(f"  {source:<20} {count}")
    if data["tags"]:
        lines.append("")
        lines.append("Top tags:")
        for entry in data["tags"]:
            lines.append(f"  #{entry['tag']:<19} {entry['count']}")
    return "\n".join(lines)


def _register(mcp: FastMCP) -> None:
    @mcp.tool(name="threadlinking_show")
    def show_tool(thread_id: str, filter_tag: str = "") -> str:
        """Show a thread's summary, snippets and linked files. filter_tag keeps only matching snippets."""
        result = show_thread(thread_id, filter_tag=filter_tag or None)
        if not result.success:
            return result.as_text()
        return format_thread(result.data["thread_id"], result.data["thread"])

    @mcp.tool(name="threadlinking_list")
    def list_tool(prefix: str = "", since_days: int | None = None) -> str:
        """List threads and files edited but not yet linked. Filter by tag prefix or recent N days (0 = today)."""
        result = list_threads(prefix=prefix or None, since=since_days)
        return format_list(result.data)

    @mcp.tool(name="threadlinking_search")
    def search_tool(query: str) -> str:
        """Keyword search across thread tags, summaries and snippet content."""
        result = search_threads(query)
        if not result.success:
            return result.as_text()
        lines = [result.message]
        for r in result.data["results"]:
            lines.append(
                f"  {r['id']}: {truncate(r['thread'].summary, 60)} "
                f"(matched in {', '.join(r['matched_in'])})"
            )
        return "\n".join(lines)

    @mcp.tool(name="threadlinking_status")
    def status_tool() -> str:
        """Show the threadlinking version, available features and where data is stored."""
        data = get_status().data
        lines = [f"Threadlinking v{data['version']}", ""]
        for group, names in data["features"].items():
            lines.append(f"{group.capitalize()}: {', '.join(names)}")
        lines.append("")
        lines.append(f"Data: {data['paths']['home']}")
        lines.append(f"Semantic index: {'ready' if data['semantic_index'] else 'not built (run threadlinking reindex)'}")
        return "\n".join(lines)

    @mcp.tool(name="threadlinking_analytics")
    def analytics_tool() -> str:
        """Usage insights: totals, recent activity, snippet sources and top tags."""
        return format_analytics(get_analytics().data)
