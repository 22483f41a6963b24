"""Context tool: the threads and pending files of the project around a directory."""
from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from threadlinking.errors import OperationResult, ok
from threadlinking.models import Thread
from threadlinking.store import get_pending_store, get_thread_store

logger = logging.getLogger(__name__)

PROJECT_MARKERS = ("package.json", "CLAUDE.md", "pyproject.toml", "Cargo.toml", ".git")
PENDING_SHOWN = 3


def _git_toplevel(cwd: Path) -> Path | None:
    try:
        result = subprocess.run(
            ["git", "-C", str(cwd), "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
        )
    except subprocess.CalledProcessError:
        return None
    except OSError as e:
        logger.debug("git unavailable: %s", e)
        return None
    root = result.stdout.strip()
    return Path(os.path.abspath(root)) if root else None


def detect_project_root(cwd: str | Path | None = None, home: str | Path | None = None) -> Path | None:
    """Find the project enclosing *cwd*.

    The git top level wins. Otherwise the nearest directory holding one of
    PROJECT_MARKERS, searched upward and never reaching *home* or the
    filesystem root. The home directory itself is never a project.
    """
    start = Path(os.path.abspath(cwd if cwd is not None else os.getcwd()))
    home_dir = Path(os.path.abspath(home if home is not None else Path.home()))
    if start == home_dir:
        return None

    git_root = _git_toplevel(start)
    if git_root is not None:
        return None if git_root == home_dir else git_root

    check = start
    while check != home_dir and check.parent != check:
        if any((check / marker).exists() for marker in PROJECT_MARKERS):
            return check
        check = check.parent
    return None


def _under(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def _thread_row(thread_id: str, thread: Thread) -> dict:
    return {
        "id": thread_id,
        "summary": thread.summary,
        "snippet_count": len(thread.snippets),
        "file_count": len(thread.linked_files),
    }


def get_context(cwd: str | Path | None = None, global_view: bool = False) -> OperationResult:
    """Summarise the threads and pending files that belong to the current project.

    A thread belongs to the project when any of its linked files sits under
    the project root. With *global_view*, or outside any project, everything
    is listed.
    """
    root = detect_project_root(cwd)
    project_root = str(root) if root is not None else None

    index = get_thread_store().load()
    linked = {f for thread in index.values() for f in thread.linked_files}
    pending = [p for p in get_pending_store().load() if p.path not in linked]

    scoped = project_root is not None and not global_view
    threads = [
        _thread_row(thread_id, thread)
        for thread_id, thread in index.items()
        if not scoped or any(_under(f, project_root) for f in thread.linked_files)
    ]
    pending_rows = [
        {"path": p.path, "basename": os.path.basename(p.path), "count": p.count}
        for p in pending
        if not scoped or _under(p.path, project_root)
    ]

    return ok(
        f"{len(threads)} thread(s), {len(pending_rows)} pending file(s)",
        {
            "project": root.name if root is not None else None,
            "project_root": project_root,
            "threads": threads,
            "pending": pending_rows,
            "global": {"total_threads": len(index), "total_pending": len(pending)},
        },
    )


def format_context(data: dict) -> str:
    """Render a context summary for a session start banner.

    Returns an empty string when there is nothing worth showing.
    """
    totals = data["global"]
    if totals["total_threads"] == 0 and totals["total_pending"] == 0:
        return ""

    name = data["project"]
    threads = data["threads"]
    pending = data["pending"]
    if not threads and not pending:
        if data["project_root"] is None:
            return ""
        header = f"=== Threadlinking ({name}) ==="
        return "\n".join([
            header,
            "No threads linked to this project.",
            f"Global: {totals['total_threads']} threads | {totals['total_pending']} pending files",
            "=" * len(header),
        ])

    header = f"=== Threadlinking: {name} ===" if data["project_root"] else "=== Threadlinking (Global) ==="
    lines = [header]
    if threads:
        lines.append("Threads: " + ", ".join(t["id"] for t in threads))
    if pending:
        noun = "file" if len(pending) == 1 else "files"
        lines.append(f"Pending: {len(pending)} {noun} not yet linked")
        for entry in pending[:PENDING_SHOWN]:
            lines.append(f"  - {entry['basename']}")
        if len(pending) > PENDING_SHOWN:
            lines.append(f"  ... and {len(pending) - PENDING_SHOWN} more")
    lines.append("=" * len(header))
    return "\n".join(lines)
