"""CLI entry point for threadlinking."""

import argparse
import json
import logging
import subprocess
import sys
from typing import Any, Callable, NoReturn

import argcomplete

from threadlinking.config import ConfigError, get_log_level
from threadlinking.errors import OperationResult, StorageCorruption

logger = logging.getLogger(__name__)


def thread_id_completer(prefix, parsed_args, **kwargs):
    """Complete thread tags from the thread index."""
    try:
        from threadlinking.store import get_thread_store
        return [tag for tag in get_thread_store().load() if tag.startswith(prefix)]
    except Exception:
        return []


class ArgumentParserExitCode1(argparse.ArgumentParser):
    """ArgumentParser that exits with code 1 instead of 2, like every other threadlinking failure."""

    def error(self, message: str) -> NoReturn:
        """Print error and exit with code 1."""
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


USAGE = """\
Capture the conversation behind your files:
  threadlinking snippet <tag> "text"         Save context (creates the thread)
  threadlinking attach <tag> <file>          Link a file to a thread
  threadlinking explain <file>               Why does this file exist?

Browse:
  threadlinking list [--prefix X] [--since N]
  threadlinking show <tag> [--tag T]
  threadlinking search <query>
  threadlinking semantic-search <query>      Requires `threadlinking reindex`

Editor hooks call `threadlinking track <file>` on every write; files edited but
never attached are listed as pending.
"""


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = ArgumentParserExitCode1(
        prog="threadlinking",
        description="Link files to the conversations that produced them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=USAGE,
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")
    subparsers = parser.add_subparsers(dest="command")

    # create
    p_create = subparsers.add_parser("create", help="Create a new empty thread")
    p_create.add_argument("thread_id", help="Thread tag")
    p_create.add_argument("--summary", help="Thread description")
    p_create.add_argument("--chat-url", dest="chat_url", help="Associated chat URL")

    # snippet
    p_snippet = subparsers.add_parser("snippet", help="Add a snippet to a thread (auto-creates it)")
    p_snippet.add_argument("thread_id", help="Thread tag").completer = thread_id_completer
    p_snippet.add_argument("content", nargs="?", help="Snippet text (read from stdin when omitted or '-')")
    p_snippet.add_argument("--file", dest="from_file", help="Read snippet content from a file")
    p_snippet.add_argument("--source", help="Source (claude-code, chatgpt, manual, ...)")
    p_snippet.add_argument("--url", help="URL of the conversation")
    p_snippet.add_argument("--summary", help="Summary for an auto-created thread")
    p_snippet.add_argument("--tags", help="Comma-separated tags, e.g. auth,decision")
    p_snippet.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # attach / detach
    p_attach = subparsers.add_parser("attach", help="Link a file to a thread")
    p_attach.add_argument("thread_id", help="Thread tag").completer = thread_id_completer
    p_attach.add_argument("file", help="Path to the file")

    p_detach = subparsers.add_parser("detach", help="Unlink a file from a thread")
    p_detach.add_argument("thread_id", help="Thread tag").completer = thread_id_completer
    p_detach.add_argument("file", help="Path to the file")

    # show
    p_show = subparsers.add_parser("show", help="Show thread details")
    p_show.add_argument("thread_id", help="Thread tag").completer = thread_id_completer
    p_show.add_argument("--tag", dest="filter_tag", help="Only snippets with this tag")
    p_show.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # explain
    p_explain = subparsers.add_parser("explain", help="Show the threads behind a file")
    p_explain.add_argument("file", help="Path to the file")
    p_explain.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # list
    p_list = subparsers.add_parser("list", help="List threads and pending files")
    p_list.add_argument("--prefix", help="Only tags starting with this prefix")
    p_list.add_argument("--since", type=int, help="Only threads active in the last N days")
    p_list.add_argument("--clear-pending", action="store_true", dest="clear_pending", help="Empty the pending files list")
    p_list.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # search
    p_search = subparsers.add_parser("search", help="Keyword search")
    p_search.add_argument("query", help="Text to look for")
    p_search.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # update
    p_update = subparsers.add_parser("update", help="Update a thread's summary or chat URL")
    p_update.add_argument("thread_id", help="Thread tag").completer = thread_id_completer
    p_update.add_argument("--summary", help="New summary")
    p_update.add_argument("--chat-url", dest="chat_url", help="New chat URL ('' clears it)")

    # rename
    p_rename = subparsers.add_parser("rename", help="Rename a thread")
    p_rename.add_argument("old_id", help="Current tag").completer = thread_id_completer
    p_rename.add_argument("new_id", help="New tag")

    # delete
    p_delete = subparsers.add_parser("delete", help="Delete a thread")
    p_delete.add_argument("thread_id", help="Thread tag").completer = thread_id_completer
    p_delete.add_argument("--yes", action="store_true", help="Skip confirmation")

    # audit
    p_audit = subparsers.add_parser("audit", help="Check the thread index for problems")
    p_audit.add_argument("--stale", type=int, default=90, dest="stale_days", help="Days without activity before a thread is stale")
    p_audit.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # clear
    p_clear = subparsers.add_parser("clear", help="Delete ALL threads")
    p_clear.add_argument("--yes", action="store_true", help="Skip confirmation prompts")

    # track
    p_track = subparsers.add_parser("track", help="Record an edited file as pending (called by hooks)")
    p_track.add_argument("file", help="Path to the edited file")
    p_track.add_argument("--verbose", action="store_true", dest="report", help="Print what was recorded")

    # status
    p_status = subparsers.add_parser("status", help="Show version, features and data locations")
    p_status.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # analytics
    p_analytics = subparsers.add_parser("analytics", help="Usage insights")
    p_analytics.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # reindex
    p_reindex = subparsers.add_parser("reindex", help="Rebuild the semantic search index")
    p_reindex.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # semantic-search
    p_semantic = subparsers.add_parser("semantic-search", help="Search threads by meaning")
    p_semantic.add_argument("query", help="Natural language query")
    p_semantic.add_argument("-n", "--limit", type=int, default=10, help="Maximum results")
    p_semantic.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # context
    p_context = subparsers.add_parser("context", help="Show threads and pending files for the current project")
    p_context.add_argument("--global", action="store_true", dest="global_view", help="Show all threads, not just this project")
    p_context.add_argument("--json", action="store_true", dest="json_output", help="JSON output")

    # completion
    p_completion = subparsers.add_parser("completion", help="Generate shell completion script")
    p_completion.add_argument(
        "shell",
        choices=["bash", "zsh", "fish"],
        help="Shell to generate completions for",
    )

    return parser


def _generate_completion(shell: str) -> int:
    """Generate shell completion script using register-python-argcomplete."""
    try:
        result = subprocess.run(
            ["register-python-argcomplete", "--shell", shell, "threadlinking"],
            capture_output=True,
            text=True,
            check=True,
        )
        print(result.stdout, end="")
        return 0
    except FileNotFoundError:
        print("Error: register-python-argcomplete not found", file=sys.stderr)
        print("Install with: pip install argcomplete", file=sys.stderr)
        return 1
    except subprocess.CalledProcessError as e:
        print(f"Error: {e.stderr}", file=sys.stderr)
        return 1


def _configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level: Any = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = get_log_level() or logging.WARNING
    logging.basicConfig(level=level, format="%(name)s %(levelname)s %(message)s", stream=sys.stderr)


def _json_default(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=_json_default))


def _confirm(question: str, expected: str = "y") -> bool:
    try:
        answer = input(question)
    except EOFError:
        return False
    return answer.strip().lower() == expected


def report(
    result: OperationResult,
    json_output: bool = False,
    render: Callable[[Any], str] | None = None,
) -> int:
    """Print *result* and return the process exit code."""
    if not result.success:
        print(f"Error: {result.message}", file=sys.stderr)
        return 1
    if json_output:
        print_json(result.data)
    elif render is not None:
        print(render(result.data))
    else:
        print(result.message)
    return 0


def _read_snippet_content(args: argparse.Namespace) -> str:
    if args.from_file:
        with open(args.from_file, encoding="utf-8") as f:
            return f.read()
    if args.content and args.content != "-":
        return args.content
    if sys.stdin.isatty():
        return ""
    return sys.stdin.read()


def _render_list(data: dict) -> str:
    from threadlinking.tools.read import format_list
    from threadlinking.validation import format_date

    text = format_list(data)
    if data["threads"]:
        newest = max(data["threads"], key=lambda t: t["date_modified"])
        text += f"\n\nLast activity: {format_date(newest['date_modified'])} ({newest['id']})"
    return text


def _render_search(data: dict) -> str:
    from threadlinking.validation import truncate

    if not data["results"]:
        return "No matching threads found."
    lines = [f"Found {len(data['results'])} matching thread(s) for '{data['query']}':"]
    for r in data["results"]:
        lines.append(f"  {r['id']}: {truncate(r['thread'].summary, 60)} ({', '.join(r['matched_in'])})")
    return "\n".join(lines)


def _render_audit(data: dict) -> str:
    lines = [f"Broken paths: {len(data['broken'])}"]
    for b in data["broken"][:5]:
        lines.append(f"  x {b['thread_id']}: {b['path']}")
    if len(data["broken"]) > 5:
        lines.append("  ...")
    lines.append(f"Orphan threads: {len(data['orphans'])}")
    lines.append(f"Stale threads (> {data['stale_days']}d): {len(data['stale'])}")
    lines.append(f"Duplicates: {len(data['duplicates'])}")
    for path, tags in data["duplicates"].items():
        lines.append(f"  {path}: {', '.join(tags)}")
    return "\n".join(lines)


def _render_status(data: dict) -> str:
    lines = [f"Threadlinking v{data['version']}", ""]
    for group, names in data["features"].items():
        lines.append(f"  {group.capitalize()}: {', '.join(names)}")
    lines.append("")
    lines.append(f"  Threads:        {data['paths']['threads']}")
    lines.append(f"  Pending:        {data['paths']['pending']}")
    state = "ready" if data["semantic_index"] else "not built (run `threadlinking reindex`)"
    lines.append(f"  Semantic index: {state}")
    return "\n".join(lines)


def _render_semantic(data: dict) -> str:
    from threadlinking.validation import truncate

    lines = []
    if data["stale_warning"]:
        lines.append(f"Note: {data['stale_warning']}")
    if not data["results"]:
        lines.append("No semantically similar threads found.")
    for r in data["results"]:
        lines.append(f"[{r['score']:.2f}] {r['id']}: {truncate(r['thread'].summary, 60)}")
        for i in r["matched_snippets"]:
            if i < len(r["thread"].snippets):
                lines.append(f"    [{i + 1}] {truncate(r['thread'].snippets[i].content, 70)}")
    return "\n".join(lines)


def cmd_delete(thread_id: str, yes: bool) -> int:
    from threadlinking.tools.read import show_thread
    from threadlinking.tools.threads import delete_thread

    found = show_thread(thread_id)
    if not found.success:
        return report(found)
    tag = found.data["thread_id"]
    if not yes and not _confirm(f"Delete thread '{tag}'? This cannot be undone. (y/N): "):
        print("Aborted.")
        return 0
    return report(delete_thread(tag))


def cmd_clear(yes: bool) -> int:
    from threadlinking.store import get_thread_store
    from threadlinking.tools.threads import clear_threads

    if not get_thread_store().load():
        print("Index is already empty.")
        return 0
    if not yes:
        if not _confirm("Are you sure you want to delete ALL threads? This cannot be undone. (y/N): "):
            print("Aborted.")
            return 0
        if not _confirm("Type 'clear' to confirm: ", expected="clear"):
            print("Aborted.")
            return 0
    return report(clear_threads())


def cmd_track(file_path: str, verbose: bool) -> int:
    """Hooks run this on every write, so it exits 0 whatever happens."""
    from threadlinking.tools.files import track_file

    result = track_file(file_path)
    if verbose:
        print(result.message)
    return 0


def cmd_context(json_output: bool, global_view: bool) -> int:
    """Session-start summary; prints nothing when there is no data to show."""
    from threadlinking.tools.context import format_context, get_context

    result = get_context(global_view=global_view)
    if json_output:
        print_json(result.data)
        return 0
    text = format_context(result.data)
    if text:
        print(text)
    return 0


def dispatch(args: argparse.Namespace) -> int:
    if args.command == "create":
        from threadlinking.tools.threads import create_thread
        return report(create_thread(args.thread_id, summary=args.summary, chat_url=args.chat_url))

    elif args.command == "snippet":
        from threadlinking.tools.snippets import add_snippet
        content = _read_snippet_content(args)
        result = add_snippet(
            args.thread_id,
            content,
            source=args.source,
            url=args.url,
            tags=args.tags,
            summary=args.summary,
        )
        return report(result, args.json_output)

    elif args.command == "attach":
        from threadlinking.tools.files import attach_file
        return report(attach_file(args.thread_id, args.file))

    elif args.command == "detach":
        from threadlinking.tools.files import detach_file
        return report(detach_file(args.thread_id, args.file))

    elif args.command == "show":
        from threadlinking.tools.read import format_thread, show_thread
        return report(
            show_thread(args.thread_id, filter_tag=args.filter_tag),
            args.json_output,
            lambda data: format_thread(data["thread_id"], data["thread"]),
        )

    elif args.command == "explain":
        from threadlinking.tools.files import explain_file, format_explain
        return report(explain_file(args.file), args.json_output, lambda data: format_explain(data["threads"]))

    elif args.command == "list":
        if args.clear_pending:
            from threadlinking.tools.files import clear_pending
            return report(clear_pending())
        from threadlinking.tools.read import list_threads
        return report(list_threads(prefix=args.prefix, since=args.since), args.json_output, _render_list)

    elif args.command == "search":
        from threadlinking.tools.read import search_threads
        return report(search_threads(args.query), args.json_output, _render_search)

    elif args.command == "update":
        from threadlinking.tools.threads import update_thread
        return report(update_thread(args.thread_id, summary=args.summary, chat_url=args.chat_url))

    elif args.command == "rename":
        from threadlinking.tools.threads import rename_thread
        return report(rename_thread(args.old_id, args.new_id))

    elif args.command == "delete":
        return cmd_delete(args.thread_id, args.yes)

    elif args.command == "audit":
        from threadlinking.tools.read import audit_threads
        return report(audit_threads(args.stale_days), args.json_output, _render_audit)

    elif args.command == "clear":
        return cmd_clear(args.yes)

    elif args.command == "track":
        return cmd_track(args.file, args.report)

    elif args.command == "status":
        from threadlinking.tools.read import get_status
        return report(get_status(), args.json_output, _render_status)

    elif args.command == "analytics":
        from threadlinking.tools.read import format_analytics, get_analytics
        return report(get_analytics(), args.json_output, format_analytics)

    elif args.command == "reindex":
        from threadlinking.tools.semantic import rebuild_semantic_index
        on_progress = None if args.json_output else print
        result = rebuild_semantic_index(on_progress=on_progress)
        return report(result, args.json_output)

    elif args.command == "semantic-search":
        from threadlinking.tools.semantic import semantic_search
        return report(semantic_search(args.query, limit=args.limit), args.json_output, _render_semantic)

    elif args.command == "context":
        return cmd_context(args.json_output, args.global_view)

    elif args.command == "completion":
        return _generate_completion(args.shell)

    print(f"Unknown command: {args.command}", file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    argcomplete.autocomplete(parser)
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        _configure_logging(args.verbose)
    except ConfigError as e:
        if args.command == "track":
            return 0
        print(f"Error: {e}", file=sys.stderr)
        return 1

    from threadlinking.index.updater import register_index_listener, wait_for_updates

    register_index_listener()
    try:
        return dispatch(args)
    except (ConfigError, StorageCorruption, OSError) as e:
        if args.command == "track":
            return 0
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        wait_for_updates()


if __name__ == "__main__":
    sys.exit(main())
