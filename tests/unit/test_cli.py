"""Tests for the threadlinking command line."""
import io
import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from threadlinking.cli import build_parser, main
from threadlinking.store import get_pending_store, get_thread_store


@pytest.fixture
def src_file(tmp_path: Path) -> Path:
    f = tmp_path / "auth.py"
    f.write_text("")
    return f


def _answers(monkeypatch: pytest.MonkeyPatch, *answers: str) -> None:
    it = iter(answers)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(it))


class TestParser:
    def test_no_command_prints_help(self, capsys) -> None:
        assert main([]) == 1
        assert "usage:" in capsys.readouterr().out

    def test_bad_arguments_exit_1(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["create"])
        assert exc_info.value.code == 1

    def test_audit_default_stale(self) -> None:
        assert build_parser().parse_args(["audit"]).stale_days == 90


class TestCapture:
    def test_snippet_creates_thread(self, capsys) -> None:
        assert main(["snippet", "auth", "Use JWT", "--tags", "decision"]) == 0
        assert "Created thread 'auth'" in capsys.readouterr().out
        thread = get_thread_store().load()["auth"]
        assert thread.snippets[0].tags == ["decision"]
        assert thread.snippets[0].source == "manual"

    def test_snippet_from_stdin(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.stdin", io.StringIO("piped text"))
        assert main(["snippet", "auth"]) == 0
        assert get_thread_store().load()["auth"].snippets[0].content == "piped text"

    def test_snippet_from_file(self, tmp_path: Path) -> None:
        notes = tmp_path / "notes.md"
        notes.write_text("from a file")
        assert main(["snippet", "auth", "--file", str(notes)]) == 0
        assert get_thread_store().load()["auth"].snippets[0].content == "from a file"

    def test_snippet_json(self, capsys) -> None:
        main(["snippet", "auth", "x", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data == {"thread_id": "auth", "snippet_index": 0, "created": True, "snippet_count": 1}

    def test_create_duplicate_fails(self, capsys) -> None:
        assert main(["create", "auth"]) == 0
        assert main(["create", "auth"]) == 1
        assert "Error: Thread 'auth' already exists." in capsys.readouterr().err

    def test_attach_and_explain(self, src_file: Path, capsys) -> None:
        main(["snippet", "auth", "Why auth.py exists"])
        assert main(["attach", "auth", str(src_file)]) == 0
        capsys.readouterr()
        assert main(["explain", str(src_file)]) == 0
        assert "Why auth.py exists" in capsys.readouterr().out

    def test_attach_missing_thread(self, src_file: Path, capsys) -> None:
        assert main(["attach", "ghost", str(src_file)]) == 1
        assert "not found" in capsys.readouterr().err


class TestBrowse:
    def test_show_json(self, capsys) -> None:
        main(["snippet", "auth", "one", "--tags", "a"])
        main(["snippet", "auth", "two"])
        capsys.readouterr()
        assert main(["show", "auth", "--tag", "a", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [s["content"] for s in data["thread"]["snippets"]] == ["one"]

    def test_show_missing(self, capsys) -> None:
        assert main(["show", "ghost"]) == 1
        assert capsys.readouterr().err.startswith("Error:")

    def test_list(self, capsys) -> None:
        main(["create", "auth", "--summary", "Login"])
        capsys.readouterr()
        assert main(["list"]) == 0
        assert "auth" in capsys.readouterr().out

    def test_list_clear_pending(self, src_file: Path) -> None:
        main(["track", str(src_file)])
        assert main(["list", "--clear-pending"]) == 0
        assert get_pending_store().load() == []

    def test_search_empty_query(self, capsys) -> None:
        assert main(["search", " "]) == 1
        assert "empty" in capsys.readouterr().err

    def test_status_json(self, capsys) -> None:
        assert main(["status", "--json"]) == 0
        assert json.loads(capsys.readouterr().out)["semantic_index"] is False

    def test_semantic_search_without_index(self, capsys) -> None:
        main(["create", "auth"])
        assert main(["semantic-search", "tokens"]) == 1
        assert "reindex" in capsys.readouterr().err


class TestTrack:
    def test_silent_success(self, src_file: Path, capsys) -> None:
        assert main(["track", str(src_file)]) == 0
        assert capsys.readouterr().out == ""
        assert get_pending_store().load()[0].path == str(src_file)

    def test_verbose(self, src_file: Path, capsys) -> None:
        main(["track", "--verbose", str(src_file)])
        assert "Tracked" in capsys.readouterr().out

    def test_failure_still_exits_0(self, monkeypatch: pytest.MonkeyPatch, src_file: Path) -> None:
        monkeypatch.setenv("THREADLINKING_LOCK_TIMEOUT", "not-a-number")
        assert main(["track", str(src_file)]) == 0

    def test_bad_log_level_still_exits_0(self, monkeypatch: pytest.MonkeyPatch, src_file: Path) -> None:
        monkeypatch.setenv("THREADLINKING_LOG_LEVEL", "LOUD")
        assert main(["track", str(src_file)]) == 0


class TestDestructive:
    def test_delete_with_yes(self) -> None:
        main(["create", "auth"])
        assert main(["delete", "auth", "--yes"]) == 0
        assert get_thread_store().load() == {}

    def test_delete_declined(self, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
        main(["create", "auth"])
        _answers(monkeypatch, "n")
        assert main(["delete", "auth"]) == 0
        assert "Aborted." in capsys.readouterr().out
        assert "auth" in get_thread_store().load()

    def test_delete_missing(self) -> None:
        assert main(["delete", "ghost", "--yes"]) == 1

    def test_clear_needs_both_confirmations(self, monkeypatch: pytest.MonkeyPatch) -> None:
        main(["create", "auth"])
        _answers(monkeypatch, "y", "nope")
        main(["clear"])
        assert "auth" in get_thread_store().load()

        _answers(monkeypatch, "y", "clear")
        assert main(["clear"]) == 0
        assert get_thread_store().load() == {}

    def test_clear_empty(self, capsys) -> None:
        assert main(["clear", "--yes"]) == 0
        assert "Index is already empty." in capsys.readouterr().out

    def test_rename_and_update(self) -> None:
        main(["create", "old"])
        assert main(["rename", "old", "new"]) == 0
        assert main(["update", "new", "--summary", "Renamed"]) == 0
        assert get_thread_store().load()["new"].summary == "Renamed"


class TestContext:
    @pytest.fixture
    def project(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
        root = tmp_path / "webapp"
        root.mkdir()
        (root / "package.json").write_text("{}")
        monkeypatch.setenv("HOME", str(tmp_path / "user"))
        monkeypatch.chdir(root)
        not_a_repo = subprocess.CalledProcessError(128, ["git"])
        with patch("threadlinking.tools.context.subprocess.run", side_effect=not_a_repo):
            yield root

    def test_silent_without_data(self, project: Path, capsys) -> None:
        assert main(["context"]) == 0
        assert capsys.readouterr().out == ""

    def test_project_summary(self, project: Path, capsys) -> None:
        src = project / "app.js"
        src.write_text("")
        main(["snippet", "webapp-ui", "Layout choices"])
        main(["attach", "webapp-ui", str(src)])
        capsys.readouterr()

        assert main(["context"]) == 0
        out = capsys.readouterr().out
        assert "=== Threadlinking: webapp ===" in out
        assert "Threads: webapp-ui" in out

    def test_json_and_global(self, project: Path, capsys) -> None:
        main(["create", "unrelated"])
        capsys.readouterr()

        assert main(["context", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["project"] == "webapp"
        assert data["threads"] == []

        assert main(["context", "--global", "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [t["id"] for t in data["threads"]] == ["unrelated"]
