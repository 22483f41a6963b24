"""Tests for project detection and the context summary."""
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from threadlinking.tools.context import detect_project_root, format_context, get_context
from threadlinking.tools.files import attach_file, track_file
from threadlinking.tools.threads import create_thread


def _git(stdout: str) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(["git"], 0, stdout=stdout, stderr="")


@pytest.fixture
def no_git():
    not_a_repo = subprocess.CalledProcessError(128, ["git"])
    with patch("threadlinking.tools.context.subprocess.run", side_effect=not_a_repo) as run:
        yield run


@pytest.fixture
def user_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "user"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def project(user_home: Path) -> Path:
    root = user_home / "code" / "webapp"
    (root / "src").mkdir(parents=True)
    (root / "pyproject.toml").write_text("[project]\nname = 'webapp'\n")
    return root


def _touch(path: Path) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("")
    return str(path)


class TestDetectProjectRoot:
    def test_git_toplevel_wins(self, project: Path) -> None:
        repo = project.parent
        with patch("threadlinking.tools.context.subprocess.run", return_value=_git(f"{repo}\n")) as run:
            assert detect_project_root(project / "src") == repo
        assert run.call_args.args[0] == ["git", "-C", str(project / "src"), "rev-parse", "--show-toplevel"]

    def test_git_repo_at_home_is_not_a_project(self, user_home: Path, project: Path) -> None:
        with patch("threadlinking.tools.context.subprocess.run", return_value=_git(f"{user_home}\n")):
            assert detect_project_root(project / "src") is None

    def test_marker_found_walking_up(self, project: Path, no_git) -> None:
        nested = project / "src" / "pkg"
        nested.mkdir()
        assert detect_project_root(nested) == project

    def test_marker_in_current_directory(self, project: Path, no_git) -> None:
        assert detect_project_root(project) == project

    def test_home_itself_is_never_a_project(self, user_home: Path, no_git) -> None:
        (user_home / "CLAUDE.md").write_text("")
        assert detect_project_root(user_home) is None
        no_git.assert_not_called()

    def test_search_stops_below_home(self, user_home: Path, no_git) -> None:
        (user_home / "package.json").write_text("{}")
        loose = user_home / "scratch"
        loose.mkdir()
        assert detect_project_root(loose) is None

    def test_missing_git_binary_falls_back_to_markers(self, project: Path) -> None:
        with patch("threadlinking.tools.context.subprocess.run", side_effect=FileNotFoundError("git")):
            assert detect_project_root(project / "src") == project


class TestGetContext:
    def test_scoped_to_project(self, project: Path, user_home: Path, no_git) -> None:
        create_thread("webapp-auth", summary="Auth design")
        attach_file("webapp-auth", _touch(project / "src" / "auth.py"))
        create_thread("elsewhere")
        attach_file("elsewhere", _touch(user_home / "other" / "main.py"))
        track_file(_touch(project / "src" / "views.py"))
        track_file(_touch(user_home / "other" / "util.py"))

        result = get_context(cwd=project / "src")

        assert result.success
        data = result.data
        assert data["project"] == "webapp"
        assert data["project_root"] == str(project)
        assert data["threads"] == [
            {"id": "webapp-auth", "summary": "Auth design", "snippet_count": 0, "file_count": 1},
        ]
        assert [p["basename"] for p in data["pending"]] == ["views.py"]
        assert data["global"] == {"total_threads": 2, "total_pending": 2}

    def test_sibling_directory_with_shared_prefix_is_excluded(self, project: Path, no_git) -> None:
        create_thread("neighbour")
        attach_file("neighbour", _touch(project.parent / "webapp-old" / "a.py"))
        assert get_context(cwd=project).data["threads"] == []

    def test_global_view_lists_everything(self, project: Path, user_home: Path, no_git) -> None:
        create_thread("elsewhere")
        attach_file("elsewhere", _touch(user_home / "other" / "main.py"))
        data = get_context(cwd=project, global_view=True).data
        assert [t["id"] for t in data["threads"]] == ["elsewhere"]
        assert data["project"] == "webapp"

    def test_outside_a_project_is_global(self, user_home: Path, no_git) -> None:
        create_thread("anything")
        data = get_context(cwd=user_home).data
        assert data["project_root"] is None
        assert [t["id"] for t in data["threads"]] == ["anything"]

    def test_linked_pending_entries_are_hidden(self, project: Path, no_git) -> None:
        path = _touch(project / "src" / "auth.py")
        track_file(path)
        create_thread("auth")
        with patch("threadlinking.store.PendingStore.remove", return_value=False):
            attach_file("auth", path)
        assert get_context(cwd=project).data["pending"] == []


def _data(**overrides) -> dict:
    data = {
        "project": "webapp",
        "project_root": "/code/webapp",
        "threads": [],
        "pending": [],
        "global": {"total_threads": 4, "total_pending": 1},
    }
    data.update(overrides)
    return data


class TestFormatContext:
    def test_silent_without_any_data(self) -> None:
        assert format_context(_data(**{"global": {"total_threads": 0, "total_pending": 0}})) == ""

    def test_project_without_its_own_threads(self) -> None:
        text = format_context(_data())
        assert text.splitlines() == [
            "=== Threadlinking (webapp) ===",
            "No threads linked to this project.",
            "Global: 4 threads | 1 pending files",
            "=" * len("=== Threadlinking (webapp) ==="),
        ]

    def test_nothing_outside_a_project_is_silent(self) -> None:
        assert format_context(_data(project=None, project_root=None)) == ""

    def test_threads_and_pending(self) -> None:
        pending = [{"path": f"/code/webapp/f{i}.py", "basename": f"f{i}.py", "count": 1} for i in range(5)]
        threads = [
            {"id": "auth", "summary": "", "snippet_count": 1, "file_count": 1},
            {"id": "db", "summary": "", "snippet_count": 0, "file_count": 2},
        ]
        lines = format_context(_data(threads=threads, pending=pending)).splitlines()
        assert lines[0] == "=== Threadlinking: webapp ==="
        assert lines[1] == "Threads: auth, db"
        assert lines[2] == "Pending: 5 files not yet linked"
        assert lines[3:6] == ["  - f0.py", "  - f1.py", "  - f2.py"]
        assert lines[6] == "  ... and 2 more"
        assert lines[-1] == "=" * len(lines[0])

    def test_global_header_and_single_pending(self) -> None:
        pending = [{"path": "/tmp/x.py", "basename": "x.py", "count": 2}]
        lines = format_context(_data(project=None, project_root=None, pending=pending)).splitlines()
        assert lines[0] == "=== Threadlinking (Global) ==="
        assert lines[1] == "Pending: 1 file not yet linked"
