"""Tests for the command line front end."""

import pytest

from conftest import FakeGit, three_commit_outputs

import garch.cli
from garch.cli import build_parser, main
from garch.errors import EmptyRange, NoHistory
from garch.history import HistoryAssembler
from garch.models import LineRange
from garch.viewer import HistoryViewer


@pytest.fixture(autouse=True)
def quiet_environment(monkeypatch):
    for name in ("GARCH_GIT", "GARCH_JOBS", "GARCH_LOG_FILE", "GARCH_THEME"):
        monkeypatch.delenv(name, raising=False)
    # logging setup is covered in test_config; keep pytest's handlers in place
    monkeypatch.setattr(garch.cli, "setup_logging", lambda log_file: None)


@pytest.fixture
def captured_load(monkeypatch):
    """Replace assembly with the canned 3-commit history and record the call."""
    calls = []

    def fake_assemble(path, line_range=None, reverse=False, jobs=1, git_executable="git", token=None):
        calls.append(dict(path=path, line_range=line_range, reverse=reverse, jobs=jobs, git=git_executable))
        return HistoryAssembler(FakeGit(*three_commit_outputs())).assemble(
            path, line_range, reverse=reverse
        )

    monkeypatch.setattr(garch.cli, "assemble_path", fake_assemble)
    return calls


@pytest.fixture
def viewer_runs(monkeypatch):
    runs = []
    monkeypatch.setattr(HistoryViewer, "run", lambda self: runs.append(self))
    return runs


class TestParser:
    def test_lines_command(self):
        args = build_parser().parse_args(["lines", "src/a.py:3-5", "--reverse"])
        assert args.command == "lines"
        assert args.file_range == "src/a.py:3-5"
        assert args.reverse

    def test_file_command_with_range(self):
        args = build_parser().parse_args(["file", "a.txt", "-L", "2-4", "-j", "3"])
        assert args.path == "a.txt"
        assert args.line_range == LineRange(2, 4)
        assert args.jobs == 3
        assert not args.reverse

    @pytest.mark.parametrize(
        "argv",
        [
            [],
            ["file"],
            ["file", "a.txt", "--range", "9-3"],
            ["file", "a.txt", "--jobs", "0"],
            ["blame", "a.txt"],
        ],
    )
    def test_usage_errors_exit_2(self, argv, capsys):
        with pytest.raises(SystemExit) as info:
            build_parser().parse_args(argv)
        assert info.value.code == 2

    def test_lines_without_range_is_a_usage_error(self, capsys):
        with pytest.raises(SystemExit) as info:
            main(["lines", "a.txt"])
        assert info.value.code == 2
        assert "PATH:START[-END]" in capsys.readouterr().err


class TestMain:
    def test_lines_runs_viewer(self, captured_load, viewer_runs):
        assert main(["lines", "a.txt:1-2", "--reverse", "--jobs", "2"]) == 0
        assert captured_load == [dict(path="a.txt", line_range=LineRange(1, 2), reverse=True, jobs=2, git="git")]
        (app,) = viewer_runs
        assert app.file_history.reverse
        assert app.nav_state.version_index == 0

    def test_file_mode_reports_loading(self, captured_load, viewer_runs, capsys):
        assert main(["file", "a.txt"]) == 0
        assert "Loading file history for a.txt..." in capsys.readouterr().err
        assert captured_load[0]["line_range"] is None

    def test_environment_then_flags(self, captured_load, viewer_runs, monkeypatch):
        monkeypatch.setenv("GARCH_JOBS", "4")
        monkeypatch.setenv("GARCH_GIT", "/opt/git/bin/git")
        main(["file", "a.txt"])
        main(["file", "a.txt", "--jobs", "1", "--git", "git"])
        assert [(c["jobs"], c["git"]) for c in captured_load] == [(4, "/opt/git/bin/git"), (1, "git")]

    @pytest.mark.parametrize(
        "error",
        [
            NoHistory("No history found for a.txt:3-5"),
            EmptyRange("Lines 90-95 do not exist in any version of a.txt"),
        ],
    )
    def test_assembly_failure_exits_1(self, error, monkeypatch, viewer_runs, capsys):
        def failing(*args, **kwargs):
            raise error

        monkeypatch.setattr(garch.cli, "assemble_path", failing)
        assert main(["lines", "a.txt:3-5"]) == 1
        assert capsys.readouterr().err.strip() == f"garch: {error}"
        assert viewer_runs == []
