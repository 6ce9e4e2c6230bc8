"""Shared fixtures: canned git output and a fake command adapter."""

import shutil

import pytest

from garch.errors import GitCommandFailure
from garch.git_commands import Operation
from garch.history import FIELD_SEP, RECORD_SEP

HASH_OLD = "1" * 40
HASH_MID = "2" * 40
HASH_NEW = "3" * 40

EPOCH_OLD = 1704067200  # 2024-01-01
EPOCH_MID = 1706745600  # 2024-02-01
EPOCH_NEW = 1709251200  # 2024-03-01


def make_log(records, name_only=True):
    """git log output in LOG_FORMAT; `records` newest first.

    Each record is (hash, iso_date, author, message, path).
    """
    out = []
    for commit_hash, date, author, message, path in records:
        record = f"{RECORD_SEP}{commit_hash}{FIELD_SEP}{date}{FIELD_SEP}{author}{FIELD_SEP}{message}\n{FIELD_SEP}"
        if name_only:
            record += f"\n\n{path}\n"
        else:
            record += (
                f"\ndiff --git a/{path} b/{path}\n--- a/{path}\n+++ b/{path}\n"
                "@@ -1,1 +1,1 @@\n-x\n+y\n\n"
            )
        out.append(record)
    return "".join(out)


def make_blame(lines, summary="commit", filename="a.txt"):
    """--line-porcelain output for (hash, author, epoch, content) tuples."""
    out = []
    for number, (commit_hash, author, epoch, content) in enumerate(lines, start=1):
        out.append(
            f"{commit_hash} {number} {number} 1\n"
            f"author {author}\n"
            f"author-mail <{author.split()[0].lower()}@example.com>\n"
            f"author-time {epoch}\n"
            f"author-tz +0000\n"
            f"committer {author}\n"
            f"committer-mail <{author.split()[0].lower()}@example.com>\n"
            f"committer-time {epoch}\n"
            f"committer-tz +0000\n"
            f"summary {summary}\n"
            f"filename {filename}\n"
            f"\t{content}\n"
        )
    return "".join(out)


class FakeGit:
    """Stands in for GitCommand: answers from canned outputs, records calls.

    `blames` and `shows` map commit hash -> output text, or an exception
    instance to raise.
    """

    def __init__(self, log, blames, shows=None):
        self.log = log
        self.blames = blames
        self.shows = shows or {}
        self.calls = []

    def _answer(self, value):
        if isinstance(value, Exception):
            raise value
        return value

    def run(self, operation, args):
        self.calls.append((operation, list(args)))
        if operation is Operation.LOG:
            return self._answer(self.log)
        if operation is Operation.SHOW:
            commit_hash = args[-3]
            if commit_hash not in self.shows:
                raise GitCommandFailure(128, f"fatal: bad object {commit_hash}")
            return self._answer(self.shows[commit_hash])
        raise AssertionError(f"unexpected text operation {operation}")

    def run_bytes(self, operation, args):
        self.calls.append((operation, list(args)))
        assert operation is Operation.BLAME
        commit_hash = args[1]
        if commit_hash not in self.blames:
            raise GitCommandFailure(128, f"fatal: no such path in {commit_hash}")
        value = self._answer(self.blames[commit_hash])
        return value.encode("utf-8") if isinstance(value, str) else value

    def hashes_for(self, operation):
        return [args for op, args in self.calls if op is operation]


def three_commit_outputs():
    """The a.txt history: add two lines, modify line 1, add a third line."""
    log = make_log(
        [
            (HASH_NEW, "2024-03-01T00:00:00+00:00", "Carol Dev", "Add gamma", "a.txt"),
            (HASH_MID, "2024-02-01T00:00:00+00:00", "Bob Builder", "Shout alpha\n\nLonger body.", "a.txt"),
            (HASH_OLD, "2024-01-01T00:00:00+00:00", "Ann Author", "Initial", "a.txt"),
        ]
    )
    blames = {
        HASH_OLD: make_blame([
            (HASH_OLD, "Ann Author", EPOCH_OLD, "alpha"),
            (HASH_OLD, "Ann Author", EPOCH_OLD, "beta"),
        ]),
        HASH_MID: make_blame([
            (HASH_MID, "Bob Builder", EPOCH_MID, "ALPHA"),
            (HASH_OLD, "Ann Author", EPOCH_OLD, "beta"),
        ]),
        HASH_NEW: make_blame([
            (HASH_MID, "Bob Builder", EPOCH_MID, "ALPHA"),
            (HASH_OLD, "Ann Author", EPOCH_OLD, "beta"),
            (HASH_NEW, "Carol Dev", EPOCH_NEW, "gamma"),
        ]),
    }
    shows = {
        HASH_MID: (
            "diff --git a/a.txt b/a.txt\n"
            "index 1111111..2222222 100644\n"
            "--- a/a.txt\n"
            "+++ b/a.txt\n"
            "@@ -1,2 +1,2 @@\n"
            "-alpha\n"
            "+ALPHA\n"
            " beta\n"
        ),
        HASH_NEW: (
            "diff --git a/a.txt b/a.txt\n"
            "index 2222222..3333333 100644\n"
            "--- a/a.txt\n"
            "+++ b/a.txt\n"
            "@@ -1,2 +1,3 @@\n"
            " ALPHA\n"
            " beta\n"
            "+gamma\n"
        ),
    }
    return log, blames, shows


@pytest.fixture
def three_commit_git():
    log, blames, shows = three_commit_outputs()
    return FakeGit(log, blames, shows)


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


@pytest.fixture
def git_repo(tmp_path, monkeypatch):
    """Empty repository built with pygit2, plus a `commit(files, message, author, epoch)` helper."""
    pygit2 = pytest.importorskip("pygit2")
    # keep the user's git configuration out of the test
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("HOME", str(tmp_path))
    workdir = tmp_path / "repo"
    workdir.mkdir()
    repo = pygit2.init_repository(str(workdir))

    def commit(files, message, author="Ann Author", epoch=EPOCH_OLD):
        for name, content in files.items():
            target = workdir / name
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                target.write_bytes(content)
            else:
                target.write_text(content, encoding="utf-8")
        index = repo.index
        index.add_all()
        index.write()
        tree = index.write_tree()
        email = f"{author.split()[0].lower()}@example.com"
        sig = pygit2.Signature(author, email, epoch, 0)
        parents = [] if repo.head_is_unborn else [repo.head.target]
        return str(repo.create_commit("HEAD", sig, sig, message, tree, parents))

    commit.workdir = workdir
    commit.repo = repo
    return commit

