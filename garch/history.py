"""Assemble the ordered version sequence of a file or line range.

The history log names the commits touching the target; each commit then gets
its blame snapshot and its diff against its parent. A commit whose data
cannot be read is dropped and reported in `History.skipped`: one corrupt
historical object must not hide the rest of the history.
"""
from __future__ import annotations

import datetime
import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Optional

from garch.blame import parse_blame
from garch.diff import parse_diff
from garch.errors import (
    AssemblyCancelled,
    EmptyRange,
    GarchError,
    GitCommandFailure,
    InvalidEncoding,
    NoHistory,
)
from garch.git_commands import GitCommand, Operation
from garch.models import (
    BlameLine,
    CommitInfo,
    FileVersion,
    History,
    LineChange,
    LineRange,
    SkippedCommit,
)

logger = logging.getLogger(__name__)

RECORD_SEP = "\x1e"
FIELD_SEP = "\x1f"
# hash, author date (strict ISO 8601), author name, raw message
LOG_FORMAT = f"--format={RECORD_SEP}%H{FIELD_SEP}%aI{FIELD_SEP}%an{FIELD_SEP}%B{FIELD_SEP}"

PATCH_PATH_RE = re.compile(r'^\+\+\+ ("?)b/(.+)\1$', re.MULTILINE)
C_ESCAPES = {
    "a": b"\a", "b": b"\b", "f": b"\f", "n": b"\n", "r": b"\r",
    "t": b"\t", "v": b"\v", "\"": b"\"", "\\": b"\\",
}
# `git log -L` complaint when the range starts past the end of the file
RANGE_BEYOND_EOF_RE = re.compile(r"has only \d+ lines?")


class SessionToken:
    """Cancellation flag shared by one navigation session's assembly."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class LogEntry:
    commit: CommitInfo
    path: str


def parse_log(text: str, default_path: str) -> list[LogEntry]:
    """Parse `git log` output produced with LOG_FORMAT.

    Whatever follows a record's fields is either the `--name-only` file list
    or the `-L` patch; the first path found there is the file's name at that
    commit.
    """
    entries: list[LogEntry] = []
    seen: set[str] = set()
    for record in text.split(RECORD_SEP):
        if not record.strip():
            continue
        fields = record.split(FIELD_SEP, 4)
        if len(fields) < 5:
            logger.debug(f"parse_log: skipping short record {record[:60]!r}")
            continue
        commit_hash, date_text, author, message, trailer = fields
        try:
            date = datetime.datetime.fromisoformat(date_text.strip())
        except ValueError:
            logger.debug(f"parse_log: bad date {date_text!r} for {commit_hash}")
            continue
        commit_hash = commit_hash.strip()
        if commit_hash in seen:
            continue
        seen.add(commit_hash)
        path = _path_from_trailer(trailer) or default_path
        commit = CommitInfo(
            hash=commit_hash,
            date=date,
            author=author.strip(),
            message=message.strip(),
        )
        entries.append(LogEntry(commit, path))
    return entries


def _unquote_path(name: str) -> str:
    """Undo git's C-style quoting of a path (`"d\\303\\251j\\303\\240.txt"`)."""
    if len(name) < 2 or not (name.startswith('"') and name.endswith('"')):
        return name
    body = name[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\" or i + 1 == len(body):
            out += ch.encode("utf-8")
            i += 1
            continue
        nxt = body[i + 1]
        octal = body[i + 1:i + 4]
        if len(octal) == 3 and all(c in "01234567" for c in octal):
            out.append(int(octal, 8) & 0xFF)
            i += 4
            continue
        out += C_ESCAPES.get(nxt, nxt.encode("utf-8"))
        i += 2
    return out.decode("utf-8", errors="replace")


def _path_from_trailer(trailer: str) -> Optional[str]:
    m = PATCH_PATH_RE.search(trailer)
    if m:
        quote, name = m.group(1), m.group(2)
        return _unquote_path(f'"{name}"') if quote else name
    for line in trailer.splitlines():
        line = line.strip()
        if line and not line.startswith(("diff ", "@@", "---", "+++")):
            return _unquote_path(line)
    return None


class HistoryAssembler:
    """Build `History` objects from git output."""

    def __init__(self, git: GitCommand) -> None:
        self.git = git

    def assemble(
        self,
        path: str,
        line_range: Optional[LineRange] = None,
        reverse: bool = False,
        jobs: int = 1,
        token: Optional[SessionToken] = None,
    ) -> History:
        """Return the version sequence of `path` (repository-relative).

        Raises NoHistory when the log cannot be read or lists nothing, and
        EmptyRange when `line_range` never existed in any version.
        """
        token = token or SessionToken()
        label = path if line_range is None else f"{path}:{line_range}"
        entries = self._read_log(path, line_range, label)
        # git log lists newest first; a stable date sort keeps its order for ties
        entries.reverse()
        entries.sort(key=lambda e: e.commit.date)
        logger.debug(f"HistoryAssembler.assemble: {len(entries)} commits for {label}")

        skipped: list[SkippedCommit] = []
        blames = self._fetch_all(entries, self._blame_for, jobs, token, skipped, "blame")
        survivors = [e for e in entries if e.commit.hash in blames]

        # the earliest surviving commit has no predecessor: no diff to read
        diff_targets = survivors[1:]
        diffs = self._fetch_all(diff_targets, self._changes_for, jobs, token, skipped, "diff")

        versions: list[FileVersion] = []
        for index, entry in enumerate(survivors):
            commit_hash = entry.commit.hash
            if index > 0 and commit_hash not in diffs:
                continue
            blame_lines = blames[commit_hash]
            changes = diffs.get(commit_hash, []) if index > 0 else []
            if line_range is not None:
                blame_lines = [b for b in blame_lines if line_range.contains(b.line_number)]
                changes = [c for c in changes if line_range.contains(c.line_number)]
            versions.append(
                FileVersion(
                    commit=entry.commit,
                    path=entry.path,
                    blame_lines=tuple(blame_lines),
                    changes=tuple(changes),
                )
            )

        if token.cancelled:
            raise AssemblyCancelled(f"assembly of {label} was cancelled")
        if not versions:
            raise NoHistory(f"No readable history found for {label}")
        if line_range is not None and not any(v.blame_lines for v in versions):
            raise EmptyRange(f"Lines {line_range} do not exist in any version of {path}")

        if reverse:
            versions.reverse()
        return History(
            path=path,
            versions=tuple(versions),
            line_range=line_range,
            reverse=reverse,
            skipped=tuple(skipped),
        )

    def _read_log(self, path: str, line_range: Optional[LineRange], label: str) -> list[LogEntry]:
        if line_range is None:
            # merges list the files they changed against their first parent
            args = [
                "--follow", "--name-only", "--diff-merges=first-parent", "--no-color",
                LOG_FORMAT, "--", path,
            ]
        else:
            args = ["--no-color", "--no-ext-diff", LOG_FORMAT, "-L", f"{line_range.git_spec()}:{path}"]
        try:
            text = self.git.run(Operation.LOG, args)
        except InvalidEncoding as exc:
            logger.warning(f"HistoryAssembler: {exc}; using placeholder text")
            text = exc.placeholder_text()
        except GitCommandFailure as exc:
            logger.debug(f"HistoryAssembler._read_log: {exc}")
            if line_range is not None and RANGE_BEYOND_EOF_RE.search(exc.stderr_text):
                raise EmptyRange(f"Lines {line_range} do not exist in {path}") from exc
            raise NoHistory(f"No history found for {label}") from exc
        entries = parse_log(text, path)
        if not entries:
            raise NoHistory(f"No history found for {label}")
        return entries

    def _fetch_all(
        self,
        entries: list[LogEntry],
        fetch,
        jobs: int,
        token: SessionToken,
        skipped: list[SkippedCommit],
        what: str,
    ) -> dict:
        """Run `fetch(entry)` for every entry, keyed by commit hash.

        Failures are logged and appended to `skipped`, in log order whatever
        order the workers finish in.
        """
        results: dict = {}
        failures: dict[str, str] = {}

        def _one(entry: LogEntry):
            if token.cancelled:
                raise AssemblyCancelled("cancelled")
            return fetch(entry)

        if jobs > 1 and len(entries) > 1:
            with ThreadPoolExecutor(max_workers=jobs) as executor:
                futures = {executor.submit(_one, e): e.commit.hash for e in entries}
                for future in as_completed(futures):
                    commit_hash = futures[future]
                    try:
                        results[commit_hash] = future.result()
                    except AssemblyCancelled:
                        continue
                    except GarchError as exc:
                        failures[commit_hash] = f"{what}: {exc}"
        else:
            for entry in entries:
                if token.cancelled:
                    break
                try:
                    results[entry.commit.hash] = fetch(entry)
                except GarchError as exc:
                    failures[entry.commit.hash] = f"{what}: {exc}"

        if token.cancelled:
            raise AssemblyCancelled("assembly was cancelled")
        for entry in entries:
            reason = failures.get(entry.commit.hash)
            if reason is not None:
                logger.warning(f"skipping commit {entry.commit.short_hash}: {reason}")
                skipped.append(SkippedCommit(entry.commit.hash, reason))
        return results

    def _blame_for(self, entry: LogEntry) -> list[BlameLine]:
        raw = self.git.run_bytes(
            Operation.BLAME, ["--line-porcelain", entry.commit.hash, "--", entry.path]
        )
        return parse_blame(raw)

    def _changes_for(self, entry: LogEntry) -> list[LineChange]:
        # merges are diffed against their first parent only
        args = [
            "--format=", "--no-color", "--no-ext-diff", "-m", "--first-parent",
            entry.commit.hash, "--", entry.path,
        ]
        try:
            text = self.git.run(Operation.SHOW, args)
        except InvalidEncoding as exc:
            logger.debug(f"HistoryAssembler._changes_for: {exc}; using placeholder text")
            text = exc.placeholder_text()
        return parse_diff(text)


def parse_target(text: str) -> tuple[str, Optional[LineRange]]:
    """Split `path[:START[-END]]` into a path and an optional range.

    A suffix after the last colon that is not a line range is treated as
    part of the path.
    """
    path, sep, suffix = text.rpartition(":")
    if sep and path and suffix and suffix[0].isdigit():
        try:
            return path, LineRange.parse(suffix)
        except ValueError:
            pass
    return text, None


def assemble_path(
    path: str,
    line_range: Optional[LineRange] = None,
    reverse: bool = False,
    jobs: int = 1,
    git_executable: str = "git",
    token: Optional[SessionToken] = None,
) -> History:
    """Locate the repository holding `path` and assemble its history."""
    git = GitCommand.for_path(path, git_executable)
    if git is None:
        raise NoHistory(f"{path} is not inside a git repository")
    relative = git.relative_path(path)
    return HistoryAssembler(git).assemble(relative, line_range, reverse=reverse, jobs=jobs, token=token)
