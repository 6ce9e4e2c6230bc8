"""Thin wrapper around the `git` executable.

Nothing here parses output: every call returns the raw text (or bytes) of a
successful command, or raises a typed failure.
"""
from __future__ import annotations

import enum
import logging
import os
import subprocess
from pathlib import PurePosixPath
from typing import Optional

import pygit2

from garch.config import DEFAULT_GIT
from garch.errors import GitCommandFailure, InvalidEncoding

logger = logging.getLogger(__name__)

# exit status reported when the executable itself cannot be started
MISSING_EXECUTABLE = 127

# print non-ASCII paths verbatim instead of C-quoted
GIT_OPTIONS = ["-c", "core.quotePath=false"]


class Operation(enum.Enum):
    LOG = "log"
    BLAME = "blame"
    SHOW = "show"


def find_repo_root(path: str) -> Optional[str]:
    """Return the working tree root of the repository containing `path`.

    Returns None when `path` is not inside a non-bare repository.
    """
    start = os.path.abspath(path)
    if not os.path.isdir(start):
        start = os.path.dirname(start) or os.getcwd()
    gitdir = pygit2.discover_repository(start)
    if not gitdir:
        return None
    repo = pygit2.Repository(gitdir)
    workdir = repo.workdir
    if not workdir:
        return None
    return os.path.abspath(workdir)


class GitCommand:
    """Run `git <operation> <args>` inside one repository."""

    def __init__(self, repo_root: str, executable: str = DEFAULT_GIT) -> None:
        self.repo_root = os.path.abspath(repo_root)
        self.executable = executable

    @classmethod
    def for_path(cls, path: str, executable: str = DEFAULT_GIT) -> Optional["GitCommand"]:
        root = find_repo_root(path)
        if root is None:
            return None
        return cls(root, executable)

    def relative_path(self, path: str) -> str:
        """Repository-relative POSIX form of `path` (as git prints it)."""
        rel = os.path.relpath(os.path.abspath(path), self.repo_root)
        return PurePosixPath(*rel.split(os.sep)).as_posix()

    def run_bytes(self, operation: Operation, args: list[str]) -> bytes:
        cmd = [self.executable, *GIT_OPTIONS, operation.value, *args]
        logger.debug(f"GitCommand.run: {cmd}")
        try:
            proc = subprocess.run(cmd, cwd=self.repo_root, capture_output=True)
        except FileNotFoundError as exc:
            raise GitCommandFailure(MISSING_EXECUTABLE, f"{self.executable}: {exc.strerror}", cmd) from exc
        except OSError as exc:
            raise GitCommandFailure(MISSING_EXECUTABLE, str(exc), cmd) from exc
        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace")
            logger.debug(f"GitCommand.run: {operation.value} failed ({proc.returncode}): {stderr.strip()}")
            raise GitCommandFailure(proc.returncode, stderr, cmd)
        return proc.stdout

    def run(self, operation: Operation, args: list[str]) -> str:
        raw = self.run_bytes(operation, args)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidEncoding(operation.value, raw, f"at byte {exc.start}") from exc
