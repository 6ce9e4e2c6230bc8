"""Immutable records produced by the history-assembly pipeline."""
from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass, field
from typing import Iterator, Optional


@dataclass(frozen=True)
class CommitInfo:
    hash: str
    date: datetime.datetime
    author: str
    message: str

    @property
    def short_hash(self) -> str:
        return self.hash[:7]

    @property
    def summary(self) -> str:
        """First line of the commit message."""
        return self.message.splitlines()[0] if self.message else ""


@dataclass(frozen=True)
class BlameLine:
    line_number: int
    author: str
    date: datetime.datetime
    commit_hash: str
    content: str


class ChangeType(enum.Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    CONTEXT = "context"


@dataclass(frozen=True)
class LineChange:
    """One line of a commit's diff against its parent.

    `line_number` is the position in the new file, except for REMOVED
    entries which keep their position in the old file.
    """

    line_number: int
    change_type: ChangeType
    content: str
    previous_content: Optional[str] = None


@dataclass(frozen=True)
class LineRange:
    """Inclusive 1-based range; `end=None` runs to the end of the file."""

    start: int = 1
    end: Optional[int] = None

    def __post_init__(self) -> None:
        if self.start < 1:
            raise ValueError(f"line range must start at 1 or later, got {self.start}")
        if self.end is not None and self.end < self.start:
            raise ValueError(f"line range end {self.end} is before start {self.start}")

    @classmethod
    def parse(cls, text: str) -> "LineRange":
        """Parse `N` or `N-M` (also `N,M`)."""
        text = text.strip()
        for sep in ("-", ","):
            if sep in text:
                start, _, end = text.partition(sep)
                return cls(int(start), int(end) if end.strip() else None)
        line = int(text)
        return cls(line, line)

    def contains(self, line_number: int) -> bool:
        if line_number < self.start:
            return False
        return self.end is None or line_number <= self.end

    def git_spec(self) -> str:
        """Range in the form `git log -L` expects."""
        if self.end is None:
            return f"{self.start},"
        return f"{self.start},{self.end}"

    def __str__(self) -> str:
        if self.end is None:
            return f"{self.start}-"
        if self.end == self.start:
            return str(self.start)
        return f"{self.start}-{self.end}"


@dataclass(frozen=True)
class FileVersion:
    commit: CommitInfo
    path: str
    blame_lines: tuple[BlameLine, ...] = ()
    changes: tuple[LineChange, ...] = ()

    @property
    def content(self) -> str:
        return "\n".join(line.content for line in self.blame_lines)

    @property
    def removed_count(self) -> int:
        return sum(1 for c in self.changes if c.change_type is ChangeType.REMOVED)

    def change_for(self, line_number: int) -> Optional[LineChange]:
        """The ADDED/MODIFIED change landing on `line_number`, if any."""
        for change in self.changes:
            if change.line_number != line_number:
                continue
            if change.change_type in (ChangeType.ADDED, ChangeType.MODIFIED):
                return change
        return None


@dataclass(frozen=True)
class SkippedCommit:
    commit_hash: str
    reason: str


@dataclass(frozen=True)
class History:
    """The assembled, read-only version sequence of one navigation session."""

    path: str
    versions: tuple[FileVersion, ...]
    line_range: Optional[LineRange] = None
    reverse: bool = False
    skipped: tuple[SkippedCommit, ...] = field(default=())

    def __len__(self) -> int:
        return len(self.versions)

    def __getitem__(self, index: int) -> FileVersion:
        return self.versions[index]

    def __iter__(self) -> Iterator[FileVersion]:
        return iter(self.versions)

    @property
    def label(self) -> str:
        if self.line_range is None:
            return self.path
        return f"{self.path}:{self.line_range}"
