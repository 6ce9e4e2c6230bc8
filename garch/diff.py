"""Parser for unified diff output (`git show`, `git diff`)."""
from __future__ import annotations

import logging
import re

from garch.errors import MalformedDiff
from garch.models import ChangeType, LineChange

logger = logging.getLogger(__name__)

HUNK_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


class _Hunk:
    """Line counters for the hunk being read."""

    def __init__(self, header: str) -> None:
        m = HUNK_RE.match(header)
        if not m:
            raise MalformedDiff(f"bad hunk header: {header!r}")
        self.old_line = int(m.group(1))
        self.old_left = int(m.group(2)) if m.group(2) is not None else 1
        self.new_line = int(m.group(3))
        self.new_left = int(m.group(4)) if m.group(4) is not None else 1
        self.removed: list[tuple[int, str]] = []
        self.added: list[tuple[int, str]] = []

    @property
    def done(self) -> bool:
        return self.old_left <= 0 and self.new_left <= 0

    def flush(self, out: list[LineChange]) -> None:
        """Emit the pending remove/add runs.

        Runs of equal length are paired line by line into MODIFIED entries.
        Pairing is purely positional, it does not compare content.
        """
        if self.removed and len(self.removed) == len(self.added):
            for (_, old), (new_no, new) in zip(self.removed, self.added):
                out.append(LineChange(new_no, ChangeType.MODIFIED, new, old))
        else:
            for old_no, old in self.removed:
                out.append(LineChange(old_no, ChangeType.REMOVED, old))
            for new_no, new in self.added:
                out.append(LineChange(new_no, ChangeType.ADDED, new))
        self.removed = []
        self.added = []


def parse_diff(text: str, include_context: bool = False) -> list[LineChange]:
    """Turn unified diff text into an ordered list of LineChanges.

    Text outside hunks (commit headers, `diff --git`, `---`/`+++`) is
    skipped. Returns an empty list when there is no hunk at all, e.g. for a
    rename-only or binary change.
    """
    changes: list[LineChange] = []
    hunk = None

    # split on "\n" only: "\r" and form feeds are part of a line's content
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    for line in lines:
        if hunk is None:
            if line.startswith("@@"):
                hunk = _Hunk(line)
            continue

        if line.startswith("\\"):
            # "\ No newline at end of file"
            continue
        prefix, body = line[:1], line[1:]
        if prefix == "-" and hunk.old_left > 0:
            if hunk.added:
                # an addition run ended by a removal: not a replacement pair
                hunk.flush(changes)
            hunk.removed.append((hunk.old_line, body))
            hunk.old_line += 1
            hunk.old_left -= 1
        elif prefix == "+" and hunk.new_left > 0:
            hunk.added.append((hunk.new_line, body))
            hunk.new_line += 1
            hunk.new_left -= 1
        elif (prefix == " " or line == "") and hunk.old_left > 0 and hunk.new_left > 0:
            hunk.flush(changes)
            if include_context:
                changes.append(LineChange(hunk.new_line, ChangeType.CONTEXT, body))
            hunk.old_line += 1
            hunk.new_line += 1
            hunk.old_left -= 1
            hunk.new_left -= 1
        else:
            raise MalformedDiff(f"unexpected line inside hunk: {line[:60]!r}")

        if hunk.done:
            hunk.flush(changes)
            hunk = None

    if hunk is not None:
        raise MalformedDiff(
            f"diff ended inside a hunk ({hunk.old_left} old / {hunk.new_left} new lines missing)"
        )
    logger.debug(f"parse_diff: {len(changes)} changes")
    return changes
