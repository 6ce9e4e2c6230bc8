"""Parser for `git blame --porcelain` / `--line-porcelain` output.

Porcelain output is a series of entries. Each entry opens with a header
line::

    <hash> <orig-line> <final-line> [<group-size>]

followed by `key value` metadata lines in no guaranteed order and finally the
line's content prefixed with a tab. `--porcelain` only prints the metadata the
first time a commit appears, so metadata is remembered per commit hash.
"""
from __future__ import annotations

import datetime
import logging
import re
from typing import Optional, Union

from garch.errors import MalformedBlame
from garch.models import BlameLine

logger = logging.getLogger(__name__)

HEADER_RE = re.compile(r"^\^?([0-9a-fA-F]{7,64}) (\d+) (\d+)(?: (\d+))?$")
TZ_RE = re.compile(r"^([+-])(\d{2})(\d{2})$")


def _parse_tz(value: Optional[str]) -> datetime.timezone:
    m = TZ_RE.match(value or "")
    if not m:
        return datetime.timezone.utc
    sign = -1 if m.group(1) == "-" else 1
    offset = datetime.timedelta(hours=int(m.group(2)), minutes=int(m.group(3)))
    return datetime.timezone(sign * offset)


def _decode(raw_line: bytes) -> str:
    return raw_line.decode("utf-8", errors="replace")


def _split_lines(raw: Union[bytes, str]) -> list[str]:
    # only split on "\n": content may legitimately hold "\r" or form feeds
    if isinstance(raw, bytes):
        return [_decode(line) for line in raw.split(b"\n")]
    return raw.split("\n")


class _Entry:
    """Metadata accumulated for one commit hash."""

    def __init__(self, commit_hash: str) -> None:
        self.commit_hash = commit_hash
        self.fields: dict[str, str] = {}

    def finalize(self, line_number: int, content: str) -> BlameLine:
        timestamp = self.fields.get("author-time")
        if timestamp is None:
            raise MalformedBlame(f"line {line_number}: commit {self.commit_hash[:7]} has no author-time")
        try:
            epoch = int(timestamp)
        except ValueError:
            raise MalformedBlame(f"line {line_number}: bad author-time {timestamp!r}") from None
        date = datetime.datetime.fromtimestamp(epoch, tz=_parse_tz(self.fields.get("author-tz")))
        return BlameLine(
            line_number=line_number,
            author=self.fields.get("author", ""),
            date=date,
            commit_hash=self.commit_hash,
            content=content,
        )


def parse_blame(raw: Union[bytes, str]) -> list[BlameLine]:
    """Parse porcelain blame output into BlameLines ordered by line number.

    Raises MalformedBlame for a content line with no header before it, a
    commit without an author time, or line numbers that are not exactly
    1..K.
    """
    entries: dict[str, _Entry] = {}
    current: Optional[_Entry] = None
    final_line = 0
    result: list[BlameLine] = []

    for lineno, line in enumerate(_split_lines(raw), start=1):
        if line.startswith("\t"):
            if current is None:
                raise MalformedBlame(f"output line {lineno}: content line without a commit header")
            result.append(current.finalize(final_line, line[1:]))
            current = None
            continue
        if not line:
            continue
        header = HEADER_RE.match(line)
        if header:
            commit_hash = header.group(1).lower()
            current = entries.setdefault(commit_hash, _Entry(commit_hash))
            final_line = int(header.group(3))
            continue
        if current is None:
            # metadata outside an entry: nothing to attach it to
            logger.debug(f"parse_blame: ignoring stray line {lineno}: {line[:40]!r}")
            continue
        key, _, value = line.partition(" ")
        current.fields[key] = value

    if current is not None:
        raise MalformedBlame(f"commit {current.commit_hash[:7]} header has no content line")

    result.sort(key=lambda b: b.line_number)
    for expected, blame_line in enumerate(result, start=1):
        if blame_line.line_number != expected:
            raise MalformedBlame(
                f"missing blame entry for line {expected} (found line {blame_line.line_number})"
            )
    return result
