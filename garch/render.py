"""
Per-version drawable content and its session cache.

Highlighting goes through `rich.syntax`; the result for a commit never
changes within a session, so it is computed at most once per commit hash.
"""
from __future__ import annotations

import logging
import threading
import zlib
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from rich.syntax import Syntax
from rich.text import Text

from garch.config import AUTHOR_PALETTE, SYNTAX_THEME, TAB_SIZE
from garch.models import FileVersion

logger = logging.getLogger(__name__)

PLAIN_LANGUAGE = "text"


@dataclass(frozen=True)
class RenderedVersion:
    commit_hash: str
    language: str
    lines: tuple[Text, ...]
    author_colors: dict[str, str] = field(default_factory=dict)


def detect_language(path: str, code: Optional[str] = None) -> str:
    """Lexer name for `path`, falling back to plain text."""
    lexer = Syntax.guess_lexer(path, code)
    if not lexer or lexer == "default":
        return PLAIN_LANGUAGE
    return lexer


def author_color(author: str) -> str:
    # crc32 rather than hash(): the color must not change between runs
    return AUTHOR_PALETTE[zlib.crc32(author.encode("utf-8")) % len(AUTHOR_PALETTE)]


def abbreviate_author(author: str) -> str:
    """'Jane Quinn Doe' -> 'Jane Q.'; single names are kept whole."""
    parts = author.split()
    if len(parts) >= 2:
        return f"{parts[0]} {parts[1][0]}."
    return author


def display_text(content: str) -> str:
    """`content` as drawn: no trailing CR, tabs expanded."""
    return content.rstrip("\r").expandtabs(TAB_SIZE)


def wrap_spans(text: str, width: int) -> list[tuple[int, int]]:
    """(start, end) slices of `text`, one per row of at most `width` columns.

    A row breaks at its last space when that space lies past two thirds of
    the row, otherwise mid-word. Spaces at a break are dropped from both rows.
    An empty text still takes one row.
    """
    width = max(1, width)
    spans: list[tuple[int, int]] = []
    start = 0
    while True:
        chunk = min(width, len(text) - start)
        split = end = start + chunk
        if split < len(text):
            space = text.rfind(" ", start, split)
            if space - start > chunk * 2 // 3:
                split = space
            end = split
            while end > start and text[end - 1] == " ":
                end -= 1
            if end == start:
                end = split
        spans.append((start, end))
        start = split
        while start < len(text) and text[start].isspace():
            start += 1
        if start >= len(text):
            return spans


def highlight_lines(lines: Sequence[str], language: str, theme: str = SYNTAX_THEME) -> tuple[Text, ...]:
    """Highlight `lines` as one block and split the result back per line."""
    if not lines:
        return ()
    if language == PLAIN_LANGUAGE:
        return tuple(Text(line) for line in lines)
    code = "\n".join(lines)
    highlighted = Syntax(code, language, theme=theme).highlight(code)
    # highlighting must not change the line count; fall back to plain if it does
    split = highlighted.split("\n", allow_blank=True)
    parts = list(split)[: len(lines) + 1]
    if len(parts) == len(lines) + 1 and not parts[-1].plain:
        parts = parts[:-1]
    if len(parts) != len(lines):
        logger.debug(f"highlight_lines: {len(parts)} highlighted lines for {len(lines)}; using plain text")
        return tuple(Text(line) for line in lines)
    return tuple(parts)


def render_version(version: FileVersion, language: str, theme: str = SYNTAX_THEME) -> RenderedVersion:
    """Pure function of the version's content and the language tag."""
    contents = [display_text(b.content) for b in version.blame_lines]
    colors = {b.author: author_color(b.author) for b in version.blame_lines}
    return RenderedVersion(
        commit_hash=version.commit.hash,
        language=language,
        lines=highlight_lines(contents, language, theme),
        author_colors=colors,
    )


class RenderCache:
    """Rendered content keyed by commit hash, for one navigation session.

    There is no eviction: a session holds one entry per version at most.
    Concurrent requests for the same hash share a single computation, and an
    entry becomes visible only once it is complete.
    """

    def __init__(
        self,
        versions: Sequence[FileVersion],
        path: str,
        compute: Optional[Callable[[FileVersion, str], RenderedVersion]] = None,
        language: Optional[str] = None,
    ) -> None:
        self._versions = {v.commit.hash: v for v in versions}
        sample = versions[-1].content if versions else None
        self.language = language or detect_language(path, sample)
        self._compute = compute or render_version
        self._lock = threading.Lock()
        self._entries: dict[str, RenderedVersion] = {}
        self._pending: dict[str, Future] = {}

    def __contains__(self, commit_hash: str) -> bool:
        with self._lock:
            return commit_hash in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_or_compute(self, commit_hash: str) -> RenderedVersion:
        version = self._versions[commit_hash]
        with self._lock:
            entry = self._entries.get(commit_hash)
            if entry is not None:
                return entry
            future = self._pending.get(commit_hash)
            owner = future is None
            if owner:
                future = Future()
                self._pending[commit_hash] = future
        if not owner:
            return future.result()

        try:
            rendered = self._compute(version, self.language)
        except Exception as exc:
            with self._lock:
                del self._pending[commit_hash]
            future.set_exception(exc)
            raise
        with self._lock:
            self._entries[commit_hash] = rendered
            del self._pending[commit_hash]
        future.set_result(rendered)
        logger.debug(f"RenderCache: rendered {commit_hash[:7]} as {self.language}")
        return rendered
