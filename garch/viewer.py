"""
Textual viewer for an assembled file history.

The viewer owns the terminal (Textual restores it on every exit path) and
turns keys, mouse wheel and resize events into NavigationState transitions.
Drawing reads the current version from the History and its highlighted lines
from the session's RenderCache.
"""
from __future__ import annotations

import logging
import traceback
from functools import partial
from typing import Optional

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Input, Label, Static

from garch.config import MOUSE_SCROLL_LINES, Settings
from garch.errors import AssemblyCancelled, AssemblyFailure
from garch.history import SessionToken, assemble_path, parse_target
from garch.models import ChangeType, FileVersion, History, LineChange
from garch.navigation import (
    JumpBottom,
    JumpTop,
    NavigationState,
    NextVersion,
    PageDown,
    PageUp,
    PrevVersion,
    Quit,
    Resize,
    ScrollDown,
    ScrollUp,
)
from garch.render import (
    PLAIN_LANGUAGE,
    RenderCache,
    RenderedVersion,
    abbreviate_author,
    display_text,
    render_version,
    wrap_spans,
)

logger = logging.getLogger(__name__)

AUTHOR_WIDTH = 12
# wrap width never drops below this, however narrow the terminal
MIN_CONTENT_WIDTH = 10
FOOTER_HINTS = "← → : versions   ↑ ↓ PgUp PgDn Home End : scroll   o : open   ? : help   q : quit"

KEY_EVENTS = {
    "left": PrevVersion(),
    "right": NextVersion(),
    "up": ScrollUp(1),
    "down": ScrollDown(1),
    "pageup": PageUp(),
    "pagedown": PageDown(),
    "home": JumpTop(),
    "end": JumpBottom(),
}


class MessageModal(ModalScreen):
    """Simple modal that shows a message and closes on any key."""

    def __init__(self, message: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.message = message

    def compose(self) -> ComposeResult:
        yield Static(Text(self.message, style="bold"), id="modal-msg")

    def on_key(self, event: events.Key) -> None:
        """Close the modal on any key press."""
        event.stop()
        self.app.pop_screen()


HELP_TEXT = """\
garch - explore the evolution of a file through git history

Each screen shows one version of the file: the blame of every line as of
one commit. The oldest version comes first unless --reverse was given.

  ← / →         previous / next version
  ↑ / ↓         scroll one line
  PgUp / PgDn   scroll one page
  Home / End    top / bottom of the version
  mouse wheel   scroll three lines
  o             open another path, optionally with a range (PATH:10-20)
  ? / h         this help
  q / Q         quit

Gutter markers: `+` line added by this commit, `~` line modified by this
commit (the old text follows as `was: ...`). Lines removed by the commit are
counted in the footer.

Press any key to return.
"""


class OpenPathModal(ModalScreen[str]):
    """Prompt for a `PATH[:START-END]` target; dismisses with the text."""

    def compose(self) -> ComposeResult:
        with Vertical(id="open-box"):
            yield Label(Text("Open path (PATH or PATH:START-END), Esc to cancel", style="bold"))
            yield Input(placeholder="src/module.py:10-20", id="open-input")

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self.dismiss(event.value.strip())

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            event.stop()
            self.dismiss("")


class VersionView(Static):
    """Body widget: draws the visible window of the current version."""

    def on_resize(self, event: events.Resize) -> None:
        self.app.resize_viewport(event.size.width, event.size.height)

    def on_mouse_scroll_down(self, event: events.MouseScrollDown) -> None:
        event.stop()
        self.app.navigate(ScrollDown(MOUSE_SCROLL_LINES))

    def on_mouse_scroll_up(self, event: events.MouseScrollUp) -> None:
        event.stop()
        self.app.navigate(ScrollUp(MOUSE_SCROLL_LINES))


def _number_width(version: FileVersion) -> int:
    return max(3, len(str(version.blame_lines[-1].line_number))) if version.blame_lines else 3


def content_width(version: FileVersion, viewport_width: int) -> int:
    """Columns left for content once the gutter is drawn."""
    gutter = AUTHOR_WIDTH + 17 + _number_width(version)
    return max(MIN_CONTENT_WIDTH, viewport_width - gutter)


def _marked_changes(version: FileVersion) -> dict[int, LineChange]:
    return {
        c.line_number: c
        for c in version.changes
        if c.change_type in (ChangeType.ADDED, ChangeType.MODIFIED)
    }


def _annotation(change: Optional[LineChange]) -> str:
    if change is None or change.change_type is not ChangeType.MODIFIED:
        return ""
    return f"   (was: {display_text(change.previous_content or '')})"


def version_row_count(version: FileVersion, viewport_width: int) -> int:
    """Display rows `version` takes once long lines are wrapped."""
    width = content_width(version, viewport_width)
    changes = _marked_changes(version)
    return sum(
        len(wrap_spans(display_text(b.content) + _annotation(changes.get(b.line_number)), width))
        for b in version.blame_lines
    )


def row_counts(history: History, viewport_width: int) -> tuple[int, ...]:
    return tuple(version_row_count(v, viewport_width) for v in history)


def build_rows(version: FileVersion, rendered: RenderedVersion, state: NavigationState) -> list[Text]:
    """Rows for the visible window of `version`.

    Scroll positions count display rows: a long line wraps onto continuation
    rows that carry an empty gutter.
    """
    rows: list[Text] = []
    visible = state.visible_range
    number_width = _number_width(version)
    width = content_width(version, state.viewport_width)
    changes = _marked_changes(version)
    last_author: Optional[str] = None
    row = 0
    for index, blame_line in enumerate(version.blame_lines):
        if row >= visible.stop:
            break
        change = changes.get(blame_line.line_number)
        plain = display_text(blame_line.content)
        highlighted = rendered.lines[index] if index < len(rendered.lines) else None
        # copy: the cached Text must not grow the annotation
        line_text = highlighted.copy() if highlighted is not None and highlighted.plain == plain else Text(plain)
        annotation = _annotation(change)
        if annotation:
            line_text.append(annotation, style="dim italic")
        spans = wrap_spans(line_text.plain, width)
        if row + len(spans) <= visible.start:
            row += len(spans)
            continue

        for part, (start, end) in enumerate(spans):
            if row >= visible.stop:
                break
            if row < visible.start:
                row += 1
                continue
            text = Text(no_wrap=True, overflow="ellipsis")
            if part > 0:
                text.append(" " * (AUTHOR_WIDTH + 11))
                text.append(f" │ {'':>{number_width}} │ ", style="bright_black")
            else:
                if blame_line.author != last_author:
                    # always label the first visible line, then only author changes
                    color = rendered.author_colors.get(blame_line.author, "white")
                    name = abbreviate_author(blame_line.author)[:AUTHOR_WIDTH]
                    text.append(f"{name:<{AUTHOR_WIDTH}} ", style=f"bold {color}")
                    text.append(blame_line.date.strftime("%Y-%m-%d"), style="bright_black")
                    last_author = blame_line.author
                else:
                    text.append(" " * (AUTHOR_WIDTH + 11))
                text.append(f" │ {blame_line.line_number:>{number_width}} ", style="bright_black")
                if change is None:
                    text.append("  ")
                elif change.change_type is ChangeType.ADDED:
                    text.append("+ ", style="bold green")
                else:
                    text.append("~ ", style="bold yellow")
            text.append_text(line_text if len(spans) == 1 else line_text[start:end])
            text.truncate(state.viewport_width, overflow="ellipsis")
            rows.append(text)
            row += 1
    return rows


class HistoryViewer(App):
    """Step through the versions of one file or line range."""

    TITLE = "garch"
    CSS = """
App {
    overflow: hidden;
    scrollbar-size: 0 0;
}
#title {
    height: 1;
    width: 100%;
    background: $primary-darken-2;
    color: white;
}
#commit {
    height: 1;
    width: 100%;
    color: $text-muted;
}
#body {
    height: 1fr;
    width: 100%;
}
#footer {
    height: 1;
    width: 100%;
    background: #444444;
    color: white;
}
MessageModal, OpenPathModal {
    align: center middle;
}
#modal-msg {
    width: auto;
    max-width: 90%;
    padding: 1 2;
    border: heavy #555555;
    background: $surface;
}
#open-box {
    width: 70%;
    height: auto;
    padding: 1 2;
    border: heavy #555555;
    background: $surface;
}
"""

    BINDINGS = [("q", "quit", "Quit")]

    def __init__(self, history: History, settings: Optional[Settings] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.viewer_settings = settings or Settings()
        self.file_history = history
        self.render_cache = self._new_cache(history)
        self.nav_state = NavigationState.initial(row_counts(history, 80), 80, 20)
        # identity of the session whose results may be published
        self.session_id = 0
        self.session_token = SessionToken()

    def _new_cache(self, history: History) -> RenderCache:
        return RenderCache(
            history.versions,
            history.path,
            compute=partial(render_version, theme=self.viewer_settings.theme),
        )

    def compose(self) -> ComposeResult:
        yield Label("", id="title")
        yield Label("", id="commit")
        yield VersionView("", id="body")
        yield Label("", id="footer")

    def on_mount(self) -> None:
        self.redraw()

    # -- navigation -------------------------------------------------------

    def navigate(self, event) -> None:
        """Apply one transition and redraw."""
        before = self.nav_state
        if before.finished:
            return
        self.nav_state = before.apply(event)
        if self.nav_state.finished:
            self.exit()
            return
        if self.nav_state != before:
            self.redraw()

    def resize_viewport(self, width: int, height: int) -> None:
        self.navigate(Resize(width, height, row_counts(self.file_history, width)))

    def on_key(self, event: events.Key) -> None:
        """Global key handler.

        Arrow/page keys drive navigation, `q`/`Q` quits, `?`/`h` shows help
        and `o` opens another path.
        """
        key = event.key
        logger.debug(f"HistoryViewer.on_key: key={key}")
        if isinstance(self.screen, ModalScreen):
            return
        if key in ("q", "Q"):
            event.stop()
            self.navigate(Quit())
            return
        if key in ("h", "H", "?", "question_mark"):
            event.stop()
            self.push_screen(MessageModal(HELP_TEXT))
            return
        if key in ("o", "O"):
            event.stop()
            self.push_screen(OpenPathModal(), self._open_target)
            return
        nav_event = KEY_EVENTS.get(key)
        if nav_event is not None:
            event.stop()
            self.navigate(nav_event)

    def action_quit(self) -> None:
        self.navigate(Quit())

    # -- drawing ----------------------------------------------------------

    @property
    def current_version(self) -> FileVersion:
        return self.file_history[self.nav_state.version_index]

    def redraw(self) -> None:
        version = self.current_version
        index = self.nav_state.version_index
        total = len(self.file_history)
        try:
            rendered = self.render_cache.get_or_compute(version.commit.hash)
        except Exception as e:
            logger.debug(f"HistoryViewer.redraw: rendering {version.commit.short_hash} failed: {e}")
            logger.debug(traceback.format_exc())
            rendered = RenderedVersion(version.commit.hash, PLAIN_LANGUAGE, tuple(Text(b.content) for b in version.blame_lines))

        title = f" {self.file_history.label} (commit {index + 1} of {total}) - {version.commit.date:%Y-%m-%d}"
        self.query_one("#title", Label).update(Text(title, style="bold"))
        commit_line = Text(f" Commit: {version.commit.short_hash} ", style="bold")
        commit_line.append(f"{version.commit.author} - {version.commit.summary}")
        self.query_one("#commit", Label).update(commit_line)

        body = self.query_one("#body", VersionView)
        if version.blame_lines:
            rows = build_rows(version, rendered, self.nav_state)
            body.update(Text("\n").join(rows))
        else:
            missing = self.file_history.line_range or "this file"
            body.update(Text(f"Lines {missing} do not exist in this version", style="dim italic"))

        footer = Text(f" {FOOTER_HINTS}", style="bold")
        notes = []
        if version.removed_count:
            notes.append(f"{version.removed_count} removed")
        if self.file_history.skipped:
            notes.append(f"{len(self.file_history.skipped)} skipped")
        if notes:
            footer.append("   [" + ", ".join(notes) + "]", style="yellow")
        self.query_one("#footer", Label).update(footer)
        self._prefetch_neighbours()

    def _prefetch_neighbours(self) -> None:
        index = self.nav_state.version_index
        for neighbour in (index - 1, index + 1):
            if 0 <= neighbour < len(self.file_history):
                commit_hash = self.file_history[neighbour].commit.hash
                if commit_hash not in self.render_cache:
                    self.run_worker(
                        partial(self.render_cache.get_or_compute, commit_hash),
                        thread=True,
                        group="prefetch",
                        exit_on_error=False,
                    )

    # -- session switching ------------------------------------------------

    def _open_target(self, target: Optional[str]) -> None:
        if not target:
            return
        path, line_range = parse_target(target)
        self.session_token.cancel()
        self.session_token = SessionToken()
        self.session_id += 1
        session_id = self.session_id
        token = self.session_token
        self.query_one("#footer", Label).update(Text(f" Loading file history for {target}...", style="bold"))
        self.run_worker(
            partial(self._assemble_in_thread, session_id, token, path, line_range),
            thread=True,
            exclusive=True,
            group="assembly",
        )

    def _assemble_in_thread(self, session_id, token, path, line_range) -> None:
        try:
            history = assemble_path(
                path,
                line_range,
                reverse=self.file_history.reverse,
                jobs=self.viewer_settings.jobs,
                git_executable=self.viewer_settings.git,
                token=token,
            )
        except AssemblyCancelled:
            logger.debug(f"HistoryViewer: session {session_id} cancelled")
            return
        except AssemblyFailure as exc:
            self.call_from_thread(self._assembly_failed, session_id, str(exc))
            return
        except Exception as e:
            logger.debug(f"HistoryViewer._assemble_in_thread: loading {path} failed: {e}")
            logger.debug(traceback.format_exc())
            self.call_from_thread(self._assembly_failed, session_id, f"Could not load {path}: {e}")
            return
        self.call_from_thread(self.publish_history, session_id, history)

    def publish_history(self, session_id: int, history: History) -> bool:
        """Switch to `history` unless a newer session has started since."""
        if session_id != self.session_id:
            logger.debug(f"HistoryViewer: discarding stale session {session_id}")
            return False
        self.file_history = history
        self.render_cache = self._new_cache(history)
        self.nav_state = NavigationState.initial(
            row_counts(history, self.nav_state.viewport_width),
            self.nav_state.viewport_width,
            self.nav_state.viewport_height,
        )
        self.redraw()
        return True

    def _assembly_failed(self, session_id: int, message: str) -> None:
        if session_id != self.session_id:
            return
        self.redraw()
        self.push_screen(MessageModal(message))
