"""
Navigation state of the viewer.

`NavigationState` is a pure value: every input event produces a new state
through `apply`, and all arithmetic clamps, so no sequence of events can move
the version index or the scroll offset out of range.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Optional, Sequence, Union


@dataclass(frozen=True)
class NextVersion:
    pass


@dataclass(frozen=True)
class PrevVersion:
    pass


@dataclass(frozen=True)
class ScrollDown:
    lines: int = 1


@dataclass(frozen=True)
class ScrollUp:
    lines: int = 1


@dataclass(frozen=True)
class PageDown:
    pass


@dataclass(frozen=True)
class PageUp:
    pass


@dataclass(frozen=True)
class JumpTop:
    pass


@dataclass(frozen=True)
class JumpBottom:
    pass


@dataclass(frozen=True)
class Resize:
    """New viewport size.

    `content_lengths` carries the display rows of every version at the new
    width when wrapping changes them.
    """

    width: int
    height: int
    content_lengths: Optional[tuple[int, ...]] = None


@dataclass(frozen=True)
class Quit:
    pass


Event = Union[
    NextVersion, PrevVersion, ScrollDown, ScrollUp, PageDown, PageUp,
    JumpTop, JumpBottom, Resize, Quit,
]


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


@dataclass(frozen=True)
class NavigationState:
    content_lengths: tuple[int, ...]
    version_index: int = 0
    scroll_offset: int = 0
    viewport_height: int = 1
    viewport_width: int = 1
    finished: bool = False

    @classmethod
    def initial(
        cls,
        content_lengths: Sequence[int],
        viewport_width: int,
        viewport_height: int,
        start_index: int = 0,
    ) -> "NavigationState":
        """State for a new session.

        The first element of the presented sequence is the start for both
        orders: the oldest version ascending, the newest in reverse mode.
        """
        if not content_lengths:
            raise ValueError("cannot navigate an empty version sequence")
        lengths = tuple(max(0, n) for n in content_lengths)
        return cls(
            content_lengths=lengths,
            version_index=_clamp(start_index, 0, len(lengths) - 1),
            viewport_height=max(1, viewport_height),
            viewport_width=max(1, viewport_width),
        )

    @property
    def version_count(self) -> int:
        return len(self.content_lengths)

    @property
    def content_length(self) -> int:
        return self.content_lengths[self.version_index]

    @property
    def max_scroll(self) -> int:
        return max(0, self.content_length - self.viewport_height)

    @property
    def visible_range(self) -> range:
        """Content rows currently on screen."""
        end = min(self.content_length, self.scroll_offset + self.viewport_height)
        return range(self.scroll_offset, end)

    @property
    def at_first(self) -> bool:
        return self.version_index == 0

    @property
    def at_last(self) -> bool:
        return self.version_index == self.version_count - 1

    def _scrolled(self, delta: int) -> "NavigationState":
        offset = _clamp(self.scroll_offset + delta, 0, self.max_scroll)
        return dataclasses.replace(self, scroll_offset=offset)

    def _moved(self, delta: int) -> "NavigationState":
        index = _clamp(self.version_index + delta, 0, self.version_count - 1)
        # content length differs per version, an old offset may be past the end
        return dataclasses.replace(self, version_index=index, scroll_offset=0)

    def apply(self, event: Event) -> "NavigationState":
        if self.finished:
            return self
        if isinstance(event, NextVersion):
            return self._moved(1)
        if isinstance(event, PrevVersion):
            return self._moved(-1)
        if isinstance(event, ScrollDown):
            return self._scrolled(max(0, event.lines))
        if isinstance(event, ScrollUp):
            return self._scrolled(-max(0, event.lines))
        if isinstance(event, PageDown):
            return self._scrolled(self.viewport_height)
        if isinstance(event, PageUp):
            return self._scrolled(-self.viewport_height)
        if isinstance(event, JumpTop):
            return dataclasses.replace(self, scroll_offset=0)
        if isinstance(event, JumpBottom):
            return dataclasses.replace(self, scroll_offset=self.max_scroll)
        if isinstance(event, Resize):
            lengths = self.content_lengths
            if event.content_lengths is not None:
                if len(event.content_lengths) != self.version_count:
                    raise ValueError(
                        f"resize carries {len(event.content_lengths)} lengths for {self.version_count} versions"
                    )
                lengths = tuple(max(0, n) for n in event.content_lengths)
            resized = dataclasses.replace(
                self,
                content_lengths=lengths,
                viewport_width=max(1, event.width),
                viewport_height=max(1, event.height),
            )
            return resized._scrolled(0)
        if isinstance(event, Quit):
            return dataclasses.replace(self, finished=True)
        raise TypeError(f"unknown navigation event: {event!r}")
