"""
Runtime settings and logging setup.

Settings come from built-in defaults, then `GARCH_*` environment variables,
then command line flags.
"""
from __future__ import annotations

import dataclasses
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_GIT = "git"
DEFAULT_JOBS = 1
# lines moved per mouse wheel notch
MOUSE_SCROLL_LINES = 3
SYNTAX_THEME = "ansi_dark"
TAB_SIZE = 4

AUTHOR_PALETTE = (
    "red",
    "dark_cyan",
    "green4",
    "yellow4",
    "blue",
    "magenta",
    "dark_red",
)


@dataclasses.dataclass(frozen=True)
class Settings:
    git: str = DEFAULT_GIT
    jobs: int = DEFAULT_JOBS
    log_file: Optional[str] = None
    theme: str = SYNTAX_THEME

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        jobs = DEFAULT_JOBS
        raw_jobs = env.get("GARCH_JOBS")
        if raw_jobs:
            try:
                jobs = max(1, int(raw_jobs))
            except ValueError:
                logger.warning(f"ignoring GARCH_JOBS={raw_jobs!r}: not an integer")
        return cls(
            git=env.get("GARCH_GIT") or DEFAULT_GIT,
            jobs=jobs,
            log_file=env.get("GARCH_LOG_FILE") or None,
            theme=env.get("GARCH_THEME") or SYNTAX_THEME,
        )

    def merged(self, **overrides) -> "Settings":
        """Copy with every override that is not None applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)


def setup_logging(log_file: Optional[str]) -> None:
    """Send debug logging to `log_file`, or nowhere.

    The terminal belongs to the viewer, so nothing is ever logged to stderr.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    if log_file:
        logging.basicConfig(
            filename=log_file,
            level=logging.DEBUG,
            format=LOG_FORMAT,
        )
    else:
        root.addHandler(logging.NullHandler())
