"""
garch - explore the evolution of code through git history
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from garch import __version__
from garch.config import Settings, setup_logging
from garch.errors import AssemblyFailure
from garch.history import assemble_path, parse_target
from garch.models import History, LineRange

logger = logging.getLogger(__name__)


def _line_range(text: str) -> LineRange:
    try:
        return LineRange.parse(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid line range {text!r}: {exc}") from None


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-r", "--reverse", action="store_true",
                        help="start from the newest version instead of the oldest")
    common.add_argument("-j", "--jobs", type=_positive_int, default=None,
                        help="git processes to run in parallel while loading history")
    common.add_argument("--log-file", default=None, help="write debug logging to this file")
    common.add_argument("--git", default=None, help="git executable to run")

    parser = argparse.ArgumentParser(prog="garch", description=__doc__)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    lines = sub.add_parser("lines", parents=[common],
                           help="trace the evolution of specific lines in a file")
    lines.add_argument("file_range", metavar="PATH:START[-END]",
                       help="file and line range, e.g. src/main.py:10-20")

    file_cmd = sub.add_parser("file", parents=[common],
                              help="show the evolution of an entire file")
    file_cmd.add_argument("path", help="path to the file")
    file_cmd.add_argument("-L", "--range", dest="line_range", type=_line_range, default=None,
                          metavar="START[-END]", help="only show these lines")
    return parser


def resolve_target(args: argparse.Namespace, parser: argparse.ArgumentParser) -> tuple[str, Optional[LineRange]]:
    if args.command == "lines":
        path, line_range = parse_target(args.file_range)
        if line_range is None:
            parser.error(f"no line range in {args.file_range!r} (expected PATH:START[-END])")
        return path, line_range
    return args.path, args.line_range


def load_history(path: str, line_range: Optional[LineRange], reverse: bool, settings: Settings) -> History:
    history = assemble_path(
        path,
        line_range,
        reverse=reverse,
        jobs=settings.jobs,
        git_executable=settings.git,
    )
    for skipped in history.skipped:
        logger.info(f"skipped {skipped.commit_hash[:7]}: {skipped.reason}")
    return history


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point: parse CLI args, assemble the history and run the viewer."""
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = Settings.from_env().merged(jobs=args.jobs, log_file=args.log_file, git=args.git)
    setup_logging(settings.log_file)
    path, line_range = resolve_target(args, parser)

    if args.command == "file":
        print(f"Loading file history for {path}...", file=sys.stderr)
    try:
        history = load_history(path, line_range, args.reverse, settings)
    except AssemblyFailure as exc:
        logger.debug(f"main: assembly failed: {exc!r}")
        print(f"garch: {exc}", file=sys.stderr)
        return 1

    # imported late: the viewer pulls in textual
    from garch.viewer import HistoryViewer

    app = HistoryViewer(history, settings)
    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
