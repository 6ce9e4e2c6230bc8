"""Exception types raised by the history pipeline."""
from __future__ import annotations


class GarchError(Exception):
    """Base class for every error garch raises on purpose."""


class GitCommandFailure(GarchError):
    """`git` exited non-zero, or could not be started at all."""

    def __init__(self, exit_code: int, stderr_text: str, command: list[str] | None = None) -> None:
        self.exit_code = exit_code
        self.stderr_text = stderr_text
        self.command = command or []
        detail = stderr_text.strip().splitlines()[0] if stderr_text.strip() else "no error output"
        super().__init__(f"git exited with status {exit_code}: {detail}")


class InvalidEncoding(GarchError):
    """Command output is not valid UTF-8."""

    def __init__(self, operation: str, raw: bytes, reason: str = "") -> None:
        self.operation = operation
        self.raw = raw
        super().__init__(f"git {operation} produced undecodable output {reason}".rstrip())

    def placeholder_text(self) -> str:
        """The output with every undecodable run replaced by U+FFFD."""
        return self.raw.decode("utf-8", errors="replace")


class MalformedBlame(GarchError):
    pass


class MalformedDiff(GarchError):
    pass


class AssemblyFailure(GarchError):
    """No version sequence could be built for the requested target."""


class NoHistory(AssemblyFailure):
    pass


class EmptyRange(AssemblyFailure):
    """The file has history, but the requested lines never existed."""


class AssemblyCancelled(AssemblyFailure):
    pass
