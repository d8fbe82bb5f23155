"""Exceptions raised by pstack."""

from __future__ import annotations


class PstackError(Exception):
    """Base class for all pstack errors."""


class SpawnError(PstackError):
    """The debugger subprocess could not be started."""

    def __init__(self, executable: str, cause: OSError) -> None:
        self.executable = executable
        self.cause = cause
        super().__init__(f"{executable}: {cause.strerror or cause}")


class FramerError(PstackError):
    """The debugger output stream failed while a turn was being framed."""


class FramerClosedError(FramerError):
    """The output stream reached end-of-file before the prompt appeared.

    ``partial`` holds whatever output was buffered for the unfinished turn.
    """

    def __init__(self, partial: str = "") -> None:
        self.partial = partial
        super().__init__("gdb output closed before the prompt")
