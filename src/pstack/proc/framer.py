"""Output framer: cut gdb's output stream into prompt-delimited turns."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Iterator

from pstack.config import DEFAULT_PROMPT
from pstack.errors import FramerClosedError, FramerError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Turn:
    """One complete gdb response: the lines printed before the next prompt."""

    lines: tuple[str, ...] = ()

    def __iter__(self) -> Iterator[str]:
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)

    def __bool__(self) -> bool:
        return bool(self.lines)


class OutputFramer:
    """Accumulates output bytes until the buffer ends with the prompt.

    gdb writes its prompt without a trailing newline, so the prompt is the
    only reliable end-of-response marker on a pipe.
    """

    def __init__(self, prompt: str = DEFAULT_PROMPT) -> None:
        self._prompt = prompt.encode()
        self._buf = bytearray()

    def feed(self, data: bytes) -> Turn | None:
        """Add a chunk of output. Returns the Turn once the prompt arrives."""
        self._buf += data
        if not self._buf.endswith(self._prompt):
            return None

        text = self._buf.decode("utf-8", errors="replace")
        self._buf.clear()

        # The last split element is the prompt itself, not an output line.
        lines = text.split("\n")[:-1]
        return Turn(tuple(line.rstrip("\r") for line in lines))

    def close(self) -> None:
        """Signal end-of-file on the output stream.

        Raises:
            FramerClosedError: always; carries any unfinished output.
        """
        partial = self._buf.decode("utf-8", errors="replace")
        self._buf.clear()
        raise FramerClosedError(partial)


class FramerProtocol(asyncio.Protocol):
    """Read-pipe protocol that feeds gdb's stdout into an OutputFramer."""

    def __init__(
        self,
        framer: OutputFramer,
        on_turn: Callable[[Turn], None],
        on_error: Callable[[FramerError], None],
    ) -> None:
        self._framer = framer
        self._on_turn = on_turn
        self._on_error = on_error
        self._failed = False

    def data_received(self, data: bytes) -> None:
        if self._failed:
            return
        turn = self._framer.feed(data)
        if turn is not None:
            logger.debug("turn framed: %d lines", len(turn))
            self._on_turn(turn)

    def eof_received(self) -> bool | None:
        try:
            self._framer.close()
        except FramerClosedError as e:
            self._fail(e)
        return None

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            err = FramerError(str(exc))
            err.__cause__ = exc
            self._fail(err)

    def _fail(self, err: FramerError) -> None:
        if self._failed:
            return
        self._failed = True
        self._on_error(err)
