"""Session driver: run the gdb conversation on the asyncio event loop.

gdb's stdout is connected as a read pipe whose protocol frames turns and
hands them to the state machine; gdb's stdin is connected as a write pipe
whose only callback is the hangup that starts the reap supervisor. The
driver finishes when the supervisor has seen gdb exit.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import subprocess
from typing import Iterable

from pstack.config import PstackConfig
from pstack.errors import FramerClosedError, FramerError
from pstack.proc.framer import FramerProtocol, OutputFramer, Turn
from pstack.proc.launcher import GdbProcess, launch
from pstack.proc.reaper import HangupProtocol, ReapSupervisor
from pstack.session.state import Session, advance
from pstack.session.wire import Wire

logger = logging.getLogger(__name__)


class SessionDriver:
    """Drives one gdb process through the backtrace conversation.

    Usage:
        driver = SessionDriver([1234, 5678], config, wire)
        exit_code = await driver.run()

    ``run()`` raises SpawnError if gdb cannot be started. Every other
    failure (attach errors, read errors, gdb dying) is published on the
    wire and ends in the reap sequence.
    """

    def __init__(
        self,
        pids: Iterable[int],
        config: PstackConfig | None = None,
        wire: Wire | None = None,
    ) -> None:
        self.config = config or PstackConfig()
        self.wire = wire or Wire()
        self.session = Session.for_targets(pids)
        self.process: GdbProcess | None = None
        self._reaper: ReapSupervisor | None = None
        self._stdin: asyncio.WriteTransport | None = None
        self._stdout: asyncio.ReadTransport | None = None
        # Set once a read error made us close gdb's stdin.
        self._abandoned = False

    async def run(self) -> int:
        """Run the session. Returns gdb's exit code."""
        loop = asyncio.get_running_loop()

        self.process = launch(self.config.gdb.path, self.config.gdb.args)
        self._reaper = ReapSupervisor(
            self.process,
            is_done=lambda: self.session.finished,
            on_died=self._on_died,
            delay=self.config.reap.delay,
            retry_count=self.config.reap.retry_count,
        )

        try:
            self._stdin, _ = await loop.connect_write_pipe(
                lambda: HangupProtocol(self._on_hangup), self.process.stdin
            )
            framer = OutputFramer(self.config.gdb.prompt)
            self._stdout, _ = await loop.connect_read_pipe(
                lambda: FramerProtocol(framer, self._on_turn, self._on_read_error),
                self.process.stdout,
            )
            return await self._reaper.exited
        finally:
            self._shutdown()

    # -- reactor callbacks -------------------------------------------------

    def _on_turn(self, turn: Turn) -> None:
        step = advance(self.session, turn)
        for event in step.events:
            self.wire.send(event)
        self._send(step.command)

    def _on_read_error(self, err: FramerError) -> None:
        if isinstance(err, FramerClosedError):
            if self.session.finished:
                logger.debug("gdb output closed")
            else:
                logger.warning("gdb output closed mid-turn: %r", err.partial)
        else:
            logger.error("gdb read error: %s", err)
            self.wire.send_read_error(str(err))
            self._abandoned = True

        # No more turns can be framed; ending gdb's input lets it exit
        # and hands the rest of the run to the reap supervisor.
        if self._stdin is not None:
            self._stdin.close()

    def _on_hangup(self, exc: Exception | None) -> None:
        if exc is not None:
            logger.debug("gdb stdin closed: %s", exc)
        assert self._reaper is not None
        self._reaper.start()

    def _on_died(self) -> None:
        assert self.process is not None
        if self._abandoned:
            logger.debug("gdb stdin closed after a read error, not reporting death")
            return
        self.wire.send_gdb_died(self.process.pid)

    # -- helpers -----------------------------------------------------------

    def _send(self, command: str) -> None:
        if self._stdin is None or self._stdin.is_closing():
            logger.warning("gdb stdin is closed, dropping command %r", command)
            return
        logger.debug("> %s", command.replace("\n", "; "))
        self._stdin.write(f"{command}\n".encode())

    def _shutdown(self) -> None:
        if self._reaper is not None:
            self._reaper.cancel()
        for transport in (self._stdout, self._stdin):
            if transport is not None:
                transport.close()

        process = self.process
        if process is None or process.poll() is not None:
            return
        # Only reached when run() was cancelled before gdb was reaped.
        logger.warning("Killing gdb (pid=%d)", process.pid)
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        with contextlib.suppress(subprocess.TimeoutExpired):
            process.proc.wait(timeout=2)
