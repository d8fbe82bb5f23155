"""Reap supervisor: wait for gdb to exit, escalating to SIGTERM/SIGKILL."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Protocol

from pstack.config import REAP_DELAY, REAP_RETRY_COUNT

logger = logging.getLogger(__name__)


class Reapable(Protocol):
    pid: int

    def poll(self) -> int | None: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


class ReapSupervisor:
    """Polls a closed debugger for its exit status.

    Started when gdb's stdin is closed (gdb exited or is exiting). Polls
    immediately, then every ``delay`` seconds. When ``retry_count`` polls
    have failed it sends SIGTERM; one failed poll later, SIGKILL. Each
    signal is sent at most once. ``exited`` resolves with the exit code.
    """

    def __init__(
        self,
        process: Reapable,
        is_done: Callable[[], bool],
        on_died: Callable[[], None] | None = None,
        delay: float = REAP_DELAY,
        retry_count: int = REAP_RETRY_COUNT,
    ) -> None:
        self._process = process
        self._is_done = is_done
        self._on_died = on_died
        self._delay = delay
        self._retry_count = retry_count
        self._loop = asyncio.get_running_loop()
        self._reap_try = retry_count
        self._timer: asyncio.TimerHandle | None = None
        self._started = False
        self.exited: asyncio.Future[int] = self._loop.create_future()

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if self._started:
            return
        self._started = True

        if not self._is_done():
            logger.info("gdb (pid=%d) exited before the session finished", self._process.pid)
            if self._on_died:
                self._on_died()

        self._reap_try = self._retry_count
        self._poll()

    def cancel(self) -> None:
        """Stop polling without resolving ``exited``."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _poll(self) -> None:
        self._timer = None
        self._reap_try -= 1

        status = self._process.poll()
        if status is not None:
            logger.info("gdb (pid=%d) exited (code=%s)", self._process.pid, status)
            self._resolve(status)
            return

        if self._reap_try == 0:
            logger.warning("gdb (pid=%d) still running, sending SIGTERM", self._process.pid)
            with contextlib.suppress(ProcessLookupError):
                self._process.terminate()
        elif self._reap_try == -1:
            logger.warning("gdb (pid=%d) ignored SIGTERM, sending SIGKILL", self._process.pid)
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()

        self._timer = self._loop.call_later(self._delay, self._poll)

    def _resolve(self, status: int) -> None:
        self.cancel()
        if not self.exited.done():
            self.exited.set_result(status)


class HangupProtocol(asyncio.BaseProtocol):
    """Write-pipe protocol for gdb's stdin; reports the pipe closing.

    asyncio watches a write pipe for readability only to learn that the
    read end went away, which is exactly gdb exiting.
    """

    def __init__(self, on_hangup: Callable[[Exception | None], None]) -> None:
        self._on_hangup = on_hangup

    def connection_lost(self, exc: Exception | None) -> None:
        self._on_hangup(exc)
