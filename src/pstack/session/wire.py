"""Session events and the wire that carries them to the terminal.

The state machine only describes what happened (a backtrace, a skipped
pid); ``cli.render_event`` decides how each event is printed.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    BACKTRACE_BEGIN = "backtrace_begin"
    BACKTRACE = "backtrace"
    ATTACH_FAILED = "attach_failed"
    GDB_DIED = "gdb_died"
    READ_ERROR = "read_error"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


def backtrace_begin(pid: int) -> WireEvent:
    return WireEvent(type=EventType.BACKTRACE_BEGIN, data={"pid": pid})


def backtrace(pid: int, lines: list[str]) -> WireEvent:
    return WireEvent(type=EventType.BACKTRACE, data={"pid": pid, "lines": lines})


def attach_failed(pid: int, message: str) -> WireEvent:
    return WireEvent(
        type=EventType.ATTACH_FAILED, data={"pid": pid, "message": message}
    )


class Wire:
    """Fan-out of session events to output queues.

    The session driver is the only producer and publishes from reactor
    callbacks. Each consumer (the CLI renderer, a test) owns one queue
    and reads until it receives ``None``, which ``close()`` enqueues once
    the driver has returned. Events published after ``close()`` are
    dropped.
    """

    def __init__(self) -> None:
        self._queues: list[asyncio.Queue[WireEvent | None]] = []
        self._closed = False

    def send(self, event: WireEvent) -> None:
        if self._closed:
            return
        for queue in self._queues:
            queue.put_nowait(event)

    def send_gdb_died(self, pid: int) -> None:
        """gdb's stdin closed before the conversation reached ``quit``."""
        self.send(WireEvent(type=EventType.GDB_DIED, data={"gdb_pid": pid}))

    def send_read_error(self, error: str) -> None:
        self.send(WireEvent(type=EventType.READ_ERROR, data={"error": error}))

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Return a new queue that receives every later event."""
        queue: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[WireEvent | None]) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def close(self) -> None:
        """Mark the end of the run: each queue gets a final ``None``."""
        self._closed = True
        for queue in self._queues:
            queue.put_nowait(None)
