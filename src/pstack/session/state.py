"""Conversation state machine: attach, list threads, backtrace, detach.

Each gdb response (a Turn) is handed to the handler for the current
state. A handler mutates the Session it is given and returns a Step: the
next state, exactly one command to send, and any events to publish. One
command per step keeps exactly one command in flight, so every turn
answers the command that was sent before it.

Handlers never touch gdb or the terminal, so the whole conversation can
be replayed from canned turns.
"""

from __future__ import annotations

import enum
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterable

from pstack.proc.framer import Turn
from pstack.session.wire import WireEvent, attach_failed, backtrace, backtrace_begin

# ---------------------------------------------------------------------------
# gdb commands and response markers
# ---------------------------------------------------------------------------

MACRO_NAME = "pstack_thread"
MACRO_DEFINITION = f"define {MACRO_NAME}\nthread $arg0\nbacktrace\nend"

# Harmless command whose only job is to produce a prompt.
FLUSH_COMMAND = "p 0"

ATTACH_FAILED_PREFIX = "ptrace:"
THREAD_MARKER = "Thread"

_DIGITS = re.compile(r"[0-9]+")


def attach_error(lines: Iterable[str]) -> str | None:
    """Return the first ``ptrace:`` line of an attach response, if any."""
    for line in lines:
        if line.startswith(ATTACH_FAILED_PREFIX):
            return line
    return None


def extract_thread_ids(lines: Iterable[str]) -> list[str]:
    """Pull gdb thread numbers out of an ``info threads`` listing.

    A line counts if it contains ``Thread`` anywhere (no word boundary is
    checked); its identifier is the first run of digits on the line, which
    in gdb's listing is the thread number column. Order is kept and
    duplicates are not removed.
    """
    ids: list[str] = []
    for line in lines:
        if THREAD_MARKER not in line:
            continue
        match = _DIGITS.search(line)
        if match:
            ids.append(match.group())
    return ids


def thread_backtrace_command(thread_id: str) -> str:
    return f"{MACRO_NAME} {thread_id}"


# ---------------------------------------------------------------------------
# Session and steps
# ---------------------------------------------------------------------------


class State(enum.Enum):
    START = "start"
    ATTACH = "attach"
    CHECK_THREADS = "check_threads"
    BACKTRACE = "backtrace"
    PRINT_BACKTRACE = "print_backtrace"
    DETACH = "detach"
    DONE = "done"


@dataclass
class Session:
    """Everything the conversation knows about the run.

    ``targets`` is consumed from the front, once per attach attempt.
    ``threads`` holds the thread ids still to be backtraced for the
    current target and is empty between targets.
    """

    targets: deque[int] = field(default_factory=deque)
    state: State = State.START
    threads: deque[str] = field(default_factory=deque)

    @classmethod
    def for_targets(cls, pids: Iterable[int]) -> Session:
        return cls(targets=deque(pids))

    @property
    def current(self) -> int | None:
        return self.targets[0] if self.targets else None

    @property
    def finished(self) -> bool:
        return self.state is State.DONE


@dataclass(frozen=True)
class Step:
    """Outcome of handling one turn."""

    state: State
    command: str
    events: tuple[WireEvent, ...] = ()


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _next_target(session: Session) -> State:
    return State.ATTACH if session.targets else State.DONE


def _pop_thread_backtrace(session: Session) -> str:
    return thread_backtrace_command(session.threads.popleft())


def _start(session: Session, turn: Turn) -> Step:
    # The turn is gdb's startup banner.
    return Step(State.ATTACH, MACRO_DEFINITION)


def _attach(session: Session, turn: Turn) -> Step:
    return Step(State.CHECK_THREADS, f"attach {session.current}")


def _check_threads(session: Session, turn: Turn) -> Step:
    error = attach_error(turn)
    if error is None:
        return Step(State.BACKTRACE, "info threads")

    pid = session.targets.popleft()
    return Step(_next_target(session), FLUSH_COMMAND, (attach_failed(pid, error),))


def _backtrace(session: Session, turn: Turn) -> Step:
    events = (backtrace_begin(session.current),)

    thread_ids = extract_thread_ids(turn) if turn else []
    if thread_ids:
        session.threads.extend(thread_ids)
        return Step(State.PRINT_BACKTRACE, _pop_thread_backtrace(session), events)

    # Single-threaded target: gdb lists nothing, backtrace the current thread.
    return Step(State.PRINT_BACKTRACE, "backtrace", events)


def _print_backtrace(session: Session, turn: Turn) -> Step:
    printed = backtrace(session.current, list(turn))

    if session.threads:
        return Step(State.PRINT_BACKTRACE, _pop_thread_backtrace(session), (printed,))

    detach = _detach(session, turn)
    return Step(detach.state, detach.command, (printed, *detach.events))


def _detach(session: Session, turn: Turn) -> Step:
    session.threads.clear()
    session.targets.popleft()
    return Step(_next_target(session), "detach")


def _done(session: Session, turn: Turn) -> Step:
    return Step(State.DONE, "quit")


HANDLERS: dict[State, Callable[[Session, Turn], Step]] = {
    State.START: _start,
    State.ATTACH: _attach,
    State.CHECK_THREADS: _check_threads,
    State.BACKTRACE: _backtrace,
    State.PRINT_BACKTRACE: _print_backtrace,
    State.DETACH: _detach,
    State.DONE: _done,
}


def advance(session: Session, turn: Turn) -> Step:
    """Handle one turn and move the session to its next state."""
    if not session.targets:
        session.state = State.DONE

    step = HANDLERS[session.state](session, turn)
    session.state = step.state
    return step
