"""Debugger launcher: spawn gdb with piped stdin/stdout."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import IO

from pstack.errors import SpawnError

logger = logging.getLogger(__name__)

# Never read ~/.gdbinit: output must not depend on the invoking user.
NO_INIT_FILE = "--nx"


@dataclass
class GdbProcess:
    """Handle on a running debugger subprocess.

    ``stdin`` carries commands, ``stdout`` carries every byte gdb prints
    (its stderr is merged into it at spawn time).
    """

    proc: subprocess.Popen
    stdin: IO[bytes]
    stdout: IO[bytes]

    @property
    def pid(self) -> int:
        return self.proc.pid

    def poll(self) -> int | None:
        """Non-blocking exit status check."""
        return self.proc.poll()

    def terminate(self) -> None:
        self.proc.terminate()

    def kill(self) -> None:
        self.proc.kill()


def build_command(executable: str, args: list[str] | None = None) -> list[str]:
    """Build the gdb command line, always including ``--nx``."""
    extra = [a for a in (args or []) if a != NO_INIT_FILE]
    return [executable, NO_INIT_FILE, *extra]


def launch(executable: str = "gdb", args: list[str] | None = None) -> GdbProcess:
    """Spawn the debugger.

    The child gets its own session so a Ctrl-C aimed at us is not
    delivered to gdb while it has a target stopped.

    Raises:
        SpawnError: the executable could not be started.
    """
    command = build_command(executable, args)
    try:
        proc = subprocess.Popen(
            command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            start_new_session=True,
            env={**os.environ, "TERM": "dumb"},
        )
    except OSError as e:
        raise SpawnError(executable, e) from e

    assert proc.stdin is not None and proc.stdout is not None

    logger.info("gdb started: pid=%d cmd=%s", proc.pid, " ".join(command))
    return GdbProcess(proc=proc, stdin=proc.stdin, stdout=proc.stdout)
