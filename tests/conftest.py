"""Shared fixtures: a scripted stand-in for gdb."""

from __future__ import annotations

import json
import os
import stat
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

# Runs as a separate process. Speaks just enough of gdb's interactive
# protocol over pipes: a banner, then one prompt-terminated answer per
# command (a whole `define ... end` block counts as one command).
_FAKE_GDB = r'''
import json
import sys

with open(sys.argv[0] + ".json") as f:
    script = json.load(f)

PROMPT = script.get("prompt", "(gdb) ")
log = open(script["log"], "a")


def reply(lines, err_lines=()):
    for line in err_lines:
        sys.stderr.write(line + "\n")
    sys.stderr.flush()
    for line in lines:
        sys.stdout.write(line + "\n")
    sys.stdout.write(PROMPT)
    sys.stdout.flush()


reply(["GNU gdb (fake) 1.0", "Copyright (C) nobody"])

in_define = False
for raw in sys.stdin:
    cmd = raw.rstrip("\n")
    log.write(cmd + "\n")
    log.flush()

    if in_define:
        if cmd == "end":
            in_define = False
            reply([])
        continue
    if cmd.startswith("define "):
        in_define = True
        continue

    if cmd in script.get("die_on", []):
        sys.exit(3)

    if cmd.startswith("attach "):
        pid = cmd.split()[1]
        if pid in script.get("attach_fail", {}):
            reply([], [script["attach_fail"][pid]])
        else:
            reply(["Attaching to process " + pid])
    elif cmd == "info threads":
        reply(script.get("threads", []))
    elif cmd.startswith("pstack_thread "):
        reply(script["backtraces"][cmd.split()[1]])
    elif cmd == "backtrace":
        reply(script.get("backtrace", ["#0  0x0000 in main ()"]))
    elif cmd == "detach":
        reply(["Detaching from process"])
    elif cmd == "p 0":
        reply(["$1 = 0"])
    elif cmd == "quit":
        sys.exit(0)
    else:
        reply(['Undefined command: "' + cmd + '".  Try "help".'])
'''


@pytest.fixture
def fake_gdb(tmp_path: Path) -> Callable[..., tuple[str, Path]]:
    """Factory: write a fake gdb executable driven by ``script``.

    Returns (executable_path, command_log_path).
    """

    def _make(**script: Any) -> tuple[str, Path]:
        log_path = tmp_path / "commands.log"
        log_path.write_text("")
        script["log"] = str(log_path)

        exe = tmp_path / "fake-gdb"
        exe.write_text(f"#!{sys.executable}\n{_FAKE_GDB}")
        exe.chmod(exe.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        (tmp_path / "fake-gdb.json").write_text(json.dumps(script))
        return os.fspath(exe), log_path

    return _make


@pytest.fixture
def two_target_script() -> dict[str, Any]:
    """pid 111 cannot be attached; pid 222 has two threads."""
    return {
        "attach_fail": {"111": "ptrace: Operation not permitted."},
        "threads": [
            "  Id   Target Id                                  Frame ",
            '* 2    Thread 0x7f00aa (LWP 223) "worker" 0x01 in poll ()',
            '  1    Thread 0x7f00bb (LWP 222) "main" 0x02 in wait ()',
        ],
        "backtraces": {
            "2": ["#0  0x01 in poll ()", "#1  0x03 in worker_loop ()"],
            "1": ["#0  0x02 in wait ()", "#1  0x04 in main ()"],
        },
    }
