"""Debugger process management: spawn, output framing and reaping.

gdb runs behind a pair of pipes: commands go to its stdin, and
everything it prints (stdout and stderr) comes back on its stdout.
"""

from pstack.proc.framer import FramerProtocol, OutputFramer, Turn
from pstack.proc.launcher import GdbProcess, launch
from pstack.proc.reaper import HangupProtocol, ReapSupervisor

__all__ = [
    "FramerProtocol",
    "OutputFramer",
    "Turn",
    "GdbProcess",
    "launch",
    "HangupProtocol",
    "ReapSupervisor",
]
