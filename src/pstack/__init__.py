"""pstack: print stack traces of running processes by driving gdb."""

__version__ = "0.1.0"
