"""CLI entry point for pstack."""

from __future__ import annotations

import asyncio
import logging

import typer

from pstack import __version__
from pstack.config import PstackConfig
from pstack.errors import SpawnError
from pstack.session.driver import SessionDriver
from pstack.session.wire import EventType, Wire, WireEvent

PID_MAX = 2**31 - 1

app = typer.Typer(
    name="pstack",
    help="Print a stack trace of each running process, using gdb.",
    add_completion=False,
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def parse_pid(arg: str) -> int | None:
    """Parse a base-10 pid in (0, PID_MAX]; None if ``arg`` is not one."""
    if not (arg.isascii() and arg.isdigit()):
        return None
    pid = int(arg)
    if pid <= 0 or pid > PID_MAX:
        return None
    return pid


def _usage_error(ctx: typer.Context, message: str) -> typer.Exit:
    if message:
        typer.echo(f"{message}\n", err=True)
    typer.echo(ctx.get_usage(), err=True)
    typer.echo(f"Try '{ctx.command_path} --help' for help.", err=True)
    return typer.Exit(1)


def _print_version(value: bool) -> None:
    if not value:
        return
    typer.echo(f"pstack version {__version__}")
    typer.echo("Written by the pstack developers.\n")
    typer.echo("Copyright (C) 2026 the pstack developers.")
    raise typer.Exit()


def render_event(event: WireEvent) -> None:
    """Print one wire event the way a terminal user expects it."""
    d = event.data

    if event.type == EventType.BACKTRACE_BEGIN:
        print(f"Backtrace for pid {d['pid']}", flush=True)

    elif event.type == EventType.BACKTRACE:
        for line in d.get("lines", []):
            print(line, flush=True)

    elif event.type == EventType.ATTACH_FAILED:
        typer.echo(f"Skipping pid {d['pid']}: {d['message']}", err=True)

    elif event.type == EventType.GDB_DIED:
        typer.echo("gdb unexpectedly died!", err=True)

    elif event.type == EventType.READ_ERROR:
        typer.echo(f"gdb read error: {d.get('error', 'unknown error')}", err=True)


async def _run_session(pids: list[int], config: PstackConfig) -> int:
    wire = Wire()
    queue = wire.subscribe()

    async def _consume_wire() -> None:
        while True:
            event = await queue.get()
            if event is None:
                break
            render_event(event)
        wire.unsubscribe(queue)

    consumer_task = asyncio.create_task(_consume_wire())
    try:
        return await SessionDriver(pids, config, wire).run()
    finally:
        wire.close()
        await consumer_task


@app.command(context_settings={"ignore_unknown_options": True})
def pstack(
    ctx: typer.Context,
    pids: list[str] | None = typer.Argument(
        None, help="Process IDs to print a stack trace for.", show_default=False
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_print_version,
        is_eager=True,
        help="Print version information and exit.",
    ),
    gdb: str | None = typer.Option(
        None, "--gdb", help="gdb executable (default: from env/config, else 'gdb')."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Specify one or more pids to print a stack trace for each."""
    args = pids or []

    # Unknown options land in the pid list; reject them before any pid.
    if any(arg.startswith("-") for arg in args):
        raise _usage_error(ctx, "")

    if not args:
        raise _usage_error(ctx, "No valid pids given")

    targets: list[int] = []
    for arg in args:
        pid = parse_pid(arg)
        if pid is None:
            raise _usage_error(ctx, f"Invalid pid: {arg}")
        targets.append(pid)

    setup_logging(verbose)

    config = PstackConfig.load(config_file)
    if gdb:
        config.gdb.path = gdb

    try:
        asyncio.run(_run_session(targets, config))
    except SpawnError as e:
        typer.echo(f"Unable to start gdb: {e}", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        raise typer.Exit(130)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
