"""Tests for pstack.cli (argument handling, rendering, whole runs)."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest
from typer.testing import CliRunner

from pstack import __version__
from pstack.cli import PID_MAX, app, parse_pid, render_event
from pstack.session.wire import (
    EventType,
    WireEvent,
    attach_failed,
    backtrace,
    backtrace_begin,
)

runner = CliRunner()


@pytest.fixture(autouse=True)
def fast_reap(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("PSTACK_GDB", "PSTACK_GDB_PROMPT", "PSTACK_REAP_RETRY_COUNT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PSTACK_REAP_DELAY", "0.02")


# ---------------------------------------------------------------------------
# parse_pid
# ---------------------------------------------------------------------------


class TestParsePid:
    @pytest.mark.parametrize("arg,expected", [("1", 1), ("42", 42), ("007", 7)])
    def test_valid(self, arg: str, expected: int) -> None:
        assert parse_pid(arg) == expected

    def test_upper_bound(self) -> None:
        assert parse_pid(str(PID_MAX)) == 2147483647
        assert parse_pid(str(PID_MAX + 1)) is None

    @pytest.mark.parametrize("arg", ["0", "", "-5", "+5", "12a", "1.0", " 1", "١"])
    def test_invalid(self, arg: str) -> None:
        assert parse_pid(arg) is None


# ---------------------------------------------------------------------------
# render_event
# ---------------------------------------------------------------------------


class TestRenderEvent:
    def test_backtrace_to_stdout(self, capsys: pytest.CaptureFixture[str]) -> None:
        render_event(backtrace_begin(12))
        render_event(backtrace(12, ["#0 a", "#1 b"]))
        out, err = capsys.readouterr()
        assert out == "Backtrace for pid 12\n#0 a\n#1 b\n"
        assert err == ""

    def test_diagnostics_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        render_event(attach_failed(3, "ptrace: No such process."))
        render_event(WireEvent(type=EventType.GDB_DIED, data={"gdb_pid": 1}))
        render_event(WireEvent(type=EventType.READ_ERROR, data={"error": "EIO"}))
        out, err = capsys.readouterr()
        assert out == ""
        assert err.splitlines() == [
            "Skipping pid 3: ptrace: No such process.",
            "gdb unexpectedly died!",
            "gdb read error: EIO",
        ]


# ---------------------------------------------------------------------------
# Command line handling
# ---------------------------------------------------------------------------


class TestArguments:
    def test_no_pids(self) -> None:
        result = runner.invoke(app, [])
        assert result.exit_code == 1
        assert "No valid pids given" in result.output
        assert "Usage:" in result.output

    @pytest.mark.parametrize("arg", ["abc", "0", "2147483648", "12x"])
    def test_invalid_pid(self, arg: str) -> None:
        result = runner.invoke(app, ["1", arg])
        assert result.exit_code == 1
        assert f"Invalid pid: {arg}" in result.output

    def test_unknown_option(self) -> None:
        result = runner.invoke(app, ["-x", "1"])
        assert result.exit_code == 1
        assert "Usage:" in result.output

    def test_help(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "--version" in result.output

    @pytest.mark.parametrize("flag", ["--version", "-V"])
    def test_version(self, flag: str) -> None:
        result = runner.invoke(app, [flag])
        assert result.exit_code == 0
        assert f"pstack version {__version__}" in result.output

    def test_version_wins_over_bad_pid(self) -> None:
        result = runner.invoke(app, ["--version", "nope"])
        assert result.exit_code == 0

    def test_unstartable_gdb(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["--gdb", str(tmp_path / "no-gdb"), "1"])
        assert result.exit_code == 1
        assert "Unable to start gdb" in result.output


# ---------------------------------------------------------------------------
# Whole runs against the scripted gdb
# ---------------------------------------------------------------------------


class TestRun:
    def test_skip_then_backtrace(
        self,
        fake_gdb: Callable[..., tuple[str, Path]],
        two_target_script: dict[str, Any],
    ) -> None:
        exe, _ = fake_gdb(**two_target_script)
        result = runner.invoke(app, ["--gdb", exe, "111", "222"])

        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert "Skipping pid 111: ptrace: Operation not permitted." in lines
        start = lines.index("Backtrace for pid 222")
        assert lines[start + 1 :] == [
            "#0  0x01 in poll ()",
            "#1  0x03 in worker_loop ()",
            "#0  0x02 in wait ()",
            "#1  0x04 in main ()",
        ]

    def test_gdb_dies(
        self,
        fake_gdb: Callable[..., tuple[str, Path]],
        two_target_script: dict[str, Any],
    ) -> None:
        exe, _ = fake_gdb(die_on=["attach 222"], **two_target_script)
        result = runner.invoke(app, ["--gdb", exe, "222"])

        assert result.exit_code == 0
        assert "gdb unexpectedly died!" in result.output
        assert "Backtrace for pid" not in result.output

    def test_gdb_from_config_file(
        self,
        tmp_path: Path,
        fake_gdb: Callable[..., tuple[str, Path]],
    ) -> None:
        exe, log_path = fake_gdb(threads=[])
        config = tmp_path / "pstack.json"
        config.write_text('{"gdb": {"path": "%s"}}' % exe)

        result = runner.invoke(app, ["-c", str(config), "5"])

        assert result.exit_code == 0
        assert "Backtrace for pid 5" in result.output
        assert "attach 5" in log_path.read_text().splitlines()
