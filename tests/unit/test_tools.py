"""Tests for the workspace, shell executor and command history."""

from __future__ import annotations

import time
from pathlib import Path

import pytest

from swarmcode.errors import PathEscapeError
from swarmcode.tools.command_history import CommandHistory, CommandRecord
from swarmcode.tools.file_ops import Workspace, safe_resolve
from swarmcode.tools.shell_exec import CommandExecutor, CommandResult

# ── Workspace ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_write_creates_parent_dirs(tmp_path: Path) -> None:
    ws = Workspace(str(tmp_path))
    rel = await ws.write_file("src/app/main.js", "console.log(1)")
    assert rel == str(Path("src/app/main.js"))
    assert (tmp_path / "src" / "app" / "main.js").read_text() == "console.log(1)"


@pytest.mark.asyncio
async def test_read_file_roundtrip(tmp_path: Path) -> None:
    ws = Workspace(str(tmp_path))
    (tmp_path / "notes.txt").write_text("hello")
    assert await ws.read_file("notes.txt") == "hello"


@pytest.mark.asyncio
async def test_delete_is_idempotent(tmp_path: Path) -> None:
    ws = Workspace(str(tmp_path))
    (tmp_path / "trash.txt").write_text("bye")
    assert await ws.delete_file("trash.txt") is True
    assert await ws.delete_file("trash.txt") is False
    assert not (tmp_path / "trash.txt").exists()


@pytest.mark.asyncio
async def test_delete_directory_tree(tmp_path: Path) -> None:
    ws = Workspace(str(tmp_path))
    (tmp_path / "build" / "out").mkdir(parents=True)
    (tmp_path / "build" / "out" / "a.js").write_text("x")
    assert await ws.delete_file("build") is True
    assert not (tmp_path / "build").exists()


@pytest.mark.asyncio
async def test_delete_root_refused(tmp_path: Path) -> None:
    ws = Workspace(str(tmp_path))
    with pytest.raises(PathEscapeError):
        await ws.delete_file(".")


@pytest.mark.asyncio
async def test_write_outside_root_blocked(tmp_path: Path) -> None:
    ws = Workspace(str(tmp_path / "project"))
    with pytest.raises(PermissionError, match="Path traversal blocked"):
        await ws.write_file("../escape.txt", "nope")
    assert not (tmp_path / "escape.txt").exists()


def test_safe_resolve_absolute_path_outside_root(tmp_path: Path) -> None:
    with pytest.raises(PathEscapeError):
        safe_resolve("/etc/passwd", str(tmp_path))


@pytest.mark.asyncio
async def test_list_files_skips_hidden_and_node_modules(tmp_path: Path) -> None:
    ws = Workspace(str(tmp_path))
    (tmp_path / "a.js").write_text("1")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "HEAD").write_text("ref")
    (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
    (tmp_path / "lib").mkdir()
    (tmp_path / "lib" / "b.js").write_text("22")

    entries = await ws.list_files()
    paths = {e.path for e in entries}
    assert paths == {"a.js", "lib", str(Path("lib/b.js"))}
    sizes = {e.path: e.size for e in entries if not e.is_dir}
    assert sizes["a.js"] == 1


# ── CommandResult ────────────────────────────────────────────────────────────


def test_command_result_output_puts_stderr_first() -> None:
    r = CommandResult(command="x", stdout="out", stderr="err", exit_code=1)
    assert r.output == "err\nout"
    assert not r.success


def test_command_result_timed_out_is_not_success() -> None:
    r = CommandResult(command="x", stdout="", stderr="", exit_code=0, timed_out=True)
    assert not r.success


# ── CommandExecutor ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_executor_runs_and_records(tmp_path: Path) -> None:
    history = CommandHistory()
    executor = CommandExecutor(history)
    result = await executor.run("echo hello", str(tmp_path), worker_id="w1", worker_name="alice")

    assert result.success
    assert result.stdout.strip() == "hello"
    assert len(history) == 1
    record = history.recent()[0]
    assert record.command == "echo hello"
    assert record.worker_name == "alice"
    assert record.success


@pytest.mark.asyncio
async def test_executor_nonzero_exit(tmp_path: Path) -> None:
    executor = CommandExecutor()
    result = await executor.run("echo oops >&2; exit 3", str(tmp_path))
    assert result.exit_code == 3
    assert "oops" in result.output
    assert not executor.history.recent()[0].success


@pytest.mark.asyncio
async def test_executor_timeout_kills_command(tmp_path: Path) -> None:
    executor = CommandExecutor(timeout=0.5)
    started = time.monotonic()
    result = await executor.run("sleep 10", str(tmp_path))
    assert result.timed_out
    assert result.exit_code == -1
    assert "timed out" in result.stderr
    assert time.monotonic() - started < 8


@pytest.mark.asyncio
async def test_executor_bad_cwd_is_a_result_not_an_exception(tmp_path: Path) -> None:
    executor = CommandExecutor()
    result = await executor.run("echo hi", str(tmp_path / "missing"))
    assert result.exit_code == -1
    assert result.stderr


# ── CommandHistory ───────────────────────────────────────────────────────────


def _record(cmd: str, ts: float = 0.0) -> CommandRecord:
    return CommandRecord(command=cmd, cwd="/", output="", exit_code=0, success=True, timestamp=ts)


def test_history_is_bounded() -> None:
    history = CommandHistory(maxlen=3)
    for i in range(5):
        history.add(_record(f"c{i}"))
    assert len(history) == 3
    assert [r.command for r in history.recent()] == ["c2", "c3", "c4"]


def test_history_recent_limit() -> None:
    history = CommandHistory()
    for i in range(5):
        history.add(_record(f"c{i}"))
    assert [r.command for r in history.recent(2)] == ["c3", "c4"]
    assert history.recent(0) == []


def test_history_since_is_exclusive() -> None:
    history = CommandHistory()
    history.add(_record("old", ts=10.0))
    history.add(_record("edge", ts=20.0))
    history.add(_record("new", ts=30.0))
    assert [r.command for r in history.since(20.0)] == ["new"]
