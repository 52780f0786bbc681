from __future__ import annotations

import asyncio
import time
from pathlib import Path

import pytest

from rcindex.errors import ExecutionError, ProcessTimeoutError, SpawnError
from rcindex.rclone.executor import ProcessResult, run


def test_success_captures_streams_separately(script_factory):
    exe = script_factory("ok.sh", "echo '[]'\necho 'NOTICE: something' >&2\necho done")
    result = asyncio.run(run(exe, []))
    assert isinstance(result, ProcessResult)
    assert result.ok
    assert result.reason == "exited"
    assert result.exit_code == 0
    assert result.stdout == b"[]\ndone\n"
    assert result.stderr == b"NOTICE: something\n"


def test_arguments_are_passed_verbatim(script_factory):
    exe = script_factory("args.sh", "printf '%s\\n' \"$@\"")
    result = asyncio.run(run(exe, ["lsjson", "combine:my docs", "--config", "/tmp/x y.conf"]))
    assert result.stdout.decode().splitlines() == ["lsjson", "combine:my docs", "--config", "/tmp/x y.conf"]


def test_nonzero_exit_raises_execution_error(script_factory):
    exe = script_factory("fail.sh", "echo partial\necho 'directory not found' >&2\nexit 3")
    with pytest.raises(ExecutionError) as exc:
        asyncio.run(run(exe, []))
    assert exc.value.exit_code == 3
    assert exc.value.stderr == b"directory not found\n"
    assert exc.value.reason == "exited"
    assert "directory not found" in str(exc.value)


def test_signal_death_is_reported_as_killed(script_factory):
    exe = script_factory("suicide.sh", "kill -9 $$")
    with pytest.raises(ExecutionError) as exc:
        asyncio.run(run(exe, []))
    assert exc.value.reason == "killed"
    assert exc.value.exit_code == -9


def test_timeout_kills_and_discards_output(script_factory):
    exe = script_factory("slow.sh", "echo partial\nexec sleep 30")
    started = time.monotonic()
    with pytest.raises(ProcessTimeoutError) as exc:
        asyncio.run(run(exe, [], timeout=0.5))
    assert time.monotonic() - started < 10
    assert isinstance(exc.value, TimeoutError)
    assert exc.value.timeout == 0.5


def test_timeout_kills_grandchildren(script_factory):
    exe = script_factory("forks.sh", "sleep 30 &\nwait")
    started = time.monotonic()
    with pytest.raises(ProcessTimeoutError):
        asyncio.run(run(exe, [], timeout=0.5))
    assert time.monotonic() - started < 10


def test_missing_executable_is_spawn_error(tmp_path: Path):
    with pytest.raises(SpawnError):
        asyncio.run(run(tmp_path / "does-not-exist", []))


def test_failure_kinds_are_distinguishable():
    assert not issubclass(ProcessTimeoutError, ExecutionError)
    assert not issubclass(SpawnError, ExecutionError)
    assert not issubclass(ExecutionError, ProcessTimeoutError)


def _alive(pid: int) -> bool:
    # A killed child may linger as a zombie until its new parent reaps it.
    try:
        with open(f"/proc/{pid}/stat", encoding="utf-8") as f:
            state = f.read().rsplit(")", 1)[1].split()[0]
    except FileNotFoundError:
        return False
    return state != "Z"


def test_cancelled_caller_kills_process_group(script_factory, tmp_path: Path):
    pidfile = tmp_path / "pids"
    exe = script_factory("group.sh", 'sleep 30 &\necho $! > "$1"\necho $$ >> "$1"\nwait')

    async def cancel_early() -> None:
        await asyncio.wait_for(run(exe, [str(pidfile)], timeout=30), 1.0)

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(cancel_early())

    pids = [int(x) for x in pidfile.read_text(encoding="utf-8").split()]
    assert len(pids) == 2
    deadline = time.monotonic() + 5
    while any(_alive(p) for p in pids) and time.monotonic() < deadline:
        time.sleep(0.05)
    assert not any(_alive(p) for p in pids)
