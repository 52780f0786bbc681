from __future__ import annotations

import asyncio
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Sequence, Union

from rcindex.errors import ExecutionError, ProcessTimeoutError, SpawnError
from rcindex.logging.ndjson import log_event


CompletionReason = Literal["exited", "timedOut", "killed"]

DEFAULT_TIMEOUT = 25.0


@dataclass(frozen=True)
class ProcessResult:
    exit_code: int
    stdout: bytes
    stderr: bytes
    reason: CompletionReason = "exited"

    @property
    def ok(self) -> bool:
        return self.reason == "exited" and self.exit_code == 0


def _kill_tree(proc: asyncio.subprocess.Process) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        try:
            proc.kill()
        except ProcessLookupError:
            pass


async def run(
    executable: Union[str, Path],
    argv: Sequence[str],
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> ProcessResult:
    """
    Run `executable argv...` with stdin closed and stdout/stderr captured separately.

    Raises SpawnError if the process cannot start, ProcessTimeoutError once `timeout`
    seconds have passed since spawn (output is discarded) and ExecutionError on a nonzero
    exit. The child is always reaped before this returns or raises.
    """
    started = time.monotonic()
    try:
        proc = await asyncio.create_subprocess_exec(
            str(executable),
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        raise SpawnError(f"Failed to start {executable}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        _kill_tree(proc)
        await proc.wait()
        log_event(
            level="error",
            event="exec.timeout",
            data={"executable": str(executable), "args": list(argv), "timeout": timeout},
        )
        raise ProcessTimeoutError(timeout) from None
    finally:
        # Cancellation of the awaiting request still must not leak the child.
        if proc.returncode is None:
            _kill_tree(proc)
            await proc.wait()

    code = proc.returncode
    log_event(
        level="info" if code == 0 else "error",
        event="exec.finished",
        data={
            "executable": str(executable),
            "args": list(argv),
            "exitCode": code,
            "stdoutBytes": len(stdout),
            "stderrBytes": len(stderr),
            "elapsedMs": int((time.monotonic() - started) * 1000),
        },
    )
    if code < 0:
        raise ExecutionError(code, stderr, reason="killed")
    if code != 0:
        raise ExecutionError(code, stderr)
    return ProcessResult(exit_code=code, stdout=stdout, stderr=stderr)
