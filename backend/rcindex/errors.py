from __future__ import annotations

from typing import Optional


class RcloneIndexError(RuntimeError):
    pass


class FetchError(RcloneIndexError):
    pass


class BinaryNotFoundError(RcloneIndexError):
    pass


class ConfigError(RcloneIndexError):
    pass


class SpawnError(RcloneIndexError):
    pass


class ExecutionError(RcloneIndexError):
    """
    The utility ran but did not exit cleanly.

    `reason` is "exited" for a nonzero exit code and "killed" when the process
    was terminated by a signal (negative return code).
    """

    def __init__(self, exit_code: Optional[int], stderr: bytes, *, reason: str = "exited"):
        self.exit_code = exit_code
        self.stderr = stderr
        self.reason = reason
        text = stderr.decode("utf-8", errors="replace").strip()
        super().__init__(f"Process exited with code {exit_code}: {text}")


class ProcessTimeoutError(RcloneIndexError, TimeoutError):
    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Process timeout after {timeout:g}s")


class ParseError(RcloneIndexError):
    pass


class AuthError(RcloneIndexError):
    def __init__(self, message: str, *, missing: bool = False):
        self.missing = missing
        super().__init__(message)
