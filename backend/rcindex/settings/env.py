from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_RCLONE_URL = "https://downloads.rclone.org/rclone-current-linux-amd64.zip"
DEFAULT_EXEC_TIMEOUT = 25.0


@dataclass(frozen=True)
class IndexSettings:
    username: Optional[str]
    password: Optional[str]
    config_base64: Optional[str]
    config_url: Optional[str]
    dark_mode: bool
    scratch_dir: Path
    rclone_url: str
    exec_timeout: float

    @property
    def auth_enabled(self) -> bool:
        return bool(self.username and self.password)

    @property
    def binary_path(self) -> Path:
        return self.scratch_dir / "rclone"

    @property
    def archive_path(self) -> Path:
        return self.scratch_dir / "rclone.zip"

    @property
    def config_path(self) -> Path:
        return self.scratch_dir / "rclone.conf"


def _opt(name: str) -> Optional[str]:
    v = os.environ.get(name)
    if v is None or not v.strip():
        return None
    return v


def _exec_timeout() -> float:
    raw = os.environ.get("RCINDEX_EXEC_TIMEOUT", "").strip()
    if not raw:
        return DEFAULT_EXEC_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_EXEC_TIMEOUT
    return value if value > 0 else DEFAULT_EXEC_TIMEOUT


def load_settings() -> IndexSettings:
    """
    Snapshot the environment for one request.

    Supported env vars:
    - USERNAME / PASSWORD: basic auth, enabled only when both are set
    - CONFIG_BASE64: base64-encoded rclone config (takes priority)
    - CONFIG_URL: URL to fetch the rclone config from
    - DARK_MODE: "true" selects the dark listing template
    - RCINDEX_SCRATCH_DIR (default /tmp), RCINDEX_RCLONE_URL, RCINDEX_EXEC_TIMEOUT (seconds)
    """
    scratch = Path(os.environ.get("RCINDEX_SCRATCH_DIR", "").strip() or "/tmp").expanduser()
    return IndexSettings(
        username=_opt("USERNAME"),
        password=_opt("PASSWORD"),
        config_base64=_opt("CONFIG_BASE64"),
        config_url=_opt("CONFIG_URL"),
        dark_mode=(os.environ.get("DARK_MODE") or "").strip().lower() == "true",
        scratch_dir=scratch,
        rclone_url=os.environ.get("RCINDEX_RCLONE_URL", "").strip() or DEFAULT_RCLONE_URL,
        exec_timeout=_exec_timeout(),
    )
