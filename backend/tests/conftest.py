from __future__ import annotations

import io
import os
import stat
import zipfile
from pathlib import Path

import pytest


_ENV_KEYS = (
    "USERNAME",
    "PASSWORD",
    "CONFIG_BASE64",
    "CONFIG_URL",
    "DARK_MODE",
    "RCINDEX_RCLONE_URL",
    "RCINDEX_EXEC_TIMEOUT",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setenv("RCINDEX_SCRATCH_DIR", str(scratch))
    monkeypatch.setenv("RCINDEX_LOG_DIR", str(tmp_path / "logs"))
    return scratch


def write_script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def make_zip(members: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return buf.getvalue()


@pytest.fixture
def script_factory(tmp_path: Path):
    def _make(name: str, body: str) -> Path:
        return write_script(tmp_path / name, body)

    return _make


@pytest.fixture
def scratch_dir() -> Path:
    return Path(os.environ["RCINDEX_SCRATCH_DIR"])
