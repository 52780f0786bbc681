from __future__ import annotations

import json
import os
import threading
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

_lock = threading.Lock()

LOG_PREFIX = "rcindex"
MAX_ROLLOVERS = 100


def _backend_dir() -> Path:
    # backend/rcindex/logging/ndjson.py -> backend/
    return Path(__file__).resolve().parents[2]


def log_dir() -> Path:
    p = os.environ.get("RCINDEX_LOG_DIR")
    return Path(p) if p else _backend_dir() / "data" / "logs"


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _day_prefix(ts: Optional[float] = None) -> str:
    return datetime.fromtimestamp(ts or time.time()).strftime(f"{LOG_PREFIX}-%Y-%m-%d")


def _clip(v: Any, *, max_len: int = 600, max_items: int = 40) -> Any:
    """Bound record size: long strings are cut, containers keep their first `max_items`."""
    if v is None or isinstance(v, (bool, int, float)):
        return v
    if isinstance(v, str):
        return v if len(v) <= max_len else v[:max_len] + f"...(+{len(v) - max_len} chars)"
    if isinstance(v, dict):
        out = {str(k): _clip(vv, max_len=max_len) for k, vv in list(v.items())[:max_items]}
        if len(v) > max_items:
            out["_truncated_keys"] = len(v) - max_items
        return out
    if isinstance(v, (list, tuple)):
        items = [_clip(x, max_len=max_len) for x in list(v)[:max_items]]
        if len(v) > max_items:
            items.append({"_truncated_items": len(v) - max_items})
        return items
    return _clip(str(v), max_len=max_len)


def _current_file() -> Path:
    """Today's file, or the first rollover suffix still under RCINDEX_LOG_MAX_BYTES."""
    d = log_dir()
    d.mkdir(parents=True, exist_ok=True)
    prefix = _day_prefix()
    limit = _env_int("RCINDEX_LOG_MAX_BYTES", 20 * 1024 * 1024)
    candidates = [d / f"{prefix}.ndjson"] + [d / f"{prefix}.{i}.ndjson" for i in range(1, MAX_ROLLOVERS)]
    for p in candidates:
        if not p.exists() or p.stat().st_size < limit:
            return p
    return candidates[-1]


def _prune_old_files() -> None:
    d = log_dir()
    if not d.is_dir():
        return
    cutoff = (datetime.now() - timedelta(days=_env_int("RCINDEX_LOG_RETENTION_DAYS", 7))).timestamp()
    for p in d.glob(f"{LOG_PREFIX}-*.ndjson"):
        try:
            if p.stat().st_mtime < cutoff:
                p.unlink(missing_ok=True)
        except OSError:
            continue


def init_logging() -> None:
    with _lock:
        log_dir().mkdir(parents=True, exist_ok=True)
        _prune_old_files()


def log_event(
    *,
    level: str,
    event: str,
    data: Optional[dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> None:
    """
    Append one NDJSON record. Best-effort: a failure to serialise or write is dropped.
    Never include secrets; callers pass paths, sizes and exit codes, not credentials or config text.
    """
    rec: dict[str, Any] = {"ts": int(time.time() * 1000), "level": level, "event": event}
    if request_id:
        rec["requestId"] = request_id
    if data:
        rec["data"] = _clip(data)

    with _lock:
        try:
            line = json.dumps(rec, ensure_ascii=False, default=str)
            with open(_current_file(), "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:  # noqa: BLE001
            # Logging must never fail the request that triggered it.
            pass
