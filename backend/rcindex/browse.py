from __future__ import annotations

from pathlib import Path
from typing import Optional

import httpx

from rcindex.listing import ListingEntry, normalize
from rcindex.logging.ndjson import log_event
from rcindex.rclone.config import COMPOSITE_NAME, ConfigSynthesizer
from rcindex.rclone.executor import run
from rcindex.rclone.provision import BinaryProvisioner
from rcindex.settings.env import IndexSettings


_provisioners: dict[tuple[Path, str], BinaryProvisioner] = {}


def provisioner_for(settings: IndexSettings) -> BinaryProvisioner:
    """
    One provisioner per (binary path, download URL) for the life of the process, so that
    concurrent first requests share its install lock.
    """
    key = (settings.binary_path, settings.rclone_url)
    p = _provisioners.get(key)
    if p is None:
        p = BinaryProvisioner(
            binary_path=settings.binary_path,
            archive_path=settings.archive_path,
            download_url=settings.rclone_url,
        )
        _provisioners[key] = p
    return p


def lsjson_args(request_path: str, config_path: Path) -> list[str]:
    return ["lsjson", f"{COMPOSITE_NAME}:{request_path}", "--config", str(config_path)]


async def list_directory(
    settings: IndexSettings,
    request_path: str,
    *,
    provisioner: Optional[BinaryProvisioner] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    request_id: Optional[str] = None,
) -> list[ListingEntry]:
    binary = await (provisioner or provisioner_for(settings)).ensure_binary()
    config = await ConfigSynthesizer(
        config_path=settings.config_path,
        config_base64=settings.config_base64,
        config_url=settings.config_url,
        transport=transport,
    ).ensure_config()
    result = await run(binary, lsjson_args(request_path, config), timeout=settings.exec_timeout)
    entries = normalize(result.stdout, request_path)
    log_event(
        level="info",
        event="listing.request",
        data={"path": request_path, "entries": len(entries)},
        request_id=request_id,
    )
    return entries
