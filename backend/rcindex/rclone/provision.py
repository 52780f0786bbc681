from __future__ import annotations

import asyncio
import os
import shutil
import zipfile
from pathlib import Path
from typing import Optional

import httpx

from rcindex.errors import BinaryNotFoundError, FetchError
from rcindex.logging.ndjson import log_event


EXECUTABLE_NAME = "rclone"


def find_executable_member(names: list[str], executable: str = EXECUTABLE_NAME) -> Optional[str]:
    """
    Return the archive member holding the executable.

    Release archives bundle the binary inside a version-named directory
    (rclone-v1.66.0-linux-amd64/rclone), so only the final path component is compared.
    """
    for name in names:
        if name.endswith("/"):
            continue
        if name == executable or name.endswith("/" + executable):
            return name
    return None


class BinaryProvisioner:
    """
    Owns the on-disk lifecycle of the rclone binary: fetched once, never modified afterwards.
    """

    def __init__(
        self,
        *,
        binary_path: Path,
        archive_path: Path,
        download_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.binary_path = binary_path
        self.archive_path = archive_path
        self.download_url = download_url
        self._transport = transport
        self._lock = asyncio.Lock()

    async def ensure_binary(self) -> Path:
        if self.binary_path.exists():
            return self.binary_path
        # Concurrent first requests wait here; whoever loses the race sees the installed file.
        async with self._lock:
            if self.binary_path.exists():
                return self.binary_path
            payload = await self._download()
            await asyncio.to_thread(self._install, payload)
        log_event(level="info", event="provision.installed", data={"path": str(self.binary_path)})
        return self.binary_path

    async def _download(self) -> bytes:
        log_event(level="info", event="provision.download", data={"url": self.download_url})
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(120.0),
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                r = await client.get(self.download_url)
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to download rclone: {e}") from e
        if not r.is_success:
            raise FetchError(f"Failed to download rclone: {r.status_code} {r.reason_phrase}")
        return r.content

    def _install(self, payload: bytes) -> None:
        scratch = self.archive_path.parent
        scratch.mkdir(parents=True, exist_ok=True)
        self.archive_path.write_bytes(payload)
        try:
            try:
                with zipfile.ZipFile(self.archive_path) as zf:
                    member = find_executable_member(zf.namelist())
                    if member is None:
                        raise BinaryNotFoundError("rclone binary not found in archive")
                    zf.extractall(scratch)
            except zipfile.BadZipFile as e:
                raise FetchError(f"Downloaded archive is not a valid zip file: {e}") from e

            extracted = scratch / member
            self.binary_path.parent.mkdir(parents=True, exist_ok=True)
            os.replace(extracted, self.binary_path)
            self.binary_path.chmod(0o755)
            self._remove_extracted_dir(extracted.parent, scratch)
        finally:
            self._remove_archive()

    def _remove_archive(self) -> None:
        try:
            self.archive_path.unlink(missing_ok=True)
        except OSError as e:
            log_event(
                level="warn",
                event="provision.cleanup_failed",
                data={"path": str(self.archive_path), "error": str(e)},
            )

    def _remove_extracted_dir(self, extracted_dir: Path, scratch: Path) -> None:
        if extracted_dir.resolve() == scratch.resolve() or not extracted_dir.exists():
            return
        try:
            shutil.rmtree(extracted_dir)
        except OSError as e:
            log_event(
                level="warn",
                event="provision.cleanup_failed",
                data={"path": str(extracted_dir), "error": str(e)},
            )
