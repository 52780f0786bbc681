from __future__ import annotations

import asyncio
import base64
import binascii
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import httpx

from rcindex.errors import ConfigError
from rcindex.logging.ndjson import log_event


COMPOSITE_NAME = "combine"
PLACEHOLDER_CONFIG = "[combine]\ntype = alias\nremote = dummy"

_HEADER_RE = re.compile(r"^\[([^\]]+)\]")


@dataclass(frozen=True)
class RemoteDefinition:
    name: str
    backend_type: str = ""
    params: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for k, v in self.params:
            if k == key:
                return v
        return default

    def render(self) -> str:
        lines = [f"[{self.name}]"]
        if self.backend_type:
            lines.append(f"type = {self.backend_type}")
        lines.extend(f"{k} = {v}" for k, v in self.params)
        return "\n".join(lines)


def section_names(text: str) -> list[str]:
    return [r.name for r in parse_remotes(text)]


def parse_remotes(text: str) -> list[RemoteDefinition]:
    """
    Parse INI-like rclone config text into remotes, in order of appearance.
    Lines before the first header, blanks and `#`/`;` comments are ignored.
    """
    remotes: list[RemoteDefinition] = []
    name: Optional[str] = None
    backend_type = ""
    params: list[tuple[str, str]] = []

    def flush() -> None:
        if name is not None:
            remotes.append(RemoteDefinition(name=name, backend_type=backend_type, params=tuple(params)))

    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith(("#", ";")):
            continue
        m = _HEADER_RE.match(line)
        if m:
            flush()
            name, backend_type, params = m.group(1), "", []
            continue
        if name is None or "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        if key == "type":
            backend_type = value
        else:
            params.append((key, value))
    flush()
    return remotes


def build_composite(remotes: list[RemoteDefinition]) -> RemoteDefinition:
    names = list(dict.fromkeys(r.name for r in remotes if r.name != COMPOSITE_NAME))
    upstreams = " ".join(f"{n}={n}:" for n in names)
    return RemoteDefinition(name=COMPOSITE_NAME, backend_type="combine", params=(("upstreams", upstreams),))


def synthesize_config(text: str) -> str:
    """
    Append a `[combine]` remote over every section when none exists yet.
    Text that already has one, or has no sections at all, is returned unchanged.
    """
    remotes = parse_remotes(text)
    if not remotes or any(r.name == COMPOSITE_NAME for r in remotes):
        return text
    composite = build_composite(remotes)
    return f"{text}\n\n{composite.render()}"


def _write_atomic(path: Path, text: str) -> None:
    # Concurrent requests may rewrite the file; readers always see a whole file.
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class ConfigSynthesizer:
    """
    Re-derives the rclone config on every call: base text from CONFIG_BASE64,
    CONFIG_URL or the placeholder, then the composite remote appended if missing.
    """

    def __init__(
        self,
        *,
        config_path: Path,
        config_base64: Optional[str] = None,
        config_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config_path = config_path
        self.config_base64 = config_base64
        self.config_url = config_url
        self._transport = transport

    async def ensure_config(self) -> Path:
        base = await self._base_text()
        text = synthesize_config(base)
        if text != base:
            log_event(
                level="info",
                event="config.combine_added",
                data={"remotes": section_names(base)},
            )
        await asyncio.to_thread(_write_atomic, self.config_path, text)
        return self.config_path

    async def _base_text(self) -> str:
        if self.config_base64:
            log_event(level="info", event="config.source", data={"source": "base64"})
            return self._decode_base64(self.config_base64)
        if self.config_url:
            try:
                text = await self._fetch(self.config_url)
            except httpx.HTTPError as e:
                log_event(
                    level="warn",
                    event="config.url_fallback",
                    data={"url": self.config_url, "error": str(e)},
                )
            else:
                log_event(level="info", event="config.source", data={"source": "url", "url": self.config_url})
                return text
        log_event(level="info", event="config.source", data={"source": "placeholder"})
        return PLACEHOLDER_CONFIG

    @staticmethod
    def _decode_base64(blob: str) -> str:
        try:
            return base64.b64decode(blob.strip(), validate=False).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ConfigError(f"CONFIG_BASE64 is not valid base64 UTF-8 text: {e}") from e

    async def _fetch(self, url: str) -> str:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(15.0),
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            r = await client.get(url)
            r.raise_for_status()
            return r.text
