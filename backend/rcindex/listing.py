from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from rcindex.errors import ParseError


class LsJsonRecord(BaseModel):
    """One element of `rclone lsjson` output. Unused keys (Path, MimeType, ...) are ignored."""

    model_config = ConfigDict(extra="ignore")

    Name: str
    IsDir: bool = False
    Size: Optional[int] = None
    ModTime: Optional[str] = None


_records = TypeAdapter(list[LsJsonRecord])


@dataclass(frozen=True)
class ListingEntry:
    name: str
    url: str
    is_dir: bool
    size: int = -1
    mod_time: Optional[str] = None


def entry_url(request_path: str, name: str, *, is_dir: bool) -> str:
    sep = "/" if request_path else ""
    return f"/{request_path}{sep}{name}{'/' if is_dir else ''}"


def normalize(raw: Optional[bytes], request_path: str) -> list[ListingEntry]:
    if raw is None or not raw.strip():
        return []
    try:
        records = _records.validate_json(raw)
    except ValidationError as e:
        raise ParseError(f"Malformed listing output: {e.errors(include_url=False)[:3]}") from e

    entries: list[ListingEntry] = []
    for rec in records:
        size = rec.Size if (rec.Size is not None and not rec.IsDir) else -1
        entries.append(
            ListingEntry(
                name=rec.Name,
                url=entry_url(request_path, rec.Name, is_dir=rec.IsDir),
                is_dir=rec.IsDir,
                size=size,
                mod_time=rec.ModTime,
            )
        )
    return entries
