from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from rcindex.listing import ListingEntry


TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass(frozen=True)
class Breadcrumb:
    text: str
    link: str


def breadcrumbs(current_path: str) -> list[Breadcrumb]:
    parts = [p for p in current_path.split("/") if p]
    crumbs = [Breadcrumb(text="Home", link="/")]
    for i, part in enumerate(parts):
        crumbs.append(Breadcrumb(text=part, link="/" + "/".join(parts[: i + 1])))
    return crumbs


def render_listing(entries: Sequence[ListingEntry], current_path: str, dark_mode: bool = False) -> str:
    template = _env.get_template("dark.html" if dark_mode else "light.html")
    return template.render(
        title=current_path or "Root",
        breadcrumbs=breadcrumbs(current_path),
        entries=list(entries),
        at_root=not current_path.strip("/"),
    )
