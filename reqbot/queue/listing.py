"""
/list-requests: filter stored requests and render them as a box table.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from .formatter import chunk_units, display_name, format_timestamp
from .models import Request


ALL = "all"
FIELD_LIMIT = 1000  # Discord caps embed field values at 1024
TABLE_WIDTH = 100
TABLE_COLUMNS = ("Project", "Technologies", "Name", "Status", "Time")


@dataclass
class Listing:
    description: str
    fields: list[str]
    count: int


def unique_values(requests: Sequence[Request]) -> tuple[list[str], list[str]]:
    """Projects and technologies present in the store, in first-seen order."""
    projects = list(dict.fromkeys(r.project for r in requests))
    technologies = list(dict.fromkeys(t for r in requests for t in r.technologies))
    return projects, technologies


def filter_requests(requests: Sequence[Request], project: str, technologies: Sequence[str]) -> list[Request]:
    out = list(requests)
    if project != ALL:
        out = [r for r in out if r.project.casefold() == project.casefold()]
    if ALL not in technologies:
        wanted = {t.casefold() for t in technologies}
        out = [r for r in out if any(t.casefold() in wanted for t in r.technologies)]
    return out


def render_table(requests: Sequence[Request], width: int = TABLE_WIDTH) -> str:
    table = Table(box=box.SQUARE, show_lines=True)
    for column in TABLE_COLUMNS:
        table.add_column(column, justify="left")
    for r in requests:
        table.add_row(
            r.project,
            ", ".join(r.technologies),
            display_name(r.requester_name),
            r.status.value,
            format_timestamp(r.created_at),
        )
    console = Console(file=io.StringIO(), width=width, color_system=None, force_terminal=False)
    console.print(table)
    return console.file.getvalue().rstrip("\n")


def describe(count: int, project: str, technologies: Sequence[str]) -> str:
    text = f"Found {count} request(s)"
    if project != ALL:
        text += f' for project "{project}"'
    if technologies and ALL not in technologies:
        text += f' with technologies "{", ".join(technologies)}"'
    return text


def build_listing(requests: Sequence[Request], project: str, technologies: Sequence[str]) -> Listing:
    matches = filter_requests(requests, project, technologies)
    fence = "```\n{}\n```"
    table = render_table(matches)
    limit = FIELD_LIMIT - len(fence.format(""))
    chunks = chunk_units((line + "\n" for line in table.split("\n")), limit)
    return Listing(
        description=describe(len(matches), project, technologies),
        fields=[fence.format(c.rstrip("\n")) for c in chunks],
        count=len(matches),
    )
