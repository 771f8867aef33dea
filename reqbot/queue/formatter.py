"""
Queue monitor rendering.

Turns request records into size-bounded text chunks (one Discord message
each) plus a descriptor of the moderation controls attached to the last chunk.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, Sequence

from .models import ReassignmentRequest, Request


DEFAULT_CHUNK_LIMIT = 1800  # leaves headroom under Discord's 2000 character cap
DIVIDER = "━" * 40
OPTION_TEXT_LIMIT = 100
OPTION_SEPARATOR = "|"

SELECT_ID = "request-select"
SELECT_PLACEHOLDER = "Search and select a request to manage"

REGULAR = "regular"
REASSIGNMENT = "reassignment"


@dataclass(frozen=True)
class QueueOption:
    label: str
    value: str
    description: str = ""
    default: bool = False


@dataclass(frozen=True)
class ActionButton:
    custom_id: str
    label: str
    style: str  # name of a discord.ButtonStyle member
    disabled: bool = True


ACTION_BUTTONS: tuple[ActionButton, ...] = (
    ActionButton("complete-request", "Complete", "success"),
    ActionButton("reject-request", "Reject", "danger"),
    ActionButton("delete-request", "Delete", "secondary"),
)


@dataclass(frozen=True)
class QueueControls:
    options: tuple[QueueOption, ...] = ()
    buttons: tuple[ActionButton, ...] = ACTION_BUTTONS
    select_id: str = SELECT_ID
    placeholder: str = SELECT_PLACEHOLDER

    def selected_value(self) -> str | None:
        return next((o.value for o in self.options if o.default), None)

    def with_selection(self, value: str) -> "QueueControls":
        """Mark `value` as the current choice and enable the action buttons."""
        if not any(o.value == value for o in self.options):
            raise KeyError(value)
        return replace(
            self,
            options=tuple(replace(o, default=o.value == value) for o in self.options),
            buttons=tuple(replace(b, disabled=False) for b in self.buttons),
        )


@dataclass
class QueueRender:
    chunks: list[str]
    controls: QueueControls
    total: int = 0


@dataclass(frozen=True)
class OptionRef:
    kind: str
    record_id: str
    requester_id: str
    project: str
    item_number: str | None = None


def format_timestamp(value: datetime) -> str:
    # "Jan 15, 02:30 PM"
    return f"{value:%b} {value.day}, {value:%I:%M %p}"


def display_name(name: str) -> str:
    return name.split("#")[0]


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


def encode_option_value(kind: str, record_id: str, requester_id: str, project: str, item_number: str | None = None) -> str:
    # project goes last so a separator inside it survives decoding
    parts = [kind, record_id, requester_id, item_number or "", project]
    return _truncate(OPTION_SEPARATOR.join(parts), OPTION_TEXT_LIMIT)


def decode_option_value(value: str) -> OptionRef:
    parts = value.split(OPTION_SEPARATOR, 4)
    if len(parts) != 5 or parts[0] not in (REGULAR, REASSIGNMENT) or not parts[1]:
        raise ValueError(f"Unrecognised queue option value: {value!r}")
    kind, record_id, requester_id, item_number, project = parts
    return OptionRef(kind, record_id, requester_id, project, item_number or None)


def chunk_units(units: Iterable[str], limit: int) -> list[str]:
    """
    Pack text units into chunks no longer than `limit`.

    A new chunk starts whenever the next unit would overflow the current one.
    A unit that is longer than `limit` on its own is truncated.
    """
    chunks: list[str] = []
    buffer = ""
    for unit in units:
        if len(unit) > limit:
            unit = _truncate(unit.rstrip("\n"), limit - 1) + "\n"
        if buffer and len(buffer) + len(unit) > limit:
            chunks.append(buffer)
            buffer = ""
        buffer += unit
    if buffer or not chunks:
        chunks.append(buffer)
    return chunks


def _group(records: Sequence, key) -> dict[str, list]:
    groups: dict[str, list] = {}
    for r in records:
        groups.setdefault(key(r), []).append(r)
    return groups


def render_queue(
    requests: Sequence[Request],
    reassignments: Sequence[ReassignmentRequest],
    limit: int = DEFAULT_CHUNK_LIMIT,
) -> QueueRender:
    total = len(requests) + len(reassignments)
    units: list[str] = ["**Requests Queue**\n", f"Total Requests: {total}\n\n"]

    by_project = _group(requests, lambda r: r.project)
    reassign_by_project = _group(reassignments, lambda r: r.project)
    projects = list(dict.fromkeys([*by_project, *reassign_by_project]))

    ordered: list[tuple[int, Request | ReassignmentRequest]] = []
    next_index = 1

    for pos, project in enumerate(projects):
        units.append(f"**📋 {project}**\n")
        units.append(f"{DIVIDER}\n\n")

        for status, group in _group(by_project.get(project, []), lambda r: r.status.value).items():
            units.append(f"**{status}** ({len(group)})\n")
            for req in group:
                units.append(
                    f"[{next_index}] {display_name(req.requester_name)} - "
                    f"{', '.join(req.technologies)} - {format_timestamp(req.created_at)}\n"
                )
                ordered.append((next_index, req))
                next_index += 1
            units.append("\n")

        for status, group in _group(reassign_by_project.get(project, []), lambda r: r.status.value).items():
            units.append(f"**{status} Reassignment Requests** ({len(group)})\n")
            for req in group:
                units.append(
                    f"[{next_index}] {display_name(req.requester_name)} - "
                    f"Item {req.item_number} - {format_timestamp(req.created_at)}\n"
                )
                ordered.append((next_index, req))
                next_index += 1
            units.append("\n")

        if pos < len(projects) - 1:
            units.append(f"{DIVIDER}\n\n")

    options = tuple(_option_for(index, req) for index, req in ordered)
    return QueueRender(
        chunks=chunk_units(units, limit),
        controls=QueueControls(options=options),
        total=total,
    )


def _option_for(index: int, req: Request | ReassignmentRequest) -> QueueOption:
    name = display_name(req.requester_name)
    if isinstance(req, ReassignmentRequest):
        return QueueOption(
            label=_truncate(f"[{index}] {name} - {req.project} (Reassignment)", OPTION_TEXT_LIMIT),
            description=_truncate(f"Item {req.item_number} - {req.status.value}", OPTION_TEXT_LIMIT),
            value=encode_option_value(REASSIGNMENT, req.id, req.requester_id, req.project, req.item_number),
        )
    return QueueOption(
        label=_truncate(f"[{index}] {name} - {req.project}", OPTION_TEXT_LIMIT),
        description=_truncate(f"{', '.join(req.technologies)} - {req.status.value}", OPTION_TEXT_LIMIT),
        value=encode_option_value(REGULAR, req.id, req.requester_id, req.project),
    )
