from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


REQUESTS = "requests"
REASSIGNMENTS = "reassignment_requests"
QUEUE_MONITOR = "queue_monitor"
LAST_SELECTIONS = "last_selections"

MONITOR_ID = "monitor"

# Project and technology names are matched case-insensitively; ids, requester
# ids and item numbers are matched exactly.
CASE_POLICIES: dict[str, tuple[str, ...]] = {
    REQUESTS: ("project", "technologies"),
    REASSIGNMENTS: ("project",),
    LAST_SELECTIONS: (),
    QUEUE_MONITOR: (),
}


class Status(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def dedupe(values: Any) -> list[str]:
    """Drop duplicates, ignoring case, while keeping the first-seen spelling and order."""
    seen: dict[str, str] = {}
    for v in values:
        seen.setdefault(v.casefold(), v)
    return list(seen.values())


@dataclass
class Request:
    project: str
    technologies: list[str]
    requester_name: str
    requester_id: str
    status: Status = Status.PENDING
    created_at: datetime = field(default_factory=utcnow)
    id: str | None = None

    def __post_init__(self) -> None:
        self.technologies = dedupe(self.technologies)
        self.status = Status(self.status)
        self.requester_id = str(self.requester_id)

    def to_record(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        if data["id"] is None:
            del data["id"]
        return data

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Request":
        return cls(
            id=record.get("id"),
            project=record["project"],
            technologies=list(record.get("technologies") or []),
            requester_name=record["requester_name"],
            requester_id=record["requester_id"],
            status=record.get("status", Status.PENDING),
            created_at=record.get("created_at") or utcnow(),
        )


@dataclass
class ReassignmentRequest:
    project: str
    item_number: str
    requester_name: str
    requester_id: str
    status: Status = Status.PENDING
    created_at: datetime = field(default_factory=utcnow)
    id: str | None = None

    def __post_init__(self) -> None:
        self.item_number = str(self.item_number).strip()
        self.status = Status(self.status)
        self.requester_id = str(self.requester_id)

    def to_record(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        if data["id"] is None:
            del data["id"]
        return data

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ReassignmentRequest":
        return cls(
            id=record.get("id"),
            project=record["project"],
            item_number=record["item_number"],
            requester_name=record["requester_name"],
            requester_id=record["requester_id"],
            status=record.get("status", Status.PENDING),
            created_at=record.get("created_at") or utcnow(),
        )


@dataclass
class QueueMonitorConfig:
    channel_id: int
    webhook_id: int
    webhook_token: str
    message_ids: list[str] = field(default_factory=list)
    project_filter: str | None = None
    include_reassignments: bool = True

    def to_record(self) -> dict[str, Any]:
        return {"id": MONITOR_ID, **asdict(self)}

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "QueueMonitorConfig":
        return cls(
            channel_id=int(record["channel_id"]),
            webhook_id=int(record["webhook_id"]),
            webhook_token=record["webhook_token"],
            message_ids=[str(m) for m in record.get("message_ids") or []],
            project_filter=record.get("project_filter") or None,
            include_reassignments=bool(record.get("include_reassignments", True)),
        )


@dataclass
class LastSelection:
    command_key: str
    project: str
    technologies: list[str]

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "LastSelection":
        return cls(
            command_key=record["command_key"],
            project=record["project"],
            technologies=list(record.get("technologies") or []),
        )
