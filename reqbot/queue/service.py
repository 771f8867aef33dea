"""
Request submission: what happens once a selection flow reaches SUBMITTED.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence

from reqbot.storage.memory import Database

from .errors import DuplicateRequestError
from .models import (
    LAST_SELECTIONS,
    REASSIGNMENTS,
    REQUESTS,
    LastSelection,
    ReassignmentRequest,
    Request,
    Status,
    dedupe,
)


logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], Awaitable[None]]


@dataclass
class SubmitResult:
    message: str
    record_id: str | None = None
    created: bool = False
    updated: bool = False
    added: list[str] = field(default_factory=list)
    already_requested: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.created or self.updated


async def _noop() -> None:
    return None


class RequestService:
    def __init__(self, db: Database, on_change: ChangeCallback | None = None):
        self.db = db
        self.on_change = on_change or _noop

    @property
    def requests(self):
        return self.db.collection(REQUESTS)

    @property
    def reassignments(self):
        return self.db.collection(REASSIGNMENTS)

    async def _changed(self) -> None:
        try:
            await self.on_change()
        except Exception:  # noqa: BLE001
            # The record is already stored; a failed queue refresh must not
            # turn a successful submission into an error for the user.
            logger.exception("Queue refresh after submission failed")

    async def submit_request(
        self,
        project: str,
        technologies: Sequence[str],
        requester_name: str,
        requester_id: str | int,
    ) -> SubmitResult:
        technologies = dedupe(technologies)
        requester_id = str(requester_id)
        existing = await self.requests.find_one({"project": project, "requester_id": requester_id})

        if existing:
            current = list(existing.get("technologies") or [])
            current_folded = {t.casefold() for t in current}
            added = [t for t in technologies if t.casefold() not in current_folded]
            duplicates = [t for t in technologies if t.casefold() in current_folded]

            if not added:
                return SubmitResult(
                    message=(
                        f"You already have a request for {existing['project']} with all selected "
                        f"technologies: {', '.join(duplicates)}"
                    ),
                    record_id=existing["id"],
                    already_requested=duplicates,
                )

            await self.requests.update({"id": existing["id"]}, {"technologies": current + added})
            logger.info(
                "Request %s updated by %s: +%s", existing["id"], requester_id, ", ".join(added)
            )
            await self._changed()

            lines = ["Request updated:"]
            if duplicates:
                lines.append(f"- Already requested: {', '.join(duplicates)}")
            lines.append(f"- New technologies added: {', '.join(added)}")
            return SubmitResult(
                message="\n".join(lines),
                record_id=existing["id"],
                updated=True,
                added=added,
                already_requested=duplicates,
            )

        request = Request(
            project=project,
            technologies=technologies,
            requester_name=requester_name,
            requester_id=requester_id,
            status=Status.PENDING,
        )
        record_id = await self.requests.insert(request.to_record())
        logger.info("Request %s created by %s for %s", record_id, requester_id, project)
        await self._changed()
        return SubmitResult(
            message=(
                "Request submitted successfully!\n"
                f"Project: {project}\nTechnologies: {', '.join(technologies)}"
            ),
            record_id=record_id,
            created=True,
            added=list(technologies),
        )

    async def find_reassignment(self, project: str, item_number: str, requester_id: str | int):
        return await self.reassignments.find_one(
            {"project": project, "item_number": item_number.strip(), "requester_id": str(requester_id)}
        )

    async def reassignment_conflict(self, project: str, item_number: str, requester_id: str | int) -> str | None:
        """The refusal shown to the user when this reassignment was already requested, else None."""
        item_number = item_number.strip()
        if await self.find_reassignment(project, item_number, requester_id):
            return f"You already have a reassignment request for item {item_number} in project {project}."
        return None

    async def submit_reassignment(
        self,
        project: str,
        item_number: str,
        requester_name: str,
        requester_id: str | int,
    ) -> SubmitResult:
        item_number = item_number.strip()
        if conflict := await self.reassignment_conflict(project, item_number, requester_id):
            raise DuplicateRequestError(conflict)

        request = ReassignmentRequest(
            project=project,
            item_number=item_number,
            requester_name=requester_name,
            requester_id=str(requester_id),
            status=Status.PENDING,
        )
        record_id = await self.reassignments.insert(request.to_record())
        logger.info(
            "Reassignment %s created by %s for %s item %s", record_id, requester_id, project, item_number
        )
        await self._changed()
        return SubmitResult(
            message=(
                "Reassignment request submitted successfully!\n"
                f"Project: {project}\nItem Number: {item_number}"
            ),
            record_id=record_id,
            created=True,
        )

    # ── Last selections ─────────────────────────────────────────────────────

    async def remember_selection(self, command_key: str, user_id: str | int, project: str, technologies: Sequence[str]) -> None:
        await self.db.collection(LAST_SELECTIONS).upsert(
            {"command_key": command_key, "user_id": str(user_id)},
            {"project": project, "technologies": list(technologies)},
        )

    async def last_selection(self, command_key: str, user_id: str | int) -> LastSelection | None:
        record = await self.db.collection(LAST_SELECTIONS).find_one(
            {"command_key": command_key, "user_id": str(user_id)}
        )
        return LastSelection.from_record(record) if record else None
