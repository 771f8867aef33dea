"""
Queue monitor synchronisation.

Publishes the rendered queue to an external message surface (a Discord
webhook in production) and applies the moderation actions triggered from it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from reqbot.storage.memory import Database

from .errors import QueueActionError
from .formatter import (
    DEFAULT_CHUNK_LIMIT,
    REASSIGNMENT,
    QueueControls,
    QueueRender,
    decode_option_value,
    render_queue,
)
from .models import (
    MONITOR_ID,
    QUEUE_MONITOR,
    REASSIGNMENTS,
    REQUESTS,
    QueueMonitorConfig,
    ReassignmentRequest,
    Request,
    Status,
)


logger = logging.getLogger(__name__)

ACTIONS = {
    "complete-request": "complete",
    "reject-request": "reject",
    "delete-request": "delete",
}


class QueueSurface(Protocol):
    async def send(self, content: str, controls: QueueControls | None = None) -> str: ...

    async def delete(self, message_id: str) -> None: ...


class Notifier(Protocol):
    async def notify(self, user_id: str, text: str) -> None: ...


SurfaceFactory = Callable[[QueueMonitorConfig], QueueSurface]


@dataclass
class ActionOutcome:
    action: str
    record_id: str
    message: str
    notified: bool = False


def filter_by_project(records: list, project_filter: str | None) -> list:
    if not project_filter:
        return records
    needle = project_filter.casefold()
    return [r for r in records if needle in r.project.casefold()]


class QueueSync:
    def __init__(
        self,
        db: Database,
        surface_factory: SurfaceFactory,
        notifier: Notifier,
        chunk_limit: int = DEFAULT_CHUNK_LIMIT,
    ):
        self.db = db
        self.surface_factory = surface_factory
        self.notifier = notifier
        self.chunk_limit = chunk_limit
        # one publish at a time: the stored message ids must match the surface
        self._publish_lock = asyncio.Lock()

    # ── Config ──────────────────────────────────────────────────────────────

    async def load_config(self) -> QueueMonitorConfig | None:
        record = await self.db.collection(QUEUE_MONITOR).find_one({"id": MONITOR_ID})
        return QueueMonitorConfig.from_record(record) if record else None

    async def save_config(self, config: QueueMonitorConfig) -> None:
        record = config.to_record()
        record.pop("id")
        await self.db.collection(QUEUE_MONITOR).upsert({"id": MONITOR_ID}, record)

    # ── Rendering / publishing ──────────────────────────────────────────────

    async def render(self, config: QueueMonitorConfig) -> QueueRender:
        requests = [Request.from_record(r) for r in await self.db.collection(REQUESTS).find_all()]
        reassignments: list[ReassignmentRequest] = []
        if config.include_reassignments:
            reassignments = [
                ReassignmentRequest.from_record(r)
                for r in await self.db.collection(REASSIGNMENTS).find_all()
            ]
        return render_queue(
            filter_by_project(requests, config.project_filter),
            filter_by_project(reassignments, config.project_filter),
            limit=self.chunk_limit,
        )

    async def _delete_messages(self, surface: QueueSurface, message_ids: list[str]) -> None:
        for message_id in message_ids:
            try:
                await surface.delete(message_id)
            except Exception as e:  # noqa: BLE001
                logger.warning("Could not delete queue message %s: %s", message_id, e)

    async def publish(self, config: QueueMonitorConfig) -> list[str]:
        """
        Replace the queue messages on the surface with a fresh rendering.

        Previously sent messages are deleted best-effort. The ids of the new
        messages are persisted even if a later send fails, so the next publish
        can clean them up. Publishes never overlap.
        """
        async with self._publish_lock:
            return await self._publish(config)

    async def _publish(self, config: QueueMonitorConfig) -> list[str]:
        rendered = await self.render(config)
        surface = self.surface_factory(config)

        if config.message_ids:
            await self._delete_messages(surface, config.message_ids)
            config.message_ids = []

        sent: list[str] = []
        try:
            for pos, chunk in enumerate(rendered.chunks):
                is_last = pos == len(rendered.chunks) - 1
                sent.append(await surface.send(chunk, rendered.controls if is_last else None))
        except Exception:
            logger.exception("Failed to send queue message %d/%d", len(sent) + 1, len(rendered.chunks))
            raise
        finally:
            config.message_ids = sent
            await self.save_config(config)

        logger.info("Queue published: %d request(s) in %d message(s)", rendered.total, len(sent))
        return sent

    async def refresh(self) -> None:
        async with self._publish_lock:
            config = await self.load_config()
            if config is None:
                logger.info("No queue monitor configured; skipping queue refresh")
                return
            await self._publish(config)

    async def install(self, config: QueueMonitorConfig) -> list[str]:
        """Replace any existing monitor with `config` and publish to it."""
        async with self._publish_lock:
            previous = await self.load_config()
            if previous is not None and previous.message_ids:
                await self._delete_messages(self.surface_factory(previous), previous.message_ids)
            config.message_ids = []
            await self.save_config(config)
            return await self._publish(config)

    # ── Actions ─────────────────────────────────────────────────────────────

    @staticmethod
    def select_option(controls: QueueControls, value: str) -> QueueControls:
        try:
            return controls.with_selection(value)
        except KeyError:
            raise QueueActionError("That request is no longer in the queue.") from None

    async def _notify(self, user_id: str, text: str) -> bool:
        try:
            await self.notifier.notify(user_id, text)
            return True
        except Exception as e:  # noqa: BLE001
            logger.warning("Could not notify user %s: %s", user_id, e)
            return False

    async def handle_action(self, custom_id: str, selected_value: str | None, actor_name: str) -> ActionOutcome:
        action = ACTIONS.get(custom_id)
        if action is None:
            raise QueueActionError(f"Unknown queue action: {custom_id}")
        if not selected_value:
            raise QueueActionError("Please select a request first.")
        try:
            ref = decode_option_value(selected_value)
        except ValueError:
            raise QueueActionError("Could not read the selected request. Please select it again.") from None

        is_reassignment = ref.kind == REASSIGNMENT
        collection = self.db.collection(REASSIGNMENTS if is_reassignment else REQUESTS)
        record = await collection.find_one({"id": ref.record_id})
        if record is None:
            raise QueueActionError(
                "Reassignment request not found." if is_reassignment else "Request not found."
            )

        notified = False
        if action == "delete":
            await collection.delete({"id": ref.record_id})
            message = "Request deleted."
        else:
            status = Status.APPROVED if action == "complete" else Status.REJECTED
            await collection.update({"id": ref.record_id}, {"status": status.value})
            if is_reassignment:
                req = ReassignmentRequest.from_record(record)
                text = (
                    f"✅ Your reassignment request for item {req.item_number} in project {req.project} "
                    "has been approved."
                    if status is Status.APPROVED
                    else f"❌ Your reassignment request for item {req.item_number} in project {req.project} "
                    f"has been rejected by {actor_name}. Please contact this person if you are doubtful "
                    "of why your request was rejected."
                )
            else:
                req = Request.from_record(record)
                text = (
                    f"✅ Your request for {req.project} in technologies {', '.join(req.technologies)} "
                    "have been processed. Please check the platform, you should have one or more item/s assigned."
                    if status is Status.APPROVED
                    else f"❌ Your request has been rejected by {actor_name}. Please contact this person "
                    "if you are doubtful of why your request was rejected."
                )
            notified = await self._notify(req.requester_id, text)
            message = f"Request marked as {status.value}."
            if not notified:
                message += " (The requester could not be notified by DM.)"

        logger.info("Queue action %s on %s %s by %s", action, ref.kind, ref.record_id, actor_name)
        await self.refresh()
        return ActionOutcome(action=action, record_id=ref.record_id, message=message, notified=notified)
