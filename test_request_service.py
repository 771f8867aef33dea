#!/usr/bin/env python3
"""
Tests for request submission.

Usage:
    python -m unittest test_request_service
"""

import unittest
from unittest.mock import AsyncMock

from reqbot.queue.errors import DuplicateRequestError
from reqbot.queue.models import CASE_POLICIES, REASSIGNMENTS, REQUESTS
from reqbot.queue.samples import SAMPLE_REQUESTS, seed_sample_requests
from reqbot.queue.service import RequestService
from reqbot.storage.memory import MemoryDatabase


class SubmitRequestTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.db = MemoryDatabase(CASE_POLICIES)
        self.on_change = AsyncMock()
        self.service = RequestService(self.db, on_change=self.on_change)

    async def test_new_request_is_pending(self):
        result = await self.service.submit_request("Alpha", ["Python", "Go"], "ann#1", 11)
        self.assertTrue(result.created)
        self.assertEqual(result.message, "Request submitted successfully!\nProject: Alpha\nTechnologies: Python, Go")

        record = await self.db.collection(REQUESTS).find_one({"id": result.record_id})
        self.assertEqual(record["status"], "Pending")
        self.assertEqual(record["requester_id"], "11")
        self.on_change.assert_awaited_once()

    async def test_existing_request_gains_only_new_technologies(self):
        await self.service.submit_request("Alpha", ["Python"], "ann", 11)
        result = await self.service.submit_request("alpha", ["python", "Go"], "ann", 11)

        self.assertTrue(result.updated)
        self.assertEqual(result.added, ["Go"])
        self.assertEqual(result.already_requested, ["python"])
        self.assertEqual(
            result.message,
            "Request updated:\n- Already requested: python\n- New technologies added: Go",
        )
        records = await self.db.collection(REQUESTS).find_all()
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0]["technologies"], ["Python", "Go"])
        self.assertEqual(self.on_change.await_count, 2)

    async def test_technologies_differing_only_in_case_are_merged(self):
        await self.service.submit_request("Alpha", ["Python"], "ann", 11)
        result = await self.service.submit_request("Alpha", ["Go", "go", "PYTHON"], "ann", 11)

        self.assertEqual(result.added, ["Go"])
        record = await self.db.collection(REQUESTS).find_one({"id": result.record_id})
        self.assertEqual(record["technologies"], ["Python", "Go"])

        fresh = await self.service.submit_request("Beta", ["Rust", "rust"], "ann", 11)
        self.assertEqual(fresh.message, "Request submitted successfully!\nProject: Beta\nTechnologies: Rust")

    async def test_nothing_new_leaves_store_untouched(self):
        await self.service.submit_request("Alpha", ["Python", "Go"], "ann", 11)
        result = await self.service.submit_request("Alpha", ["Go"], "ann", 11)

        self.assertFalse(result.changed)
        self.assertEqual(result.message, "You already have a request for Alpha with all selected technologies: Go")
        self.on_change.assert_awaited_once()

    async def test_requests_are_per_requester(self):
        await self.service.submit_request("Alpha", ["Python"], "ann", 11)
        await self.service.submit_request("Alpha", ["Python"], "bob", 12)
        self.assertEqual(await self.db.collection(REQUESTS).count(), 2)

    async def test_refresh_failure_does_not_fail_submission(self):
        self.on_change.side_effect = RuntimeError("webhook gone")
        with self.assertLogs("reqbot.queue.service", level="ERROR"):
            result = await self.service.submit_request("Alpha", ["Python"], "ann", 11)
        self.assertTrue(result.created)


class SubmitReassignmentTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.db = MemoryDatabase(CASE_POLICIES)
        self.service = RequestService(self.db)

    async def test_duplicate_is_rejected_before_any_change(self):
        result = await self.service.submit_reassignment("Alpha", " 42 ", "ann", 11)
        self.assertEqual(result.message, "Reassignment request submitted successfully!\nProject: Alpha\nItem Number: 42")

        with self.assertRaises(DuplicateRequestError) as ctx:
            await self.service.submit_reassignment("ALPHA", "42", "ann", 11)
        self.assertEqual(str(ctx.exception), "You already have a reassignment request for item 42 in project ALPHA.")
        self.assertEqual(await self.db.collection(REASSIGNMENTS).count(), 1)

    async def test_other_items_and_users_are_allowed(self):
        await self.service.submit_reassignment("Alpha", "42", "ann", 11)
        await self.service.submit_reassignment("Alpha", "43", "ann", 11)
        await self.service.submit_reassignment("Alpha", "42", "bob", 12)
        self.assertEqual(await self.db.collection(REASSIGNMENTS).count(), 3)


class LastSelectionTest(unittest.IsolatedAsyncioTestCase):
    async def test_remember_is_per_user_and_command(self):
        service = RequestService(MemoryDatabase(CASE_POLICIES))
        await service.remember_selection("request-items", 1, "Alpha", ["Go"])
        await service.remember_selection("request-items", 1, "Beta", ["Rust"])
        await service.remember_selection("list-requests", 1, "all", ["all"])

        last = await service.last_selection("request-items", 1)
        self.assertEqual((last.project, last.technologies), ("Beta", ["Rust"]))
        self.assertIsNone(await service.last_selection("request-items", 2))


class SeedTest(unittest.IsolatedAsyncioTestCase):
    async def test_seeds_only_an_empty_store(self):
        db = MemoryDatabase(CASE_POLICIES)
        self.assertEqual(await seed_sample_requests(db), len(SAMPLE_REQUESTS))
        self.assertEqual(await seed_sample_requests(db), 0)
        self.assertEqual(await db.collection(REQUESTS).count(), len(SAMPLE_REQUESTS))


if __name__ == "__main__":
    unittest.main()
