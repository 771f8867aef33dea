#!/usr/bin/env python3
"""
Tests for the discord.ui wiring, driven with fake interactions.

Usage:
    python -m unittest test_views
"""

import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord

from reqbot.discord.views import (
    EMPTY_QUEUE_VALUE,
    ItemNumberModal,
    QueueActionView,
    QueueInteractionHandler,
    SelectionView,
    controls_from_message,
)
from reqbot.flows.selection import FlowKind, ItemNumberEntered, Phase, start
from reqbot.queue.errors import QueueActionError
from reqbot.queue.formatter import SELECT_ID, QueueControls, QueueOption
from reqbot.queue.models import CASE_POLICIES
from reqbot.queue.service import RequestService
from reqbot.queue.sync import ActionOutcome
from reqbot.storage.memory import MemoryDatabase


OWNER = 10


class FakeResponse:
    def __init__(self):
        self.calls = []

    def is_done(self):
        return bool(self.calls)

    async def send_message(self, *args, **kwargs):
        self.calls.append(("send_message", args, kwargs))

    async def edit_message(self, *args, **kwargs):
        self.calls.append(("edit_message", args, kwargs))

    async def defer(self, *args, **kwargs):
        self.calls.append(("defer", args, kwargs))

    async def send_modal(self, *args, **kwargs):
        self.calls.append(("send_modal", args, kwargs))


def interaction(user_id=OWNER, values=(), message=None, roles=()):
    return SimpleNamespace(
        user=SimpleNamespace(id=user_id, roles=list(roles)),
        data={"values": list(values)},
        response=FakeResponse(),
        followup=SimpleNamespace(send=AsyncMock()),
        message=message,
    )


def queue_message(controls):
    select = SimpleNamespace(
        custom_id=SELECT_ID,
        options=[
            discord.SelectOption(label=o.label, value=o.value, description=o.description or None, default=o.default)
            for o in controls.options
        ],
    )
    return SimpleNamespace(components=[SimpleNamespace(children=[select])])


class SelectionViewTest(unittest.IsolatedAsyncioTestCase):
    async def test_request_flow_end_to_end(self):
        view = SelectionView(start(FlowKind.REQUEST, OWNER), ["Alpha"], ["Python", "Go"])
        self.assertEqual(view.prompt(), "Please select a project:")

        i = interaction(values=["Alpha"])
        await view.children[0].callback(i)
        self.assertEqual(i.response.calls[0][0], "edit_message")
        self.assertEqual(i.response.calls[0][2]["content"], "Project: Alpha\nPlease select technologies:")
        self.assertEqual(view.children[0].max_values, 2)

        i = interaction(values=["Go", "Python"])
        await view.children[0].callback(i)
        self.assertEqual(i.response.calls[0][2]["content"], "Please confirm your request:\nProject: Alpha\nTechnologies: Go, Python")
        self.assertEqual([c.custom_id for c in view.children], ["confirm-request", "cancel-request"])

        i = interaction()
        await view.children[0].callback(i)
        self.assertEqual(i.response.calls, [("defer", (), {})])
        self.assertTrue(view.is_finished())
        state = await view.run()
        self.assertEqual(state.phase, Phase.SUBMITTED)
        self.assertEqual(state.technologies, ("Go", "Python"))

    async def test_other_users_are_acknowledged_and_ignored(self):
        view = SelectionView(start(FlowKind.REQUEST, OWNER), ["Alpha"], ["Python"])
        i = interaction(user_id=99, values=["Alpha"])
        await view.children[0].callback(i)
        self.assertEqual(i.response.calls, [("defer", (), {})])
        self.assertEqual(view.state.phase, Phase.AWAITING_PROJECT)

    async def test_cancel(self):
        view = SelectionView(start(FlowKind.REQUEST, OWNER), ["Alpha"], ["Python"])
        await view.children[-1].callback(interaction())
        self.assertEqual((await view.run()).phase, Phase.CANCELLED)

    async def test_reassignment_opens_item_number_form(self):
        view = SelectionView(start(FlowKind.REASSIGNMENT, OWNER), ["Alpha"], [])
        i = interaction(values=["Alpha"])
        await view.children[0].callback(i)
        name, args, _ = i.response.calls[0]
        self.assertEqual(name, "send_modal")
        self.assertIsInstance(args[0], ItemNumberModal)

        i = interaction()
        await view.dispatch(i, ItemNumberEntered(OWNER, "AB-1"))
        self.assertEqual(i.response.calls[0][2]["content"], "Please confirm your reassignment request:\nProject: Alpha\nItem Number: AB-1")

    async def test_already_requested_item_never_reaches_confirmation(self):
        service = RequestService(MemoryDatabase(CASE_POLICIES))
        await service.submit_reassignment("Alpha", "AB-1", "ann", OWNER)

        async def already_requested(project, item_number):
            return await service.reassignment_conflict(project, item_number, OWNER)

        view = SelectionView(start(FlowKind.REASSIGNMENT, OWNER), ["Alpha"], [], item_number_check=already_requested)
        await view.children[0].callback(interaction(values=["Alpha"]))

        i = interaction()
        await view.dispatch(i, ItemNumberEntered(OWNER, " AB-1 "))
        self.assertEqual(i.response.calls, [("defer", (), {})])
        self.assertNotIn("confirm-request", [c.custom_id for c in view.children])

        state = await view.run()
        self.assertEqual(state.phase, Phase.REJECTED)
        self.assertEqual(state.notice, "You already have a reassignment request for item AB-1 in project Alpha.")
        self.assertEqual(view.prompt(), state.notice)

    async def test_new_item_number_is_checked_then_confirmed(self):
        checked = []

        async def accept(project, item_number):
            checked.append((project, item_number))
            return None

        view = SelectionView(start(FlowKind.REASSIGNMENT, OWNER), ["Alpha"], [], item_number_check=accept)
        await view.children[0].callback(interaction(values=["Alpha"]))
        i = interaction()
        await view.dispatch(i, ItemNumberEntered(OWNER, "AB-2"))

        self.assertEqual(checked, [("Alpha", "AB-2")])
        self.assertEqual(view.state.phase, Phase.AWAITING_CONFIRMATION)
        self.assertEqual(i.response.calls[0][0], "edit_message")

    async def test_listing_offers_all_options(self):
        view = SelectionView(start(FlowKind.LISTING, OWNER), ["Alpha"], ["Go"])
        self.assertEqual([o.value for o in view.children[0].options], ["all", "Alpha"])

    async def test_select_options_are_capped(self):
        view = SelectionView(start(FlowKind.REQUEST, OWNER), [f"P{n}" for n in range(40)], ["Go"])
        self.assertEqual(len(view.children[0].options), 25)


class QueueControlsTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.controls = QueueControls(options=(QueueOption("[1] ann - Alpha", "regular|a|1||Alpha", "Go - Pending"),))
        self.sync = MagicMock()
        self.sync.select_option.side_effect = lambda controls, value: controls.with_selection(value)
        self.sync.handle_action = AsyncMock(return_value=ActionOutcome("complete", "a", "Request marked as Approved."))
        self.handler = QueueInteractionHandler(self.sync, {"permissions": {"users": {"admin_ids": [1]}, "roles": {"admin_ids": []}}})

    async def test_view_layout(self):
        view = QueueActionView(self.handler, self.controls)
        self.assertEqual(
            [c.custom_id for c in view.children],
            [SELECT_ID, "complete-request", "reject-request", "delete-request"],
        )
        self.assertTrue(all(c.disabled for c in view.children[1:]))
        self.assertIsNone(view.timeout)

    async def test_empty_queue_gets_placeholder(self):
        view = QueueActionView(self.handler)
        select = view.children[0]
        self.assertTrue(select.disabled)
        self.assertEqual([o.value for o in select.options], [EMPTY_QUEUE_VALUE])
        self.assertEqual(controls_from_message(queue_message(QueueControls(options=()))).options, ())

    async def test_long_queues_are_capped(self):
        options = tuple(QueueOption(f"[{n}]", f"regular|{n}|1||P") for n in range(30))
        view = QueueActionView(self.handler, QueueControls(options=options))
        self.assertEqual(len(view.children[0].options), 25)

    async def test_controls_round_trip_through_message(self):
        chosen = self.controls.with_selection("regular|a|1||Alpha")
        self.assertEqual(controls_from_message(queue_message(chosen)).selected_value(), "regular|a|1||Alpha")

    async def test_select_by_admin_updates_message(self):
        i = interaction(user_id=1, values=["regular|a|1||Alpha"], message=queue_message(self.controls))
        await self.handler.on_select(i, "regular|a|1||Alpha")
        name, _, kwargs = i.response.calls[0]
        self.assertEqual(name, "edit_message")
        self.assertFalse(kwargs["view"].children[1].disabled)

    async def test_non_admin_is_refused(self):
        i = interaction(user_id=2, message=queue_message(self.controls))
        await self.handler.on_button(i, "complete-request")
        self.assertEqual(i.response.calls[0][1], ("You don't have permission to manage the queue.",))
        self.sync.handle_action.assert_not_awaited()

    async def test_button_reports_outcome_privately(self):
        message = queue_message(self.controls.with_selection("regular|a|1||Alpha"))
        i = interaction(user_id=1, message=message)
        await self.handler.on_button(i, "complete-request")

        self.sync.handle_action.assert_awaited_once()
        custom_id, selected = self.sync.handle_action.await_args.args
        self.assertEqual((custom_id, selected), ("complete-request", "regular|a|1||Alpha"))
        i.followup.send.assert_awaited_once_with("Request marked as Approved.", ephemeral=True)

    async def test_action_errors_are_reported(self):
        self.sync.handle_action.side_effect = QueueActionError("Request not found.")
        i = interaction(user_id=1, message=queue_message(self.controls))
        await self.handler.on_button(i, "delete-request")
        i.followup.send.assert_awaited_once_with("Request not found.", ephemeral=True)


if __name__ == "__main__":
    unittest.main()
