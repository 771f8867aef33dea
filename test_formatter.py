#!/usr/bin/env python3
"""
Tests for queue rendering, chunking and option values.

Usage:
    python -m unittest test_formatter
"""

import re
import unittest
from datetime import datetime, timezone

from reqbot.queue.formatter import (
    DIVIDER,
    REASSIGNMENT,
    REGULAR,
    QueueControls,
    QueueOption,
    chunk_units,
    decode_option_value,
    encode_option_value,
    format_timestamp,
    render_queue,
)
from reqbot.queue.models import ReassignmentRequest, Request, Status


WHEN = datetime(2024, 1, 15, 14, 30, tzinfo=timezone.utc)


def make_request(n, project="Alpha", status=Status.PENDING, techs=("Python",)):
    return Request(
        id=f"r{n}",
        project=project,
        technologies=list(techs),
        requester_name=f"user{n}#000{n % 10}",
        requester_id=str(1000 + n),
        status=status,
        created_at=WHEN,
    )


def make_reassignment(n, project="Alpha", item="42"):
    return ReassignmentRequest(
        id=f"x{n}",
        project=project,
        item_number=item,
        requester_name=f"mover{n}",
        requester_id=str(2000 + n),
        created_at=WHEN,
    )


class ChunkUnitsTest(unittest.TestCase):
    def test_never_exceeds_limit(self):
        units = [f"line {i} " + "x" * (i % 37) + "\n" for i in range(400)]
        for limit in (50, 120, 1800):
            chunks = chunk_units(units, limit)
            self.assertTrue(all(len(c) <= limit for c in chunks))
            self.assertEqual("".join(chunks), "".join(units))

    def test_oversized_unit_is_truncated(self):
        chunks = chunk_units(["short\n", "y" * 500 + "\n", "tail\n"], 100)
        self.assertTrue(all(len(c) <= 100 for c in chunks))
        self.assertEqual(chunks[0], "short\n")
        self.assertTrue(chunks[1].endswith("…\n"))

    def test_empty_input_gives_one_empty_chunk(self):
        self.assertEqual(chunk_units([], 100), [""])


class RenderQueueTest(unittest.TestCase):
    def test_empty_queue(self):
        rendered = render_queue([], [])
        self.assertEqual(rendered.chunks, ["**Requests Queue**\nTotal Requests: 0\n\n"])
        self.assertEqual(rendered.controls.options, ())
        self.assertEqual(rendered.total, 0)

    def test_layout_groups_by_project_then_status(self):
        requests = [
            make_request(1, "Alpha"),
            make_request(2, "Beta", techs=("Go", "Rust")),
            make_request(3, "Alpha", status=Status.APPROVED),
        ]
        text = "".join(render_queue(requests, [make_reassignment(1, "Beta", "AB-9")]).chunks)

        self.assertTrue(text.startswith("**Requests Queue**\nTotal Requests: 4\n\n**📋 Alpha**\n"))
        self.assertIn("**Pending** (1)\n[1] user1 - Python - Jan 15, 02:30 PM\n", text)
        self.assertIn("**Approved** (1)\n[2] user3 - Python - Jan 15, 02:30 PM\n", text)
        self.assertIn("**📋 Beta**\n", text)
        self.assertIn("[3] user2 - Go, Rust - ", text)
        self.assertIn("**Pending Reassignment Requests** (1)\n[4] mover1 - Item AB-9 - ", text)
        # one divider under each header plus one between the two projects
        self.assertEqual(text.count(DIVIDER), 3)

    def test_indexes_are_dense_and_match_options(self):
        requests = [make_request(n, project=f"P{n % 3}", status=list(Status)[n % 3]) for n in range(30)]
        reassignments = [make_reassignment(n, project=f"P{n % 2}") for n in range(7)]
        rendered = render_queue(requests, reassignments, limit=300)

        text = "".join(rendered.chunks)
        shown = [int(m) for m in re.findall(r"^\[(\d+)\]", text, flags=re.M)]
        self.assertEqual(shown, list(range(1, 38)))
        refs = set()
        for pos, option in enumerate(rendered.controls.options, start=1):
            self.assertTrue(option.label.startswith(f"[{pos}] "))
            ref = decode_option_value(option.value)
            refs.add((ref.kind, ref.record_id))
        # every rendered record appears exactly once among the options
        self.assertEqual(len(refs), 37)
        self.assertTrue(all(len(c) <= 300 for c in rendered.chunks))

    def test_controls_start_without_selection(self):
        controls = render_queue([make_request(1)], []).controls
        self.assertIsNone(controls.selected_value())
        self.assertTrue(all(b.disabled for b in controls.buttons))


class OptionValueTest(unittest.TestCase):
    def test_round_trip_keeps_kind_and_ids(self):
        value = encode_option_value(REASSIGNMENT, "abc123", "55", "Alpha|Beta", "AB-7")
        ref = decode_option_value(value)
        self.assertEqual((ref.kind, ref.record_id, ref.requester_id), (REASSIGNMENT, "abc123", "55"))
        self.assertEqual(ref.project, "Alpha|Beta")
        self.assertEqual(ref.item_number, "AB-7")

    def test_long_values_are_capped(self):
        value = encode_option_value(REGULAR, "abc123", "55", "P" * 300)
        self.assertLessEqual(len(value), 100)
        self.assertEqual(decode_option_value(value).record_id, "abc123")

    def test_garbage_is_rejected(self):
        for bad in ("", "regular", "bogus|a|b||p", "regular||1||p"):
            with self.assertRaises(ValueError):
                decode_option_value(bad)


class ControlsTest(unittest.TestCase):
    def test_with_selection_marks_default_and_enables_buttons(self):
        controls = QueueControls(options=(QueueOption("a", "v1"), QueueOption("b", "v2")))
        chosen = controls.with_selection("v2")
        self.assertEqual(chosen.selected_value(), "v2")
        self.assertFalse(any(b.disabled for b in chosen.buttons))
        with self.assertRaises(KeyError):
            controls.with_selection("nope")

    def test_format_timestamp(self):
        self.assertEqual(format_timestamp(datetime(2024, 3, 5, 9, 7)), "Mar 5, 09:07 AM")


if __name__ == "__main__":
    unittest.main()
