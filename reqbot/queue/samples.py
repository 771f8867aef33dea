"""
Demo data for an empty store (enabled with `seed_sample_requests: true`).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from reqbot.storage.memory import Database

from .models import REQUESTS, Request, Status, utcnow


# (project, technologies, requester name, status, age)
SAMPLE_REQUESTS = [
    ("Project-A", ["Python", "JavaScript"], "JohnDoe#1234", Status.PENDING, timedelta(days=1)),
    ("Project-A", ["TypeScript", "React"], "JaneSmith#5678", Status.APPROVED, timedelta(days=2)),
    ("Project-B", ["Node.js", "Python"], "BobJohnson#9012", Status.PENDING, timedelta(hours=12)),
    ("Project-C", ["JavaScript", "React", "Node.js"], "AliceBrown#3456", Status.REJECTED, timedelta(days=3)),
    ("Project-B", ["TypeScript"], "CharlieWilson#7890", Status.PENDING, timedelta(hours=6)),
]


async def seed_sample_requests(db: Database, now: datetime | None = None) -> int:
    """Insert the sample requests when the store holds none. Returns how many were added."""
    collection = db.collection(REQUESTS)
    if await collection.count():
        return 0
    now = now or utcnow()
    for n, (project, technologies, name, status, age) in enumerate(SAMPLE_REQUESTS):
        request = Request(
            project=project,
            technologies=technologies,
            requester_name=name,
            requester_id=f"sample-{n}",
            status=status,
            created_at=now - age,
        )
        await collection.insert(request.to_record())
    logging.info("Seeded %d sample requests", len(SAMPLE_REQUESTS))
    return len(SAMPLE_REQUESTS)
