"""
In-memory document store standing in for a real database.

The bot only talks to the `Collection` / `Database` protocols below, so a
database adapter with the same async surface can replace `MemoryDatabase`
without touching the callers.
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Iterable, Mapping, Protocol


logger = logging.getLogger(__name__)

Record = dict[str, Any]
Predicate = Mapping[str, Any]


class Collection(Protocol):
    async def insert(self, record: Mapping[str, Any]) -> str: ...

    async def find_all(self, predicate: Predicate | None = None) -> list[Record]: ...

    async def find_one(self, predicate: Predicate) -> Record | None: ...

    async def update(self, predicate: Predicate, patch: Mapping[str, Any]) -> int: ...

    async def upsert(self, predicate: Predicate, patch: Mapping[str, Any]) -> str: ...

    async def delete(self, predicate: Predicate) -> int: ...

    async def count(self, predicate: Predicate | None = None) -> int: ...


class Database(Protocol):
    def collection(self, name: str) -> Collection: ...


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class MemoryCollection:
    """
    List-backed collection.

    Fields named in `case_insensitive_fields` compare string values with
    casefold(); every other field compares exactly. A predicate on a
    list-valued field matches when the expected value is a member.
    """

    def __init__(self, name: str, case_insensitive_fields: Iterable[str] = ()):
        self.name = name
        self.case_insensitive_fields = frozenset(case_insensitive_fields)
        self._documents: list[Record] = []

    def _normalise(self, field: str, value: Any) -> Any:
        if field in self.case_insensitive_fields and isinstance(value, str):
            return value.casefold()
        return value

    def _field_matches(self, field: str, actual: Any, expected: Any) -> bool:
        wanted = self._normalise(field, expected)
        if isinstance(actual, (list, tuple, set, frozenset)) and not isinstance(
            expected, (list, tuple, set, frozenset)
        ):
            return any(self._normalise(field, v) == wanted for v in actual)
        return self._normalise(field, actual) == wanted

    def _matches(self, doc: Record, predicate: Predicate | None) -> bool:
        if not predicate:
            return True
        for field, expected in predicate.items():
            if field not in doc:
                return False
            if not self._field_matches(field, doc[field], expected):
                return False
        return True

    async def insert(self, record: Mapping[str, Any]) -> str:
        doc = copy.deepcopy(dict(record))
        if not doc.get("id"):
            doc["id"] = new_id()
            while any(d["id"] == doc["id"] for d in self._documents):
                doc["id"] = new_id()
        elif any(d["id"] == doc["id"] for d in self._documents):
            raise ValueError(f"Duplicate id {doc['id']!r} in collection '{self.name}'")
        self._documents.append(doc)
        logger.debug("insert %s id=%s", self.name, doc["id"])
        return doc["id"]

    async def find_all(self, predicate: Predicate | None = None) -> list[Record]:
        return [copy.deepcopy(d) for d in self._documents if self._matches(d, predicate)]

    async def find_one(self, predicate: Predicate) -> Record | None:
        for doc in self._documents:
            if self._matches(doc, predicate):
                return copy.deepcopy(doc)
        return None

    async def update(self, predicate: Predicate, patch: Mapping[str, Any]) -> int:
        if "id" in patch:
            raise ValueError("Record ids cannot be changed")
        count = 0
        for doc in self._documents:
            if self._matches(doc, predicate):
                doc.update(copy.deepcopy(dict(patch)))
                count += 1
        logger.debug("update %s %s -> %d record(s)", self.name, dict(predicate), count)
        return count

    async def upsert(self, predicate: Predicate, patch: Mapping[str, Any]) -> str:
        for doc in self._documents:
            if self._matches(doc, predicate):
                doc.update(copy.deepcopy({k: v for k, v in patch.items() if k != "id"}))
                return doc["id"]
        return await self.insert({**predicate, **patch})

    async def delete(self, predicate: Predicate) -> int:
        before = len(self._documents)
        self._documents = [d for d in self._documents if not self._matches(d, predicate)]
        count = before - len(self._documents)
        logger.debug("delete %s %s -> %d record(s)", self.name, dict(predicate), count)
        return count

    async def count(self, predicate: Predicate | None = None) -> int:
        return sum(1 for d in self._documents if self._matches(d, predicate))


class MemoryDatabase:
    """Named collections created on first use, each with its own case policy."""

    def __init__(self, case_policies: Mapping[str, Iterable[str]] | None = None):
        self._policies = {k: frozenset(v) for k, v in (case_policies or {}).items()}
        self._collections: dict[str, MemoryCollection] = {}

    def collection(self, name: str) -> MemoryCollection:
        if name not in self._collections:
            self._collections[name] = MemoryCollection(name, self._policies.get(name, ()))
        return self._collections[name]
