"""
Embedding search over a project's uploaded documents.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

import numpy as np
from langchain_text_splitters import RecursiveCharacterTextSplitter

from reqbot.documents import DocumentStore, safe_segment


CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200
EMBED_BATCH = 64

EmbedFn = Callable[[list[str]], Awaitable[list[list[float]]]]


@dataclass
class Passage:
    source: str
    text: str
    score: float = 0.0


@dataclass
class _Index:
    signature: tuple
    passages: list[Passage]
    matrix: np.ndarray  # one L2-normalised row per passage


def _normalise(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


class Retriever:
    def __init__(
        self,
        documents: DocumentStore,
        embed: EmbedFn,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
    ):
        self.documents = documents
        self.embed = embed
        self.splitter = RecursiveCharacterTextSplitter(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
        self._cache: dict[str, _Index] = {}

    def _signature(self, project: str) -> tuple:
        return tuple((p.name, p.stat().st_mtime_ns, p.stat().st_size) for p in self.documents.files(project))

    def split(self, project: str) -> list[Passage]:
        passages: list[Passage] = []
        for source, text in self.documents.load(project):
            passages.extend(Passage(source=source, text=chunk) for chunk in self.splitter.split_text(text))
        return passages

    async def _build(self, project: str, signature: tuple) -> _Index:
        passages = self.split(project)
        vectors: list[list[float]] = []
        for start in range(0, len(passages), EMBED_BATCH):
            batch = passages[start:start + EMBED_BATCH]
            vectors.extend(await self.embed([p.text for p in batch]))
        matrix = _normalise(np.asarray(vectors, dtype=np.float32)) if vectors else np.zeros((0, 0), dtype=np.float32)
        logging.info("Indexed project %s: %d passage(s)", project, len(passages))
        return _Index(signature=signature, passages=passages, matrix=matrix)

    async def index(self, project: str) -> _Index:
        signature = self._signature(project)
        key = safe_segment(project)
        cached = self._cache.get(key)
        if cached is None or cached.signature != signature:
            cached = self._cache[key] = await self._build(project, signature)
        return cached

    def invalidate(self, project: str | None = None) -> None:
        if project is None:
            self._cache.clear()
        else:
            self._cache.pop(safe_segment(project), None)

    async def search(self, project: str, query: str, k: int = 4) -> list[Passage]:
        idx = await self.index(project)
        if not idx.passages:
            return []
        query_vec = _normalise(np.asarray((await self.embed([query]))[0], dtype=np.float32))
        scores = idx.matrix @ query_vec
        top = np.argsort(-scores)[:k]
        return [
            Passage(source=idx.passages[i].source, text=idx.passages[i].text, score=float(scores[i]))
            for i in top
        ]
