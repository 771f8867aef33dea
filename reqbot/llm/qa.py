"""
Question answering for /ask and bot mentions.

A question that names a project with uploaded documents is answered from the
most relevant passages of those documents; anything else goes to the model
with the general system prompt.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from reqbot.documents import DocumentStore

from .errors import LLMNotConfiguredError
from .providers import ModelRouter
from .retrieval import Passage, Retriever


PROJECT_PATTERN = re.compile(r"(?:project|regarding|about)\s+(?!project\b)([a-zA-Z0-9_-]+)", re.IGNORECASE)
MAX_CONTEXT_CHARS = 6000

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant for the item request team. "
    "Answer the following question as accurately as possible based on your knowledge. "
    "Today is {date}."
)
CONTEXT_PROMPT = (
    "Use the following excerpts from the {project} project documents to answer the question. "
    "If the answer is not in the excerpts, say that you don't know.\n\n{context}"
)


def extract_project(text: str) -> str | None:
    """Pull a project name out of phrases like "regarding project X" or "about X"."""
    match = PROJECT_PATTERN.search(text)
    return match.group(1).lower() if match else None


def no_project_info_message(project: str) -> str:
    return (
        f"I couldn't find specific information about project {project}. "
        "Could you provide more details or rephrase your question?"
    )


def format_system_prompt(prompt: str) -> str:
    now = datetime.now().astimezone()
    return prompt.replace("{date}", now.strftime("%B %d %Y")).replace("{time}", now.strftime("%H:%M:%S %Z%z")).strip()


def build_context(passages: list[Passage], limit: int = MAX_CONTEXT_CHARS) -> str:
    parts: list[str] = []
    used = 0
    for p in passages:
        block = f"[{p.source}]\n{p.text.strip()}"
        if used + len(block) > limit:
            break
        parts.append(block)
        used += len(block)
    return "\n\n---\n\n".join(parts)


class QuestionAnswerer:
    def __init__(
        self,
        config: dict[str, Any],
        documents: DocumentStore,
        router: ModelRouter | None = None,
        retriever: Retriever | None = None,
    ):
        self.config = config
        self.documents = documents
        self.router = router or ModelRouter(config)
        self.retriever = retriever or Retriever(documents, self.router.embed)

    async def _passages(self, project: str, question: str) -> list[Passage]:
        if self.config.get("embedding_model"):
            return await self.retriever.search(project, question)
        # Without an embedding model the documents are used in order, up to the context budget.
        return self.retriever.split(project)

    async def answer(self, question: str, project: str | None = None) -> str:
        project = project or extract_project(question)
        system_prompt = format_system_prompt(self.config.get("system_prompt") or DEFAULT_SYSTEM_PROMPT)
        messages = [{"role": "system", "content": system_prompt}]

        if project:
            if not self.documents.document_types(project):
                logging.info("No documents for project %s", project)
                return no_project_info_message(project)
            passages = await self._passages(project, question)
            if not passages:
                return no_project_info_message(project)
            messages.append({
                "role": "system",
                "content": CONTEXT_PROMPT.format(project=project, context=build_context(passages)),
            })

        messages.append({"role": "user", "content": question})
        logging.info("QA question (project=%s, len=%d)", project, len(question))
        if not self.router.candidate_models():
            raise LLMNotConfiguredError("No model configured")
        return await self.router.complete_with_fallbacks(messages)
