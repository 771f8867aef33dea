#!/usr/bin/env python3
"""
Tests for the document store, retrieval and question routing.

Usage:
    python -m unittest test_documents_qa
"""

import tempfile
import unittest
from unittest.mock import AsyncMock, MagicMock

from reqbot.documents import DocumentStore, safe_segment
from reqbot.llm.errors import LLMNotConfiguredError, format_user_friendly_error
from reqbot.llm.qa import QuestionAnswerer, extract_project
from reqbot.llm.retrieval import Retriever


KEYWORDS = ("deadline", "payment", "onboarding")


async def keyword_embed(texts):
    return [[t.lower().count(k) + 0.01 * i for i, k in enumerate(KEYWORDS)] for t in texts]


class DocumentStoreTest(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = DocumentStore(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_save_and_list(self):
        self.store.save("Zeta", "faq", "Q: when? A: soon")
        self.store.save("zeta", "guidelines", "Be nice")
        self.store.save("Omega", "documentation", "Docs")

        self.assertEqual(self.store.projects(), ["omega", "zeta"])
        self.assertEqual(self.store.document_types("ZETA"), ["faq", "guidelines"])
        self.assertEqual(self.store.load("zeta"), [("faq.txt", "Q: when? A: soon"), ("guidelines.txt", "Be nice")])

    def test_unknown_type_and_unsafe_names(self):
        with self.assertRaises(ValueError):
            self.store.save("Zeta", "secrets", "x")
        self.assertEqual(safe_segment("../etc/Passwd"), "etc-passwd")
        with self.assertRaises(ValueError):
            safe_segment(" / ")

    def test_missing_project_is_empty(self):
        self.assertEqual(self.store.projects(), [])
        self.assertEqual(self.store.document_types("nothing"), [])
        self.assertEqual(self.store.load("nothing"), [])


class RetrieverTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = DocumentStore(self.tmp.name)
        self.store.save("zeta", "faq", "The payment is sent monthly.\n\nThe deadline is Friday.\n\nOnboarding takes a week.")
        self.embed = AsyncMock(side_effect=keyword_embed)
        self.retriever = Retriever(self.store, self.embed, chunk_size=40, chunk_overlap=0)

    async def asyncTearDown(self):
        self.tmp.cleanup()

    async def test_best_passage_first(self):
        passages = await self.retriever.search("zeta", "What is the deadline?", k=2)
        self.assertEqual(len(passages), 2)
        self.assertIn("deadline", passages[0].text)
        self.assertEqual(passages[0].source, "faq.txt")
        self.assertGreaterEqual(passages[0].score, passages[1].score)

    async def test_index_is_cached_until_invalidated(self):
        await self.retriever.search("zeta", "payment")
        await self.retriever.search("Zeta", "payment")
        # one call to index the passages plus one per query
        self.assertEqual(self.embed.await_count, 3)

        self.retriever.invalidate("zeta")
        await self.retriever.search("zeta", "payment")
        self.assertEqual(self.embed.await_count, 5)

    async def test_project_without_documents(self):
        self.assertEqual(await self.retriever.search("nothing", "deadline"), [])


class QuestionAnswererTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = DocumentStore(self.tmp.name)
        self.store.save("zeta", "faq", "The deadline is Friday.")
        self.router = MagicMock()
        self.router.candidate_models.return_value = ["openai/gpt-4o-mini"]
        self.router.complete_with_fallbacks = AsyncMock(return_value="Friday.")
        self.retriever = Retriever(self.store, AsyncMock(side_effect=keyword_embed))

    async def asyncTearDown(self):
        self.tmp.cleanup()

    def answerer(self, **config):
        return QuestionAnswerer({"system_prompt": "Help. Today is {date}.", **config}, self.store, self.router, self.retriever)

    def sent_messages(self):
        return self.router.complete_with_fallbacks.await_args.args[0]

    def test_extract_project(self):
        self.assertEqual(extract_project("regarding project Zeta, when is the deadline?"), "zeta")
        self.assertEqual(extract_project("Tell me about Omega-2"), "omega-2")
        self.assertIsNone(extract_project("How are you?"))

    async def test_project_question_uses_document_context(self):
        answer = await self.answerer().answer("When is the deadline regarding project Zeta?")
        self.assertEqual(answer, "Friday.")
        messages = self.sent_messages()
        self.assertEqual(messages[0]["role"], "system")
        self.assertNotIn("{date}", messages[0]["content"])
        self.assertIn("The deadline is Friday.", messages[1]["content"])
        self.assertEqual(messages[-1], {"role": "user", "content": "When is the deadline regarding project Zeta?"})

    async def test_embedding_model_switches_to_search(self):
        await self.answerer(embedding_model="openai/text-embedding-3-small").answer("deadline?", project="zeta")
        self.assertIn("[faq.txt]", self.sent_messages()[1]["content"])

    async def test_unknown_project_is_answered_without_model(self):
        answer = await self.answerer().answer("What about project Nope?")
        self.assertTrue(answer.startswith("I couldn't find specific information about project nope."))
        self.router.complete_with_fallbacks.assert_not_awaited()

    async def test_general_question(self):
        await self.answerer().answer("How are you?")
        self.assertEqual([m["role"] for m in self.sent_messages()], ["system", "user"])

    async def test_no_model_configured(self):
        self.router.candidate_models.return_value = []
        with self.assertRaises(LLMNotConfiguredError) as ctx:
            await self.answerer().answer("How are you?")
        self.assertEqual(format_user_friendly_error(ctx.exception), "Question answering is not configured on this server.")


if __name__ == "__main__":
    unittest.main()
