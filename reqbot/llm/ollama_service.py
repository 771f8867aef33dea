"""
reqbot/llm/ollama_service.py

Blocking Ollama runner for chat answers and document embeddings.
Callers run it in a worker thread (asyncio.to_thread) so the event loop
never waits on the HTTP round trip.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List

from dotenv import load_dotenv
from ollama import Client


class OllamaService:
    def __init__(self, host: str):
        """
        host: Ollama server URL; OLLAMA_API_KEY (if set) is sent as a bearer token.
        """
        load_dotenv()

        api_key = os.getenv("OLLAMA_API_KEY")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.client = Client(host=host, headers=headers)

    def run(
        self,
        messages: List[Dict[str, str]],
        model: str,
        options: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        response = self.client.chat(model=model, messages=messages, options=options or None)
        logging.info(
            "OllamaService: model=%s response length=%d",
            model,
            len(response.message.content or ""),
        )
        return {
            "content": response.message.content or "",
            "thinking": getattr(response.message, "thinking", None),
        }

    def embed(self, texts: List[str], model: str) -> List[List[float]]:
        if not texts:
            return []
        response = self.client.embed(model=model, input=texts)
        return [list(e) for e in response.embeddings]
