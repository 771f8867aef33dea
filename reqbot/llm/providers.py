"""
Model routing for `provider/model` names.

`ollama/...` models run through OllamaService in a worker thread; every other
provider is treated as OpenAI-compatible and called with AsyncOpenAI.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from openai import AsyncOpenAI

from .errors import LLMEmptyResponseError, LLMNotConfiguredError, parse_error_message
from .ollama_service import OllamaService


RESPONSE_TIMEOUT_SECONDS = 60  # per-model timeout; on expiry, fallback models are tried


def split_model(name: str) -> tuple[str, str]:
    provider, model = name.split("/", 1)
    return provider, model


def build_openai_client(provider_cfg: dict) -> AsyncOpenAI:
    return AsyncOpenAI(base_url=provider_cfg["base_url"], api_key=provider_cfg.get("api_key") or "sk-no-key-required")


def build_extra_body(provider_cfg: dict, model_params: Any, exclude: set[str] | None = None) -> dict | None:
    base = provider_cfg.get("extra_body") or {}
    params = model_params if isinstance(model_params, dict) else {}
    if exclude:
        params = {k: v for k, v in params.items() if k not in exclude}
    merged = base | params
    return merged if merged else None


class ModelRouter:
    def __init__(self, config: dict[str, Any]):
        self.config = config
        self._openai_clients: dict[str, AsyncOpenAI] = {}
        self._ollama: dict[str, OllamaService] = {}

    @property
    def primary_model(self) -> str | None:
        models = self.config.get("models") or {}
        return self.config.get("model") or next(iter(models), None)

    def candidate_models(self) -> list[str]:
        primary = self.primary_model
        if not primary:
            return []
        params = (self.config.get("models") or {}).get(primary)
        model_fallbacks = params.get("fallback_models", []) if isinstance(params, dict) else []
        names = [primary, *model_fallbacks, *(self.config.get("fallback_models") or [])]
        return [n for n in dict.fromkeys(names) if n and n.strip()]

    def _provider_cfg(self, provider: str) -> dict:
        try:
            return self.config["providers"][provider]
        except KeyError:
            raise LLMNotConfiguredError(f"Provider '{provider}' is not configured") from None

    def _openai(self, provider: str) -> AsyncOpenAI:
        if provider not in self._openai_clients:
            self._openai_clients[provider] = build_openai_client(self._provider_cfg(provider))
        return self._openai_clients[provider]

    def _ollama_service(self, provider: str) -> OllamaService:
        if provider not in self._ollama:
            self._ollama[provider] = OllamaService(host=self._provider_cfg(provider)["base_url"])
        return self._ollama[provider]

    async def complete(self, messages: list[dict[str, str]], model_name: str) -> str:
        provider, model = split_model(model_name)
        params = (self.config.get("models") or {}).get(model_name)

        if provider == "ollama":
            options = {k: v for k, v in (params or {}).items() if k != "fallback_models"} if isinstance(params, dict) else None
            result = await asyncio.to_thread(self._ollama_service(provider).run, messages, model, options)
            text = result.get("content", "")
        else:
            provider_cfg = self._provider_cfg(provider)
            response = await self._openai(provider).chat.completions.create(
                model=model,
                messages=messages,
                extra_headers=provider_cfg.get("extra_headers"),
                extra_query=provider_cfg.get("extra_query"),
                extra_body=build_extra_body(provider_cfg, params, exclude={"fallback_models"}),
            )
            choice = response.choices[0] if response.choices else None
            text = (choice.message.content if choice else "") or ""

        if not text.strip():
            raise LLMEmptyResponseError(f"Model '{model_name}' returned an empty response")
        return text.strip()

    async def complete_with_fallbacks(self, messages: list[dict[str, str]]) -> str:
        candidates = self.candidate_models()
        if not candidates:
            raise LLMNotConfiguredError("No model configured")

        last_error: Exception | None = None
        for attempt_idx, model_name in enumerate(candidates):
            is_primary = attempt_idx == 0
            try:
                text = await asyncio.wait_for(self.complete(messages, model_name), timeout=RESPONSE_TIMEOUT_SECONDS)
                if not is_primary:
                    logging.info("Fallback '%s' succeeded", model_name)
                return text
            except asyncio.TimeoutError as e:
                logging.warning(
                    "%s model '%s' timed out after %ss",
                    "Primary" if is_primary else "Fallback", model_name, RESPONSE_TIMEOUT_SECONDS,
                )
                last_error = TimeoutError(f"Model '{model_name}' timed out after {RESPONSE_TIMEOUT_SECONDS}s")
                last_error.__cause__ = e
            except LLMNotConfiguredError:
                raise
            except Exception as e:  # noqa: BLE001
                logging.warning(
                    "%s model '%s' failed: %s",
                    "Primary" if is_primary else "Fallback", model_name, parse_error_message(e),
                )
                last_error = e

        assert last_error is not None
        raise last_error

    async def embed(self, texts: list[str]) -> list[list[float]]:
        name = self.config.get("embedding_model")
        if not name:
            raise LLMNotConfiguredError("No embedding model configured")
        provider, model = split_model(name)
        if provider == "ollama":
            return await asyncio.to_thread(self._ollama_service(provider).embed, texts, model)
        response = await self._openai(provider).embeddings.create(model=model, input=texts)
        return [item.embedding for item in response.data]
