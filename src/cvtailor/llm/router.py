from __future__ import annotations

import logging
from typing import Any

from cvtailor.config import Settings, get_settings
from cvtailor.errors import ConfigurationError
from cvtailor.llm.providers import LLMProvider, ProviderPool

logger = logging.getLogger(__name__)


class LLMRouter:
    """Routes each pipeline task to a configured OpenAI-compatible provider.

    The secondary provider is only used when the preferred one is not
    configured. A failed call is never replayed on another provider.
    """

    def __init__(self, settings: Settings | None = None, pool: ProviderPool | None = None):
        self.settings = settings or get_settings()
        self.pool = pool or ProviderPool(self.settings)

    def ensure_available(self, task: str) -> None:
        self._provider_for(task)

    async def complete(
        self,
        *,
        task: str,
        system: str,
        prompt: str | None = None,
        messages: list[dict[str, str]] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        provider = self._provider_for(task)
        conversation = list(messages or [])
        if prompt is not None:
            conversation.append({"role": "user", "content": prompt})
        if not conversation:
            raise ValueError("complete() needs a prompt or at least one message")

        response = await provider.complete_text(
            model=self._model_for(task, provider),
            system=system,
            messages=conversation,
            max_tokens=max_tokens or self._default_max_tokens(task),
            temperature=self.settings.generation_temperature if temperature is None else temperature,
        )
        logger.debug(
            "LLM call task=%s provider=%s api_path=%s chars=%s",
            task,
            provider.config.name,
            response.raw.get("api_path"),
            len(response.content),
        )
        return response.content

    def _provider_for(self, task: str) -> LLMProvider:
        preferred = {
            "extract": self.settings.llm_router_extract_provider,
            "writer": self.settings.llm_router_writer_provider,
            "refine": self.settings.llm_router_refine_provider,
        }.get(task, self.settings.llm_router_default)
        secondary = "local" if preferred == "openai" else "openai"

        for name in (preferred, secondary):
            if self.pool.is_configured(name):
                return self.pool.get(name)

        raise ConfigurationError(
            f"no LLM provider configured for task '{task}': set OPENAI_API_KEY or LOCAL_LLM_ENABLED"
        )

    def _model_for(self, task: str, provider: LLMProvider) -> str:
        if provider.config.name == "local":
            return self.settings.local_llm_model
        if task == "extract":
            return self.settings.openai_model_extractor
        return self.settings.openai_model_writer

    def _default_max_tokens(self, task: str) -> int:
        if task == "extract":
            return self.settings.extraction_max_tokens
        return self.settings.generation_max_tokens


def safe_messages(history: list[Any]) -> list[dict[str, str]]:
    """Normalize chat history items (models or dicts) into role/content dicts."""
    messages: list[dict[str, str]] = []
    for item in history:
        if hasattr(item, "model_dump"):
            item = item.model_dump()
        if not isinstance(item, dict):
            continue
        role = item.get("role")
        content = item.get("content")
        if role not in {"user", "assistant"} or not isinstance(content, str):
            continue
        messages.append({"role": role, "content": content})
    return messages
