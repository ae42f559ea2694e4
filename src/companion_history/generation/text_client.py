from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from loguru import logger

from companion_history.adapters import AdapterSpec
from companion_history.errors import GenerationFailed
from companion_history.provider import LLMProvider, create_provider


@runtime_checkable
class TextGenerator(Protocol):
    async def complete(
        self,
        adapter: AdapterSpec,
        settings: dict,
        prompt: str,
        *,
        system_prompt: str | None = None,
    ) -> str:
        """Return the raw completion text. Raises GenerationFailed."""
        ...


class ProviderTextGenerator:
    """TextGenerator backed by the anthropic / openai SDK providers."""

    def __init__(
        self,
        *,
        env: Mapping[str, str] | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ):
        self._env = env if env is not None else os.environ
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._providers: dict[str, LLMProvider] = {}

    def _provider_for(self, adapter: AdapterSpec) -> LLMProvider:
        provider = self._providers.get(adapter.name)
        if provider is not None:
            return provider
        env_var = adapter.api_key_env or f"{adapter.provider.upper()}_API_KEY"
        api_key = self._env.get(env_var, "")
        if not api_key:
            raise GenerationFailed(f"{env_var} environment variable is required for adapter '{adapter.name}'")
        try:
            provider = create_provider(adapter.provider, api_key, base_url=adapter.base_url)
        except ValueError as ex:
            raise GenerationFailed(str(ex)) from ex
        self._providers[adapter.name] = provider
        return provider

    async def complete(
        self,
        adapter: AdapterSpec,
        settings: dict,
        prompt: str,
        *,
        system_prompt: str | None = None,
    ) -> str:
        model = settings.get("model") or adapter.default_model
        if not model:
            raise GenerationFailed(f"No model configured for adapter '{adapter.name}'")
        provider = self._provider_for(adapter)
        try:
            return await provider.create_message(
                model,
                int(settings.get("max_tokens", self._max_tokens)),
                float(settings.get("temperature", self._temperature)),
                [{"role": "user", "content": prompt}],
                system_prompt=system_prompt,
            )
        except Exception as ex:
            logger.error(f"Generation request to {adapter.name} ({model}) failed: {ex}")
            raise GenerationFailed(f"{type(ex).__name__}: {ex}") from ex
