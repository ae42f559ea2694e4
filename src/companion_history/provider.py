from typing import Protocol, runtime_checkable


@runtime_checkable
class LLMProvider(Protocol):
    async def create_message(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
        *,
        system_prompt: str | None = None,
    ) -> str:
        """Non-streaming message creation (used for titles and summaries)."""
        ...


def create_provider(provider_name: str, api_key: str, *, base_url: str | None = None) -> LLMProvider:
    """Factory: create an LLMProvider by name."""
    name = provider_name.strip().lower()
    if name == "anthropic":
        from companion_history.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(api_key, base_url=base_url)
    if name == "openai":
        from companion_history.providers.openai_provider import OpenAIProvider
        return OpenAIProvider(api_key, base_url=base_url)
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'anthropic', 'openai'")
