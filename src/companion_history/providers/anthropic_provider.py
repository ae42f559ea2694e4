import anthropic
from loguru import logger
from tenacity import retry

from companion_history.providers.common import default_retry_kwargs


class AnthropicProvider:
    def __init__(self, api_key: str, *, base_url: str | None = None):
        self._client = anthropic.AsyncAnthropic(api_key=api_key, base_url=base_url)

    @retry(**default_retry_kwargs((
        anthropic.RateLimitError,
        anthropic.APIConnectionError,
        anthropic.APITimeoutError,
    )))
    async def create_message(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
        *,
        system_prompt: str | None = None,
    ) -> str:
        logger.debug(f"Generation API request: model={model}, messages={len(messages)}")
        kwargs: dict = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        response = await self._client.messages.create(**kwargs)
        usage = response.usage
        logger.debug(
            f"Generation API response: input_tokens={usage.input_tokens}, "
            f"output_tokens={usage.output_tokens}"
        )
        return "".join(block.text for block in response.content if block.type == "text")
