import openai
from loguru import logger
from tenacity import retry

from companion_history.providers.common import default_retry_kwargs


def _to_openai_messages(system_prompt: str | None, messages: list[dict]) -> list[dict]:
    """Convert internal messages to OpenAI chat format."""
    out: list[dict] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})

    for msg in messages:
        content = msg.get("content", "")
        if isinstance(content, list):
            content = "\n".join(
                block.get("text", "")
                for block in content
                if isinstance(block, dict) and block.get("type") == "text"
            )
        out.append({"role": msg["role"], "content": content})
    return out


class OpenAIProvider:
    def __init__(self, api_key: str, *, base_url: str | None = None):
        self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)

    @retry(**default_retry_kwargs((
        openai.RateLimitError,
        openai.APIConnectionError,
        openai.APITimeoutError,
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
        oai_messages = _to_openai_messages(system_prompt, messages)
        logger.debug(f"Generation API request: model={model}, messages={len(oai_messages)}")
        response = await self._client.chat.completions.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=oai_messages,
        )
        text = response.choices[0].message.content or ""
        logger.debug(f"Generation API response: len={len(text)}")
        return text
