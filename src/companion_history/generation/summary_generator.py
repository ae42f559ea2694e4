from __future__ import annotations

import time
import uuid

from loguru import logger

from companion_history.adapters import AdapterRegistry, AdapterSpec
from companion_history.app_config import SummaryGenerationOptions
from companion_history.errors import GenerationFailed, UnsupportedBackend
from companion_history.generation.text_client import TextGenerator
from companion_history.messages import (
    ASSISTANT_ROLE,
    SYSTEM_ROLE,
    USER_ROLE,
    content_text,
    has_text,
    is_reference,
    is_tool_output,
)
from companion_history.session import ChatSession
from companion_history.storage.models import SummaryRecord

OMITTED_MARKER = "[earlier conversation omitted]"

DEFAULT_SYSTEM_PROMPT = """\
You are an expert at summarizing technical conversations between a developer and an AI assistant.
Write a concise markdown summary that a developer can use to pick the work up later.
Cover the main goal, the key decisions and their outcomes, important code or commands, and any open
follow-ups. Do not invent details that are not in the conversation."""

_SUMMARY_PROMPT = """\
Summarize the following conversation titled "{title}".

{transcript}

Summary:"""


class SummaryGenerator:
    def __init__(
        self,
        options: SummaryGenerationOptions,
        adapters: AdapterRegistry,
        text_generator: TextGenerator,
    ):
        self._options = options
        self._adapters = adapters
        self._text_generator = text_generator

    def _include(self, msg: dict) -> bool:
        role = msg.get("role")
        if role == SYSTEM_ROLE:
            return False
        if is_tool_output(msg):
            return self._options.include_tool_outputs
        if is_reference(msg):
            return self._options.include_references
        return role in (USER_ROLE, ASSISTANT_ROLE)

    @staticmethod
    def _heading(msg: dict) -> str:
        if is_tool_output(msg):
            return "## Tool Output"
        if is_reference(msg):
            opts = msg.get("opts") or {}
            ref = opts.get("context_id") or opts.get("reference")
            return f"## Reference ({ref})"
        return "## User" if msg.get("role") == USER_ROLE else "## Assistant"

    def build_transcript(self, messages: list[dict]) -> str:
        """Render included messages, newest kept first when over budget."""
        parts = [
            f"{self._heading(msg)}\n\n{(content_text(msg.get('content')) or '').strip()}"
            for msg in messages
            if self._include(msg) and has_text(msg)
        ]
        budget = max(0, self._options.context_size) * 4

        kept: list[str] = []
        used = 0
        for part in reversed(parts):
            cost = len(part) + 2
            if used + cost > budget:
                if not kept and budget > 0:
                    kept.append(part[: max(0, budget - 2)])
                break
            kept.append(part)
            used += cost
        kept.reverse()

        if len(kept) < len(parts):
            logger.debug(f"Summary context over budget, omitting {len(parts) - len(kept)} earlier messages")
            kept.insert(0, OMITTED_MARKER)
        return "\n\n".join(kept)

    async def generate(self, session: ChatSession, *, summary_id: str | None = None) -> SummaryRecord:
        """Summarize ``session``. Raises UnsupportedBackend, AdapterUnavailable or GenerationFailed."""
        if not session.save_id:
            raise GenerationFailed("Chat has no save id")
        transcript = self.build_transcript(session.messages)
        if not transcript:
            raise GenerationFailed("Nothing to summarize")

        adapter, settings = self._resolve_backend(session)
        title = session.title or "Untitled"
        prompt = _SUMMARY_PROMPT.format(title=title, transcript=transcript)
        system_prompt = self._options.system_prompt or DEFAULT_SYSTEM_PROMPT

        logger.info(f"Generating summary for chat {session.save_id} with {adapter.name}")
        raw = await self._text_generator.complete(adapter, settings, prompt, system_prompt=system_prompt)
        content = (raw or "").strip()
        if content and self._options.format_summary is not None:
            try:
                content = (self._options.format_summary(content) or "").strip()
            except Exception as ex:
                raise GenerationFailed(f"format_summary failed: {type(ex).__name__}: {ex}") from ex
        if not content:
            raise GenerationFailed("Empty summary returned")

        return SummaryRecord(
            summary_id=summary_id or uuid.uuid4().hex[:12],
            chat_id=session.save_id,
            chat_title=title,
            generated_at=int(time.time()),
            content=content,
        )

    def _resolve_backend(self, session: ChatSession) -> tuple[AdapterSpec, dict]:
        name = self._options.adapter or session.adapter
        if not name:
            raise GenerationFailed("No adapter configured for summary generation")
        spec = self._adapters.resolve(name)
        if spec.is_acp:
            raise UnsupportedBackend(spec.name, "summary generation", "summary_generation.adapter")
        if self._options.model:
            return spec, {"model": self._options.model}
        if self._options.adapter and self._options.adapter != session.adapter:
            return spec, self._adapters.default_settings(spec)
        return spec, dict(session.settings)
