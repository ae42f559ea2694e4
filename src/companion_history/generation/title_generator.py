from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from companion_history.adapters import AdapterRegistry, AdapterSpec
from companion_history.app_config import TitleGenerationOptions
from companion_history.errors import GenerationFailed, UnsupportedBackend
from companion_history.generation.text_client import TextGenerator
from companion_history.messages import (
    ASSISTANT_ROLE,
    USER_ROLE,
    content_text,
    has_text,
    is_qualifying_user_message,
    is_reference,
    is_tagged,
)
from companion_history.session import ChatSession

DECIDING_TITLE = "Deciding title..."
REFRESHING_TITLE = "Refreshing title..."
INTERIM_LABELS = frozenset({DECIDING_TITLE, REFRESHING_TITLE})

# Fixed prompt budgets (characters).
MAX_MESSAGE_CHARS = 1000
MAX_CONTEXT_CHARS = 10_000
RECENT_MESSAGE_COUNT = 6

_INITIAL_PROMPT = """\
Generate a very short and concise title (max 5 words) for this chat based on the following conversation:
Do not include any special characters or quotes. Your response shouldn't contain any other text, just the title.

===
Examples:
1. User: What is the capital of France?
   Title: Capital of France
2. User: How do I create a new file in Vim?
   Title: Vim File Creation
===

Conversation:
{conversation}
Title:"""

_REFRESH_PROMPT = """\
The conversation has evolved since the original title was generated. Based on the recent conversation below, \
generate a new concise title (max 5 words) that better reflects the current topic.

Original title: "{original_title}"

Recent conversation:
{conversation}

Generate a new title that captures the main topic of the recent conversation. Do not include any special \
characters or quotes. Your response should contain only the new title.

New Title:"""


def _truncate_message(text: str) -> str:
    text = text.strip()
    if len(text) > MAX_MESSAGE_CHARS:
        return text[:MAX_MESSAGE_CHARS] + " [truncated]"
    return text


def _relevant_messages(messages: list[dict]) -> list[dict]:
    return [
        msg
        for msg in messages
        if msg.get("role") in (USER_ROLE, ASSISTANT_ROLE)
        and has_text(msg)
        and not is_tagged(msg)
        and not is_reference(msg)
    ]


class TitleGenerator:
    """Decides when a chat needs a (new) title and asks the model for one."""

    def __init__(
        self,
        options: TitleGenerationOptions,
        adapters: AdapterRegistry,
        text_generator: TextGenerator,
        *,
        enabled: bool = True,
    ):
        self._options = options
        self._adapters = adapters
        self._text_generator = text_generator
        self._enabled = enabled
        self._in_flight: set[str] = set()

    def is_generating(self, session: ChatSession) -> bool:
        return self._key(session) in self._in_flight

    def count_user_messages(self, session: ChatSession) -> int:
        return sum(1 for msg in session.messages if is_qualifying_user_message(msg))

    def should_generate(self, session: ChatSession) -> tuple[bool, bool]:
        """Return (should_generate, is_refresh)."""
        if not self._enabled:
            return False, False
        if not session.title:
            return True, False

        every = self._options.refresh_every_n_prompts
        if every > 0:
            user_messages = self.count_user_messages(session)
            if (
                user_messages > 0
                and user_messages % every == 0
                and session.title_refresh_count < self._options.max_refreshes
            ):
                return True, True
        return False, False

    def build_title_prompt(self, session: ChatSession, is_refresh: bool = False) -> str | None:
        relevant = _relevant_messages(session.messages)
        if not relevant:
            logger.trace("No relevant messages found in chat, skipping title generation")
            return None

        if is_refresh:
            lines = []
            for msg in relevant[-RECENT_MESSAGE_COUNT:]:
                role_prefix = "User" if msg["role"] == USER_ROLE else "Assistant"
                lines.append(f"{role_prefix}: {_truncate_message(content_text(msg['content']) or '')}")
            conversation = "\n".join(lines)
        else:
            first_user = next((msg for msg in relevant if msg["role"] == USER_ROLE), None)
            if first_user is None:
                logger.trace("No user message found in chat, skipping title generation")
                return None
            conversation = f"User: {_truncate_message(content_text(first_user['content']) or '')}"

        if len(conversation) > MAX_CONTEXT_CHARS:
            conversation = conversation[:MAX_CONTEXT_CHARS] + "\n[conversation truncated]"

        if is_refresh:
            return _REFRESH_PROMPT.format(original_title=session.title or "Unknown", conversation=conversation)
        return _INITIAL_PROMPT.format(conversation=conversation)

    def finalize(self, raw: str | None) -> str | None:
        """Trim and format a completion; None when nothing usable is left."""
        if raw is None:
            return None
        title = raw.strip()
        if self._options.format_title is not None and title:
            try:
                title = (self._options.format_title(title) or "").strip()
            except Exception as ex:
                raise GenerationFailed(f"format_title failed: {type(ex).__name__}: {ex}") from ex
        if not title or title in INTERIM_LABELS:
            return None
        return title

    async def generate(
        self,
        session: ChatSession,
        *,
        is_refresh: bool = False,
        on_progress: Callable[[str], None] | None = None,
    ) -> str | None:
        """Generate a title for ``session``.

        Returns None when there is nothing to title or a generation for the
        same chat is already running. Raises UnsupportedBackend,
        AdapterUnavailable or GenerationFailed.
        """
        if not self._enabled:
            return None
        if not is_refresh and session.title:
            logger.trace(f"Using existing chat title: {session.title}")
            return session.title

        key = self._key(session)
        if key in self._in_flight:
            logger.debug(f"Title generation already running for {key}, ignoring trigger")
            return None

        prompt = self.build_title_prompt(session, is_refresh)
        if prompt is None:
            return None
        adapter, settings = self._resolve_backend(session)

        self._in_flight.add(key)
        try:
            if on_progress is not None:
                on_progress(REFRESHING_TITLE if is_refresh else DECIDING_TITLE)
            logger.trace(f"Generating title for chat {key} (refresh: {is_refresh})")
            raw = await self._text_generator.complete(adapter, settings, prompt)
        finally:
            self._in_flight.discard(key)

        title = self.finalize(raw)
        if title is None:
            raise GenerationFailed("Empty title returned")
        logger.trace(f"Successfully generated title: {title}")
        return title

    def _resolve_backend(self, session: ChatSession) -> tuple[AdapterSpec, dict]:
        name = self._options.adapter or session.adapter
        if not name:
            raise GenerationFailed("No adapter configured for title generation")
        spec = self._adapters.resolve(name)
        if spec.is_acp:
            raise UnsupportedBackend(spec.name, "title generation", "title_generation.adapter")
        if self._options.model:
            return spec, {"model": self._options.model}
        if self._options.adapter and self._options.adapter != session.adapter:
            return spec, self._adapters.default_settings(spec)
        return spec, dict(session.settings)

    def _key(self, session: ChatSession) -> str:
        return session.save_id or f"handle:{session.handle}"
