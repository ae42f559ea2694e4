from __future__ import annotations

import time
from collections.abc import Callable

from loguru import logger

from companion_history.adapters import AdapterRegistry
from companion_history.app_config import HistoryConfig
from companion_history.browser import HistoryBrowser
from companion_history.errors import AdapterUnavailable, HistoryError, UnsupportedBackend
from companion_history.events import (
    CHAT_DELETED,
    CHAT_SAVED,
    SUMMARY_SAVED,
    TITLE_RENAMED,
    EventEmitter,
)
from companion_history.generation.summary_generator import SummaryGenerator
from companion_history.generation.text_client import TextGenerator
from companion_history.generation.title_generator import TitleGenerator
from companion_history.host import Notifier, Picker, Prompter, SessionOpener, TitleSink
from companion_history.messages import USER_ROLE
from companion_history.serializer import from_record, to_record
from companion_history.services.title_display import SUMMARY_INDICATOR, TitleDisplay
from companion_history.session import ChatSession
from companion_history.storage.codec import merge_context_items
from companion_history.storage.models import ChatIndexEntry, SessionRecord, SummaryIndexEntry, SummaryRecord
from companion_history.storage.store import HistoryStore

ChatFilter = Callable[[ChatIndexEntry], bool]

GENERATING_SUMMARY = "(🔄 Generating summary...)"


class History:
    """Reacts to host chat events and exposes the history commands.

    The host calls the ``on_*`` methods from its event loop; everything else
    is a command a user (or another extension) can invoke directly.
    """

    def __init__(
        self,
        config: HistoryConfig,
        store: HistoryStore,
        adapters: AdapterRegistry,
        text_generator: TextGenerator,
        notifier: Notifier,
        title_sink: TitleSink,
        prompter: Prompter | None = None,
        picker: Picker | None = None,
        session_opener: SessionOpener | None = None,
        events: EventEmitter | None = None,
    ):
        self._config = config
        self._store = store
        self._adapters = adapters
        self._notifier = notifier
        self._prompter = prompter
        self._session_opener = session_opener
        self._events = events or EventEmitter()
        self._titles = TitleGenerator(
            config.title_generation,
            adapters,
            text_generator,
            enabled=config.auto_generate_title,
        )
        self._summaries = SummaryGenerator(config.summary_generation, adapters, text_generator)
        self._display = TitleDisplay(
            title_sink,
            notifier,
            default_buf_title=config.default_buf_title,
            events=self._events,
        )
        self._browser = HistoryBrowser(self, store, notifier, picker=picker, prompter=prompter)
        self._sessions: dict[int, ChatSession] = {}
        self._should_load_last_chat = config.continue_last_chat

    @property
    def events(self) -> EventEmitter:
        return self._events

    @property
    def title_generator(self) -> TitleGenerator:
        return self._titles

    @property
    def active_session(self) -> ChatSession | None:
        if self._session_opener is None:
            return None
        return self._session_opener.active_session()

    def on_session_created(self, session: ChatSession) -> None:
        logger.trace(f"Chat created event received for view {session.handle}")
        self._sessions[session.handle] = session

        if self._should_load_last_chat:
            self._should_load_last_chat = False
            if self._continue_last_chat(session):
                return

        self._display.update_chat_title(session)
        if not session.save_id:
            session.save_id = self._new_save_id()
            logger.trace(f"Generated new save_id: {session.save_id}")
        self._refresh_summary_indicator(session)

    def on_turn_finished(self, session: ChatSession, interaction: str = "chat") -> None:
        if not self._config.auto_save:
            return
        if interaction != "chat":
            logger.trace(f"Skipping finished event for non-chat interaction: {interaction}")
            return
        self._sessions.setdefault(session.handle, session)
        self._save(session)

    async def on_session_submitted(self, session: ChatSession) -> str | None:
        """Save the chat and run a due title generation; returns the new title, if any."""
        logger.trace(f"Chat submitted event received for view {session.handle}")
        self._sessions.setdefault(session.handle, session)
        if not session.save_id:
            session.save_id = self._new_save_id()

        should_generate, is_refresh = self._titles.should_generate(session)
        if self._config.auto_save:
            self._save(session)
        if not should_generate:
            return None
        return await self._generate_title(session, is_refresh)

    def on_session_cleared(self, session: ChatSession) -> None:
        logger.trace(f"Chat cleared event received for view {session.handle}")
        if self._config.delete_on_clearing_chat and session.save_id:
            logger.trace(f"Deleting cleared chat from storage: {session.save_id}")
            if self._store.delete_chat(session.save_id):
                self._events.emit(CHAT_DELETED, {"save_id": session.save_id})

        session.title = None
        session.title_refresh_count = 0
        session.save_id = self._new_save_id()
        logger.trace(f"Generated new save_id after clear: {session.save_id}")
        self._display.update_chat_title(session)

    def on_session_closed(self, session: ChatSession) -> None:
        if self._sessions.get(session.handle) is session:
            del self._sessions[session.handle]

    def save_session(self, session: ChatSession | None) -> bool:
        """Manual save, independent of ``auto_save``."""
        if session is None:
            return False
        if not session.save_id:
            session.save_id = self._new_save_id()
        saved_at = self._save(session)
        if saved_at is None:
            return False
        self._display.update_last_saved(session, saved_at)
        logger.debug("Saved current chat")
        return True

    async def generate_summary(self, session: ChatSession | None) -> SummaryRecord | None:
        if session is None:
            self._notifier.notify("No chat provided for summary generation", "warn")
            return None
        if not session.save_id:
            session.save_id = self._new_save_id()

        existing = self._store.get_summary_for_chat(session.save_id)
        self._notifier.notify("Generating summary...", "info")
        self._display.update_chat_title(session, GENERATING_SUMMARY)

        try:
            summary = await self._summaries.generate(
                session,
                summary_id=existing.summary_id if existing is not None else None,
            )
        except HistoryError as ex:
            logger.error(f"Summary generation failed for {session.save_id}: {ex}")
            self._display.update_summary_indicator(session, existing is not None)
            self._notifier.notify(f"Failed to generate summary: {ex}", "error")
            return None
        except Exception as ex:
            logger.error(f"Unexpected error generating summary for {session.save_id}: {type(ex).__name__}: {ex}")
            self._display.update_summary_indicator(session, existing is not None)
            self._notifier.notify(f"Failed to generate summary: {ex}", "error")
            return None

        if not self._store.save_summary(summary):
            self._display.update_summary_indicator(session, existing is not None)
            self._notifier.notify("Failed to save summary", "error")
            return None

        self._notifier.notify("Summary generated successfully", "info")
        self._events.emit(
            SUMMARY_SAVED,
            {"summary_id": summary.summary_id, "chat_id": summary.chat_id, "path": summary.path},
        )
        self._display.update_chat_title(session, SUMMARY_INDICATOR)
        return summary

    def browse_chats(self, filter_fn: ChatFilter | None = None) -> None:
        self._browser.open_chats(filter_fn or self._config.chat_filter)

    def browse_summaries(self) -> None:
        self._browser.open_summaries()

    def get_chats(self, filter_fn: ChatFilter | None = None) -> list[ChatIndexEntry]:
        return self._store.get_chats(filter_fn)

    def load_chat(self, save_id: str) -> SessionRecord | None:
        return self._store.load_chat(save_id)

    def delete_chats(self, save_ids: list[str]) -> int:
        deleted = 0
        for save_id in save_ids:
            if self._store.delete_chat(save_id):
                deleted += 1
                self._events.emit(CHAT_DELETED, {"save_id": save_id})
        logger.debug(f"Deleted {deleted} of {len(save_ids)} chat(s)")
        return deleted

    def rename_chat(self, save_id: str, new_title: str) -> bool:
        new_title = (new_title or "").strip()
        if not new_title:
            return False
        if not self._store.rename_chat(save_id, new_title):
            return False

        handle = None
        for session in self._sessions.values():
            if session.save_id == save_id:
                session.title = new_title
                handle = session.handle
                self._display.set_title(session.handle, new_title)
                break
        self._events.emit(TITLE_RENAMED, {"handle": handle, "save_id": save_id, "title": new_title})
        return True

    def duplicate_chat(self, save_id: str, new_title: str | None = None) -> str | None:
        return self._store.duplicate_chat(save_id, new_title)

    def get_summaries(self) -> list[SummaryIndexEntry]:
        return self._store.get_summaries()

    def load_summary(self, summary_id: str) -> str | None:
        return self._store.load_summary(summary_id)

    def delete_summaries(self, summary_ids: list[str]) -> int:
        chat_ids = {entry.summary_id: entry.chat_id for entry in self._store.get_summaries()}
        deleted = 0
        for summary_id in summary_ids:
            if not self._store.delete_summary(summary_id):
                continue
            deleted += 1
            for session in self._sessions.values():
                if session.save_id and session.save_id == chat_ids.get(summary_id):
                    self._display.update_summary_indicator(session, False)
        return deleted

    def get_location(self) -> str:
        return self._store.get_location()

    def open_chat(self, save_id: str) -> ChatSession | None:
        """Focus an already open chat or restore it from storage."""
        if self._session_opener is not None:
            existing = self._session_opener.find_session(save_id)
            if existing is not None:
                logger.trace(f"Chat already open: {save_id}")
                self._notifier.notify("Chat already open", "info")
                return existing

        record = self._store.load_chat(save_id)
        if record is None:
            logger.error(f"Failed to load chat: {save_id}")
            self._notifier.notify("Failed to load chat", "error")
            return None
        return self.restore_session(record)

    def restore_session(self, record: SessionRecord) -> ChatSession | None:
        """Reopen a stored chat through the host, asking for an adapter if needed."""
        if self._session_opener is None:
            self._notifier.notify("No session opener configured, cannot restore chat", "error")
            return None

        try:
            restored = from_record(record, self._adapters, notifier=self._notifier)
        except AdapterUnavailable as ex:
            logger.warning(str(ex))
            if self._prompter is None:
                self._notifier.notify(str(ex), "error")
                return None
            choice = self._prompter.select(
                self._adapters.names(),
                f"Adapter '{ex.adapter}' is not available. Select an adapter",
            )
            if not choice:
                return None
            try:
                restored = from_record(record, self._adapters, notifier=self._notifier, adapter_override=choice)
            except AdapterUnavailable as retry_ex:
                self._notifier.notify(str(retry_ex), "error")
                return None

        session = self._session_opener.open_session(restored)
        self._sessions[session.handle] = session
        self._display.update_chat_title(session)
        self._refresh_summary_indicator(session)
        return session

    def attach_summary(self, summary_id: str) -> bool:
        """Add a stored summary to the active chat as a hidden context message."""
        session = self.active_session
        if session is None:
            self._notifier.notify("No active chat to attach summary to", "error")
            return False
        content = self._store.load_summary(summary_id)
        if content is None:
            self._notifier.notify(f"Summary not found: {summary_id}", "error")
            return False

        entry = next((s for s in self._store.get_summaries() if s.summary_id == summary_id), None)
        chat_title = (entry.chat_title if entry is not None else None) or "Untitled"
        context_id = f"<summary>{chat_title}</summary>"
        session.messages.append(
            {
                "role": USER_ROLE,
                "content": f"<summary>\nChat Title: {chat_title}\nSummary:\n\n{content}\n</summary>",
                "opts": {"context_id": context_id, "visible": False},
            }
        )
        session.context_items = merge_context_items(session.context_items, [{"id": context_id, "source": "summary"}])
        self._notifier.notify("Summary added to chat", "info")
        return True

    def _save(self, session: ChatSession) -> int | None:
        if not session.save_id:
            session.save_id = self._new_save_id()
        record = to_record(session)
        if not self._store.save_chat(record):
            self._notifier.notify("Failed to save chat", "error")
            return None
        self._events.emit(CHAT_SAVED, {"save_id": record.save_id, "updated_at": record.updated_at})
        return record.updated_at

    async def _generate_title(self, session: ChatSession, is_refresh: bool) -> str | None:
        save_id = session.save_id
        handle = session.handle
        try:
            title = await self._titles.generate(
                session,
                is_refresh=is_refresh,
                on_progress=lambda label: self._display.set_title(handle, label),
            )
        except UnsupportedBackend as ex:
            logger.warning(str(ex))
            self._revert_title(session, save_id)
            self._notifier.notify(str(ex), "warn")
            return None
        except HistoryError as ex:
            logger.warning(f"Title generation failed for {save_id}: {ex}")
            self._revert_title(session, save_id)
            self._notifier.notify(f"Failed to generate title: {ex}", "warn")
            return None
        except Exception as ex:
            logger.error(f"Unexpected error generating title for {save_id}: {type(ex).__name__}: {ex}")
            self._revert_title(session, save_id)
            self._notifier.notify(f"Failed to generate title: {ex}", "warn")
            return None

        if title is None:
            return None
        if not self._is_current(session, save_id):
            logger.debug(f"Dropping late title for {save_id}, chat was closed or cleared")
            return None

        if is_refresh:
            session.title_refresh_count += 1
        session.title = title
        self._display.set_title(handle, title)
        if self._config.auto_save:
            self._save(session)
        return title

    def _revert_title(self, session: ChatSession, save_id: str | None) -> None:
        if self._is_current(session, save_id):
            self._display.update_chat_title(session)

    def _is_current(self, session: ChatSession, save_id: str | None) -> bool:
        return self._sessions.get(session.handle) is session and session.save_id == save_id

    def _refresh_summary_indicator(self, session: ChatSession) -> None:
        if not session.save_id:
            return
        has_summary = self._store.get_summary_for_chat(session.save_id) is not None
        if has_summary:
            self._display.update_summary_indicator(session, True)

    def _continue_last_chat(self, session: ChatSession) -> bool:
        logger.trace("Attempting to load last chat")
        if self._session_opener is None:
            return False
        record = self._store.get_last_chat(self._config.chat_filter)
        if record is None:
            return False
        logger.trace("Restoring last saved chat")
        if self.restore_session(record) is None:
            return False
        self._session_opener.close_session(session)
        self.on_session_closed(session)
        return True

    def _new_save_id(self) -> str:
        candidate = int(time.time())
        in_use = {s.save_id for s in self._sessions.values()}
        while str(candidate) in in_use or self._store.load_chat(str(candidate)) is not None:
            candidate += 1
        return str(candidate)
