from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from loguru import logger

from companion_history.host import Notifier, Picker, Prompter
from companion_history.services.preview import format_preview_lines
from companion_history.storage.models import ChatIndexEntry, SummaryIndexEntry
from companion_history.storage.store import HistoryStore

if TYPE_CHECKING:
    from companion_history.history import History


def _as_list(selection: Any) -> list:
    if isinstance(selection, (list, tuple)):
        return list(selection)
    if selection is None:
        return []
    return [selection]


class HistoryBrowser:
    """Builds picker entries and the action handlers behind them."""

    def __init__(
        self,
        history: History,
        store: HistoryStore,
        notifier: Notifier,
        *,
        picker: Picker | None = None,
        prompter: Prompter | None = None,
    ):
        self._history = history
        self._store = store
        self._notifier = notifier
        self._picker = picker
        self._prompter = prompter

    def open_chats(self, filter_fn: Callable[[ChatIndexEntry], bool] | None = None) -> bool:
        logger.trace("Opening chats browser")
        if self._picker is None:
            self._notifier.notify("No picker configured", "warn")
            return False
        chats = self._store.get_chats(filter_fn)
        if not chats:
            self._notifier.notify("No chats found", "info")
            return False
        logger.trace(f"Loaded {len(chats)} chats")

        active = self._history.active_session
        self._picker.browse(
            item_type="chat",
            title="Saved Chats",
            items=chats,
            handlers=self.chat_handlers(filter_fn),
            current_item_id=active.save_id if active is not None else None,
        )
        return True

    def chat_handlers(self, filter_fn: Callable[[ChatIndexEntry], bool] | None = None) -> dict[str, Callable[..., Any]]:
        def reopen() -> None:
            self.open_chats(filter_fn)

        def preview(chat: ChatIndexEntry) -> list[str]:
            record = self._store.load_chat(chat.save_id)
            if record is None:
                logger.warning(f"Failed to load chat data for preview: {chat.save_id}")
                return ["Chat data not available"]
            return format_preview_lines(record)

        def select(chat: ChatIndexEntry) -> None:
            logger.trace(f"Selected chat: {chat.save_id}")
            self._history.open_chat(chat.save_id)

        def delete(selection: ChatIndexEntry | list[ChatIndexEntry]) -> int:
            chats = _as_list(selection)
            if not chats:
                self._notifier.notify("Invalid chat data for deletion", "error")
                return 0
            if len(chats) == 1:
                message = f'Delete chat "{chats[0].title or "Untitled"}"?'
            else:
                message = f"Delete {len(chats)} chats?"
            if not self._confirm(message):
                return 0

            deleted = self._history.delete_chats([chat.save_id for chat in chats])
            if deleted == 0:
                self._notifier.notify("Failed to delete chats", "error")
                return 0
            self._notifier.notify(
                "Chat deleted successfully" if deleted == 1 else f"{deleted} chats deleted successfully",
                "info",
            )
            reopen()
            return deleted

        def rename(chat: ChatIndexEntry) -> bool:
            logger.trace(f"Renaming chat: {chat.save_id}")
            new_title = self._input("Rename to: ", chat.title or "")
            if not new_title or not new_title.strip():
                return False
            if not self._history.rename_chat(chat.save_id, new_title):
                self._notifier.notify("Failed to rename chat", "error")
                return False
            self._notifier.notify("Chat renamed successfully", "info")
            reopen()
            return True

        def duplicate(chat: ChatIndexEntry) -> str | None:
            logger.trace(f"Duplicating chat: {chat.save_id}")
            new_title = self._input("Duplicate as: ", chat.title or "")
            if not new_title or not new_title.strip():
                new_title = f"{chat.title or 'Untitled'} (1)"
            new_save_id = self._history.duplicate_chat(chat.save_id, new_title)
            if new_save_id is None:
                self._notifier.notify("Failed to duplicate chat", "error")
                return None
            self._notifier.notify("Chat duplicated successfully", "info")
            reopen()
            return new_save_id

        return {
            "open": reopen,
            "preview": preview,
            "select": select,
            "delete": delete,
            "rename": rename,
            "duplicate": duplicate,
        }

    def open_summaries(self) -> bool:
        logger.trace("Opening summaries browser")
        if self._picker is None:
            self._notifier.notify("No picker configured", "warn")
            return False
        summaries = self._store.get_summaries()
        if not summaries:
            self._notifier.notify("No summaries found", "info")
            return False

        self._picker.browse(
            item_type="summary",
            title="Saved Summaries",
            items=summaries,
            handlers=self.summary_handlers(),
        )
        return True

    def summary_handlers(self) -> dict[str, Callable[..., Any]]:
        def preview(summary: SummaryIndexEntry) -> list[str]:
            content = self._store.load_summary(summary.summary_id)
            if content is None:
                logger.warning(f"Failed to load summary for preview: {summary.summary_id}")
                return ["Summary content not available"]
            return content.split("\n")

        def select(summary: SummaryIndexEntry) -> bool:
            logger.trace(f"Selected summary: {summary.summary_id}")
            return self._history.attach_summary(summary.summary_id)

        def delete(selection: SummaryIndexEntry | list[SummaryIndexEntry]) -> int:
            summaries = _as_list(selection)
            if not summaries:
                self._notifier.notify("Invalid summary data for deletion", "error")
                return 0
            if len(summaries) == 1:
                message = f'Delete summary for "{summaries[0].chat_title or "Untitled"}"?'
            else:
                message = f"Delete {len(summaries)} summaries?"
            if not self._confirm(message):
                return 0

            deleted = self._history.delete_summaries([s.summary_id for s in summaries])
            if deleted == 0:
                self._notifier.notify("Failed to delete summaries", "error")
                return 0
            self._notifier.notify(
                "Summary deleted successfully" if deleted == 1 else f"{deleted} summaries deleted successfully",
                "info",
            )
            self.open_summaries()
            return deleted

        def unsupported(action: str) -> Callable[[SummaryIndexEntry], None]:
            def handler(_summary: SummaryIndexEntry) -> None:
                self._notifier.notify(f"{action} summaries is not supported", "info")

            return handler

        return {
            "open": self.open_summaries,
            "preview": preview,
            "select": select,
            "delete": delete,
            "rename": unsupported("Renaming"),
            "duplicate": unsupported("Duplicating"),
        }

    def _confirm(self, message: str) -> bool:
        if self._prompter is None:
            return False
        return self._prompter.confirm(message)

    def _input(self, prompt: str, default: str) -> str | None:
        if self._prompter is None:
            return None
        return self._prompter.input(prompt, default)
