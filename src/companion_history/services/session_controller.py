from __future__ import annotations

from companion_history.services.title_display import format_time
from companion_history.storage.models import ChatIndexEntry, SummaryIndexEntry


class SessionController:
    def __init__(self, *, line_prefix: str, short_id_len: int = 8):
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len

    def short_id(self, value: str) -> str:
        if len(value) <= self._short_id_len:
            return value
        return value[: self._short_id_len]

    def format_chat_list_entry(
        self,
        chat: ChatIndexEntry,
        *,
        active_save_id: str | None = None,
        now: float | None = None,
    ) -> str:
        marker = "*" if chat.save_id == active_save_id else " "
        summary = " (📝)" if chat.has_summary else ""
        model = f"{chat.adapter}/{chat.model}" if chat.model else (chat.adapter or "-")
        return (
            f"{self._line_prefix}{marker} {chat.name}{summary} [{self.short_id(chat.save_id)}] "
            f"(id={chat.save_id}) (messages={chat.message_count}, model={model}, "
            f"updated={format_time(chat.updated_at, now=now)})"
        )

    def format_summary_list_entry(self, summary: SummaryIndexEntry, *, now: float | None = None) -> str:
        return (
            f"{self._line_prefix}  {summary.chat_title or 'Untitled'} [{summary.summary_id}] "
            f"(chat={summary.chat_id}, generated={format_time(summary.generated_at, now=now)})"
        )

    def format_chat_details_lines(self, chat: ChatIndexEntry, *, summary: SummaryIndexEntry | None = None) -> list[str]:
        lines = [f"{self._line_prefix}Chat: {chat.name}"]
        lines.append(f"{self._line_prefix}- Id: {chat.save_id}")
        lines.append(f"{self._line_prefix}- Messages: {chat.message_count}")
        lines.append(f"{self._line_prefix}- Adapter: {chat.adapter or '-'} | Model: {chat.model or '-'}")
        if chat.cwd:
            lines.append(f"{self._line_prefix}- Directory: {chat.cwd}")
        if summary is not None:
            lines.append(f"{self._line_prefix}- Summary: {summary.summary_id}")
        return lines
