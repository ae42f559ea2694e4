from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from companion_history.commands.router import CommandRouter
from companion_history.services.preview import format_preview_lines
from companion_history.services.session_controller import SessionController
from companion_history.storage.store import HistoryStore

_USAGE = {
    "location": "location",
    "list": "list [limit]",
    "show": "show <save_id>",
    "rename": "rename <save_id> <title>",
    "duplicate": "duplicate <save_id> [title]",
    "delete": "delete <save_id> [<save_id> ...]",
    "summaries": "summaries",
    "summary": "summary <summary_id>",
    "delete-summary": "delete-summary <summary_id> [<summary_id> ...]",
    "expire": "expire <days>",
    "rebuild-index": "rebuild-index",
}


class HistoryCommands:
    """Command-line view over a history store."""

    def __init__(
        self,
        store: HistoryStore,
        controller: SessionController,
        *,
        out: Callable[[str], None] = print,
    ):
        self._store = store
        self._controller = controller
        self._out = out

    def router(self) -> CommandRouter:
        return CommandRouter(
            handlers={
                "location": self.location,
                "list": self.list_chats,
                "show": self.show,
                "rename": self.rename,
                "duplicate": self.duplicate,
                "delete": self.delete,
                "summaries": self.list_summaries,
                "summary": self.show_summary,
                "delete-summary": self.delete_summaries,
                "expire": self.expire,
                "rebuild-index": self.rebuild_index,
            },
            on_help=self.help,
            on_unknown=self.unknown,
        )

    def help(self) -> int:
        self._out("Usage: python -m companion_history <command> [args]")
        self._out("Commands:")
        for usage in _USAGE.values():
            self._out(f"  {usage}")
        return 0

    def unknown(self, command: str) -> int:
        self._out(f"Unknown command: {command}. Run 'help' for usage.")
        return 2

    def _usage(self, command: str) -> int:
        self._out(f"Usage: {_USAGE[command]}")
        return 2

    def location(self, args: list[str]) -> int:
        self._out(self._store.get_location())
        return 0

    def list_chats(self, args: list[str]) -> int:
        limit = None
        if args:
            try:
                limit = int(args[0])
            except ValueError:
                return self._usage("list")
        chats = self._store.get_chats()
        if not chats:
            self._out("No chats found")
            return 0
        for chat in chats[:limit]:
            self._out(self._controller.format_chat_list_entry(chat))
        return 0

    def show(self, args: list[str]) -> int:
        if len(args) != 1:
            return self._usage("show")
        record = self._store.load_chat(args[0])
        if record is None:
            self._out(f"Chat not found: {args[0]}")
            return 1
        entry = next((c for c in self._store.get_chats() if c.save_id == record.save_id), None)
        if entry is not None:
            summary = self._store.get_summary_for_chat(record.save_id)
            for line in self._controller.format_chat_details_lines(entry, summary=summary):
                self._out(line)
            self._out("")
        for line in format_preview_lines(record):
            self._out(line)
        return 0

    def rename(self, args: list[str]) -> int:
        if len(args) < 2:
            return self._usage("rename")
        title = " ".join(args[1:]).strip()
        if not title or not self._store.rename_chat(args[0], title):
            self._out("Failed to rename chat")
            return 1
        self._out("Chat renamed successfully")
        return 0

    def duplicate(self, args: list[str]) -> int:
        if not args:
            return self._usage("duplicate")
        title = " ".join(args[1:]).strip() or None
        new_save_id = self._store.duplicate_chat(args[0], title)
        if new_save_id is None:
            self._out("Failed to duplicate chat")
            return 1
        self._out(f"Chat duplicated as {new_save_id}")
        return 0

    def delete(self, args: list[str]) -> int:
        if not args:
            return self._usage("delete")
        deleted = sum(1 for save_id in args if self._store.delete_chat(save_id))
        logger.debug(f"Deleted {deleted} of {len(args)} chat(s)")
        if deleted == 0:
            self._out("Failed to delete chats")
            return 1
        self._out("Chat deleted successfully" if deleted == 1 else f"{deleted} chats deleted successfully")
        return 0

    def list_summaries(self, args: list[str]) -> int:
        summaries = self._store.get_summaries()
        if not summaries:
            self._out("No summaries found")
            return 0
        for summary in summaries:
            self._out(self._controller.format_summary_list_entry(summary))
        return 0

    def show_summary(self, args: list[str]) -> int:
        if len(args) != 1:
            return self._usage("summary")
        content = self._store.load_summary(args[0])
        if content is None:
            self._out(f"Summary not found: {args[0]}")
            return 1
        self._out(content)
        return 0

    def delete_summaries(self, args: list[str]) -> int:
        if not args:
            return self._usage("delete-summary")
        deleted = sum(1 for summary_id in args if self._store.delete_summary(summary_id))
        if deleted == 0:
            self._out("Failed to delete summaries")
            return 1
        self._out("Summary deleted successfully" if deleted == 1 else f"{deleted} summaries deleted successfully")
        return 0

    def expire(self, args: list[str]) -> int:
        try:
            days = int(args[0]) if len(args) == 1 else None
        except ValueError:
            days = None
        if days is None:
            return self._usage("expire")
        expired = self._store.expire_chats(days)
        self._out(f"Expired {len(expired)} chat(s)")
        return 0

    def rebuild_index(self, args: list[str]) -> int:
        count = self._store.rebuild_index()
        self._out(f"Indexed {count} chat(s)")
        return 0
