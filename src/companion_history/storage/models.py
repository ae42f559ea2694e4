from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class SessionRecord:
    save_id: str
    title: str | None = None
    messages: list[dict] = field(default_factory=list)
    context_items: list[dict] = field(default_factory=list)
    settings: dict[str, Any] = field(default_factory=dict)
    adapter: str | None = None
    cycle: int = 1
    title_refresh_count: int = 0
    updated_at: int = 0
    cwd: str | None = None
    tool_schemas: dict[str, Any] = field(default_factory=dict)
    tools_in_use: dict[str, Any] = field(default_factory=dict)


@dataclass
class SummaryRecord:
    summary_id: str
    chat_id: str
    chat_title: str
    generated_at: int
    content: str
    path: str | None = None


@dataclass(frozen=True)
class ChatIndexEntry:
    save_id: str
    title: str
    updated_at: int
    message_count: int = 0
    adapter: str | None = None
    model: str | None = None
    cwd: str | None = None
    has_summary: bool = False

    @property
    def name(self) -> str:
        return self.title or self.save_id


@dataclass(frozen=True)
class SummaryIndexEntry:
    summary_id: str
    chat_id: str
    chat_title: str
    generated_at: int
