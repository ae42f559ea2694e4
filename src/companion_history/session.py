from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ChatSession:
    """Live chat state handed over by the host.

    ``handle`` identifies the host-side view (buffer, tab, window) and never
    changes; ``save_id`` is the persistence key and is reassigned when the
    chat is cleared.
    """

    handle: int
    save_id: str | None = None
    title: str | None = None
    messages: list[dict] = field(default_factory=list)
    context_items: list[dict] = field(default_factory=list)
    settings: dict[str, Any] = field(default_factory=dict)
    adapter: str | None = None
    cycle: int = 1
    title_refresh_count: int = 0
    cwd: str | None = None
    tool_schemas: dict[str, Any] = field(default_factory=dict)
    tools_in_use: dict[str, Any] = field(default_factory=dict)
