from __future__ import annotations

import json

from companion_history.messages import (
    ASSISTANT_ROLE,
    SYSTEM_ROLE,
    USER_ROLE,
    display_text,
    is_visible,
)
from companion_history.storage.models import SessionRecord

PINNED_ICON = "📌 "
WATCHED_ICON = "👀 "


def _inspect(value: object) -> str:
    if value is None:
        return "nil"
    if isinstance(value, str):
        return f'"{value}"'
    return json.dumps(value, default=str)


def _settings_lines(record: SessionRecord) -> list[str]:
    lines = ["---", f"adapter: {_inspect(record.adapter)}", f"model: {_inspect(record.settings.get('model'))}"]
    for key in sorted(record.settings):
        if key != "model":
            lines.append(f"{key}: {_inspect(record.settings[key])}")
    lines.append("---")
    lines.append("")
    return lines


def _context_lines(context_items: list[dict]) -> list[str]:
    entries: list[str] = []
    for item in context_items:
        if not isinstance(item, dict):
            continue
        opts = item.get("opts") or {}
        if opts.get("visible") is False:
            continue
        if opts.get("pinned"):
            entries.append(f"> - {PINNED_ICON}{item.get('id')}")
        elif opts.get("watched"):
            entries.append(f"> - {WATCHED_ICON}{item.get('id')}")
        else:
            entries.append(f"> - {item.get('id')}")
    if not entries:
        return []
    return ["> Context:", *entries, ""]


def format_preview_lines(record: SessionRecord) -> list[str]:
    """Render a saved chat as markdown lines for a picker preview pane."""
    lines: list[str] = _settings_lines(record) if record.settings else []
    lines.extend(_context_lines(record.context_items))

    if not record.messages:
        lines.extend(["## User", "", ""])
        return lines

    last_role: str | None = None
    for msg in record.messages:
        if msg.get("role") == SYSTEM_ROLE or not is_visible(msg):
            continue
        role = msg.get("role")
        if last_role is not None and last_role != role and role != USER_ROLE:
            lines.append("")
        if role == USER_ROLE and last_role != USER_ROLE:
            if last_role is not None:
                lines.append("")
            lines.extend(["## User", ""])
        elif role == ASSISTANT_ROLE and last_role != ASSISTANT_ROLE:
            lines.extend(["## Assistant", ""])

        opts = msg.get("opts") or {}
        if opts.get("tag") == "tool_output":
            lines.extend(["### Tool Output", ""])

        text = display_text(msg)
        body = text.split("\n")
        if not (role == USER_ROLE and text == ""):
            while body and body[0] == "":
                body.pop(0)
            while body and body[-1] == "":
                body.pop()
        lines.extend(body)
        last_role = role
    return lines
