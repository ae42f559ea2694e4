from __future__ import annotations

from companion_history.storage.models import SessionRecord


def merge_context_items(existing: list[dict], incoming: list[dict]) -> list[dict]:
    """Append incoming items whose id is not present yet (first occurrence wins)."""
    merged: list[dict] = []
    seen: set[str] = set()
    for item in [*existing, *incoming]:
        if not isinstance(item, dict):
            continue
        item_id = item.get("id")
        if item_id is not None:
            if item_id in seen:
                continue
            seen.add(item_id)
        merged.append(item)
    return merged


def record_to_dict(record: SessionRecord) -> dict:
    return {
        "save_id": record.save_id,
        "title": record.title,
        "messages": record.messages,
        "context_items": record.context_items,
        "settings": record.settings,
        "adapter": record.adapter,
        "cycle": record.cycle,
        "title_refresh_count": record.title_refresh_count,
        "updated_at": record.updated_at,
        "cwd": record.cwd,
        "tool_schemas": record.tool_schemas,
        "tools_in_use": record.tools_in_use,
    }


def record_from_dict(data: dict, *, save_id: str | None = None) -> SessionRecord:
    """Parse a stored chat. Accepts the legacy ``refs`` key for context items."""
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    resolved_id = data.get("save_id") or save_id
    if not resolved_id:
        raise ValueError("Chat record has no save_id")

    context_items = data.get("context_items")
    if context_items is None:
        context_items = data.get("refs") or []
    messages = data.get("messages") or []
    if not isinstance(messages, list) or not isinstance(context_items, list):
        raise ValueError(f"Malformed chat record: {resolved_id}")

    return SessionRecord(
        save_id=str(resolved_id),
        title=data.get("title"),
        messages=messages,
        context_items=merge_context_items([], context_items),
        settings=data.get("settings") or {},
        adapter=data.get("adapter"),
        cycle=int(data.get("cycle") or 1),
        title_refresh_count=int(data.get("title_refresh_count") or 0),
        updated_at=int(data.get("updated_at") or 0),
        cwd=data.get("cwd"),
        tool_schemas=data.get("tool_schemas") or {},
        tools_in_use=data.get("tools_in_use") or {},
    )
