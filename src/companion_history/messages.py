from __future__ import annotations

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
SYSTEM_ROLE = "system"
TOOL_ROLE = "tool"

UNDISPLAYABLE = "[Message Cannot Be Displayed]"


def _opts(msg: dict) -> dict:
    opts = msg.get("opts")
    return opts if isinstance(opts, dict) else {}


def content_text(content: object) -> str | None:
    """Reduce message content to text; None when it cannot be displayed."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        inner = content.get("content")
        if isinstance(inner, str):
            return inner
        return None
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "\n".join(parts) if parts else None
    return None


def display_text(msg: dict) -> str:
    text = content_text(msg.get("content"))
    return UNDISPLAYABLE if text is None else text


def is_visible(msg: dict) -> bool:
    return _opts(msg).get("visible") is not False


def is_tagged(msg: dict) -> bool:
    return bool(_opts(msg).get("tag"))


def is_reference(msg: dict) -> bool:
    opts = _opts(msg)
    return bool(opts.get("reference") or opts.get("context_id"))


def is_tool_output(msg: dict) -> bool:
    return msg.get("role") == TOOL_ROLE or _opts(msg).get("tag") == "tool_output"


def has_text(msg: dict) -> bool:
    text = content_text(msg.get("content"))
    return bool(text and text.strip())


def is_qualifying_user_message(msg: dict) -> bool:
    """A real user prompt: non-empty, untagged, not an attached reference."""
    return msg.get("role") == USER_ROLE and has_text(msg) and not is_tagged(msg) and not is_reference(msg)
