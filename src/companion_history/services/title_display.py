from __future__ import annotations

import time
from datetime import datetime

from loguru import logger
from rich.cells import cell_len, set_cell_size

from companion_history.events import TITLE_SET, EventEmitter
from companion_history.host import Notifier, TitleCollision, TitleSink
from companion_history.session import ChatSession

TITLE_ICON = "✨ "
SAVED_ICON = "💾 "
SUMMARY_INDICATOR = "(📝)"
MAX_COLLISION_RETRIES = 10

# Columns reserved for the icon, padding and any host decorations.
_RESERVED_COLUMNS = 10


def format_time(timestamp: int, *, now: float | None = None) -> str:
    now = time.time() if now is None else now
    delta = int(now - timestamp)
    if delta < 60:
        return "just now"
    if delta < 3600:
        return f"{delta // 60}m ago"
    if delta < 86_400:
        return f"{delta // 3600}h ago"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")


def justify(parts: list[str], width: int | None) -> str:
    """Spread ``parts`` across ``width - 10`` display columns.

    Gaps are filled evenly with the leftmost gaps taking any extra space;
    the result is cut with an ellipsis when it does not fit.
    """
    if not parts:
        return ""
    if len(parts) == 1:
        return str(parts[0])
    if width is None or any(not isinstance(part, str) for part in parts):
        return " ".join(str(part) for part in parts)

    available = width - _RESERVED_COLUMNS
    total = sum(cell_len(part) for part in parts)
    remaining = max(0, available - total)
    gaps = len(parts) - 1
    if remaining <= 0:
        joined = " ".join(parts)
    else:
        gap_size, extra = divmod(remaining, gaps)
        pieces: list[str] = []
        for i, part in enumerate(parts):
            pieces.append(part)
            if i < gaps:
                pieces.append(" " * (gap_size + (1 if i < extra else 0)))
        joined = "".join(pieces)

    if available > 0 and cell_len(joined) > available:
        joined = set_cell_size(joined, available - 1) + "…"
    return joined


class TitleDisplay:
    """Keeps the host view name in sync with the chat title."""

    def __init__(
        self,
        sink: TitleSink,
        notifier: Notifier,
        *,
        default_buf_title: str = "[CodeCompanion] ",
        events: EventEmitter | None = None,
    ):
        self._sink = sink
        self._notifier = notifier
        self._default_buf_title = default_buf_title
        self._events = events

    def base_title(self, session: ChatSession) -> str:
        return session.title or f"{self._default_buf_title}{session.handle}"

    def update_chat_title(self, session: ChatSession, suffix: str | None = None, force: bool = False) -> str | None:
        logger.trace(f"Updating chat title for: {session.save_id or 'N/A'}")
        if suffix is None:
            return self.set_title(session.handle, self.base_title(session))
        title = suffix if force else f"{self.base_title(session)} {suffix}"
        return self.set_title(session.handle, title)

    def update_summary_indicator(self, session: ChatSession, has_summary: bool) -> str | None:
        if has_summary:
            return self.update_chat_title(session, SUMMARY_INDICATOR)
        return self.update_chat_title(session)

    def update_last_saved(self, session: ChatSession, saved_at: int, *, now: float | None = None) -> str | None:
        return self.update_chat_title(session, SAVED_ICON + format_time(saved_at, now=now))

    def set_title(self, handle: int, title: str | list[str]) -> str | None:
        """Apply ``title`` to the view; returns the name used or None on failure.

        A name already taken by another view is retried as ``"<title> (n)"``.
        """
        final_title = justify(title, self._sink.width(handle)) if isinstance(title, list) else str(title)

        error: TitleCollision | None = None
        for attempt in range(MAX_COLLISION_RETRIES + 1):
            candidate = final_title if attempt == 0 else f"{final_title} ({attempt})"
            try:
                self._sink.set_name(handle, TITLE_ICON + candidate)
            except TitleCollision as ex:
                error = ex
                logger.trace(f"Title collision for view {handle}, retrying with attempt {attempt + 1}")
                continue
            logger.trace(f"Set title for view {handle}: {candidate}")
            if self._events is not None:
                self._events.emit(TITLE_SET, {"handle": handle, "title": candidate})
            return candidate

        logger.warning(f"Failed to set title for view {handle} after {MAX_COLLISION_RETRIES} retries")
        self._notifier.notify(f"Failed to set buffer title: {error}", "error")
        return None
