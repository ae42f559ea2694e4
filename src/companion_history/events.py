from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from loguru import logger

EventHandler = Callable[[str, dict], None]

TITLE_SET = "TitleSet"
TITLE_RENAMED = "TitleRenamed"
CHAT_SAVED = "ChatSaved"
CHAT_DELETED = "ChatDeleted"
SUMMARY_SAVED = "SummarySaved"


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


class EventEmitter:
    """In-process replacement for host user events.

    Handlers subscribe to an event type (or ``"*"``) and receive
    ``(event_type, payload)``. A failing handler is logged and skipped.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def subscribe(self, event_type: str, handler: EventHandler) -> Callable[[], None]:
        self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def emit(self, event_type: str, payload: dict) -> None:
        payload = {**payload, "emitted_at": utc_now()}
        logger.trace(f"Event {event_type}: {payload}")
        for handler in [*self._handlers.get(event_type, []), *self._handlers.get("*", [])]:
            try:
                handler(event_type, payload)
            except Exception as ex:
                logger.warning(f"Event handler for {event_type} failed: {ex}")
