from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from loguru import logger

if TYPE_CHECKING:
    from companion_history.serializer import RestoredSession
    from companion_history.session import ChatSession


class TitleCollision(Exception):
    """Raised by a title sink when another view already uses the name."""


@runtime_checkable
class Notifier(Protocol):
    def notify(self, message: str, level: str = "info") -> None: ...


@runtime_checkable
class TitleSink(Protocol):
    def set_name(self, handle: int, name: str) -> None:
        """Rename the host view. Raises TitleCollision if the name is taken."""
        ...

    def width(self, handle: int) -> int | None:
        """Visible width of the view, or None when it is not displayed."""
        ...


@runtime_checkable
class Prompter(Protocol):
    def confirm(self, message: str) -> bool: ...
    def input(self, prompt: str, default: str = "") -> str | None: ...
    def select(self, items: list[str], prompt: str) -> str | None: ...


@runtime_checkable
class Picker(Protocol):
    def browse(
        self,
        *,
        item_type: str,
        title: str,
        items: list[Any],
        handlers: dict[str, Callable[..., Any]],
        current_item_id: str | None = None,
    ) -> None: ...


@runtime_checkable
class SessionOpener(Protocol):
    def open_session(self, restored: RestoredSession) -> ChatSession: ...
    def close_session(self, session: ChatSession) -> None: ...
    def find_session(self, save_id: str) -> ChatSession | None: ...
    def active_session(self) -> ChatSession | None: ...


class LoguruNotifier:
    _LEVELS = {"trace": "TRACE", "debug": "DEBUG", "info": "INFO", "warn": "WARNING", "error": "ERROR"}

    def notify(self, message: str, level: str = "info") -> None:
        logger.log(self._LEVELS.get(level, "INFO"), message)
