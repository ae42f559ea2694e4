from __future__ import annotations

from collections.abc import Callable

CommandHandler = Callable[[list[str]], int]


class CommandRouter:
    def __init__(
        self,
        *,
        handlers: dict[str, CommandHandler],
        on_help: Callable[[], int],
        on_unknown: Callable[[str], int],
    ) -> None:
        self._handlers = handlers
        self._on_help = on_help
        self._on_unknown = on_unknown

    @property
    def commands(self) -> list[str]:
        return sorted(self._handlers)

    def dispatch(self, argv: list[str]) -> int:
        if not argv or argv[0] in ("help", "-h", "--help"):
            return self._on_help()

        command, args = argv[0].strip().lower(), argv[1:]
        handler = self._handlers.get(command)
        if handler is None:
            return self._on_unknown(command)
        return handler(args)
