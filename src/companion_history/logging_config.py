import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

LOG_FILE_NAME = "history.log"

_LEVEL_ALIASES = {
    "warn": "WARNING",
    "err": "ERROR",
    "fatal": "CRITICAL",
}


def normalize_level(level: object, default: str = "INFO") -> str:
    """Map user-facing level names ("warn", "debug", ...) onto loguru levels."""
    if not isinstance(level, str) or not level.strip():
        return default
    name = level.strip().lower()
    return _LEVEL_ALIASES.get(name, name.upper())


def _own_records(record: dict) -> bool:
    return (record["name"] or "").startswith("companion_history")


@runtime_checkable
class LogSink(Protocol):
    def attach(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


class StderrSink:
    def attach(self, level: str) -> None:
        logger.add(
            sys.stderr,
            level=level,
            filter=_own_records,
            format="<level>{level:<8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        )

    def describe(self, level: str) -> str:
        return f"stderr ({level})"


class HistoryFileSink:
    """Rotating log file, by default alongside the saved chats."""

    def __init__(self, path: str, rotation: str = "5 MB", retention: int = 2):
        self._path = Path(path).expanduser()
        self._rotation = rotation
        self._retention = retention

    def attach(self, level: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self._path),
            level=level,
            filter=_own_records,
            format="{time:YYYY-MM-DD HH:mm:ss} [{level}] {name}:{line} {message}",
            rotation=self._rotation,
            retention=self._retention,
            encoding="utf-8",
        )

    def describe(self, level: str) -> str:
        return f"file {self._path} ({level})"


_SINK_TYPES: dict[str, type] = {
    "console": StderrSink,
    "file": HistoryFileSink,
}


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
    *,
    enabled: bool = True,
    history_dir: str | None = None,
) -> list[str]:
    """Install loguru sinks for the history package. Returns one description per sink.

    When logging is disabled only warnings and errors are shown on stderr.
    Without explicit consumers, records go to stderr and, when ``history_dir``
    is given, to ``history.log`` inside it.
    """
    logger.remove()

    if not enabled:
        quiet = StderrSink()
        quiet.attach("WARNING")
        return [quiet.describe("WARNING")]

    level = normalize_level(level)
    if consumers is None:
        consumers = [{"type": "console"}]
        if history_dir:
            consumers.append({"type": "file", "path": str(Path(history_dir).expanduser() / LOG_FILE_NAME)})

    descriptions: list[str] = []
    for entry in consumers:
        kind = entry.get("type", "")
        sink_cls = _SINK_TYPES.get(kind)
        if sink_cls is None:
            logger.warning(f"Unknown log consumer type: {kind!r}")
            continue
        if kind == "file" and "path" not in entry:
            if not history_dir:
                logger.warning("File log consumer needs a path")
                continue
            entry = {**entry, "path": str(Path(history_dir).expanduser() / LOG_FILE_NAME)}

        options = {k: v for k, v in entry.items() if k not in ("type", "level")}
        sink_level = normalize_level(entry.get("level"), default=level)
        sink = sink_cls(**options)
        sink.attach(sink_level)
        descriptions.append(sink.describe(sink_level))

    return descriptions
