from __future__ import annotations

import contextlib
import copy
import json
import os
import tempfile
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger

from companion_history.errors import StorageIOFailure
from companion_history.storage.codec import record_from_dict, record_to_dict
from companion_history.storage.models import ChatIndexEntry, SessionRecord, SummaryIndexEntry, SummaryRecord
from companion_history.storage.pruning import expire_chats

ChatFilter = Callable[[ChatIndexEntry], bool]


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except (OSError, ValueError) as ex:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise StorageIOFailure(f"Failed to write {path}: {ex}") from ex


def _write_json(path: Path, data: Any) -> None:
    try:
        text = json.dumps(data, ensure_ascii=False, indent=2)
    except (TypeError, ValueError) as ex:
        raise StorageIOFailure(f"Cannot serialize {path.name}: {ex}") from ex
    _atomic_write(path, text)


def _read_json(path: Path) -> Any | None:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as ex:
        raise StorageIOFailure(f"Failed to read {path}: {ex}") from ex
    try:
        return json.loads(text)
    except json.JSONDecodeError as ex:
        raise StorageIOFailure(f"Corrupt JSON in {path}: {ex}") from ex


def _read_bytes(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def _restore(path: Path, previous: bytes | None) -> None:
    """Put a file back the way it was before a failed multi-file update."""
    try:
        if previous is None:
            path.unlink(missing_ok=True)
        else:
            path.write_bytes(previous)
    except OSError as ex:
        logger.error(f"Rollback of {path} failed: {ex}")


def _to_int(value: object, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    return int(value)


class HistoryStore:
    """File-backed chat and summary storage with lightweight JSON indexes.

    Layout under the base path::

        index.json                 chat index (save_id -> metadata)
        chats/<save_id>.json       one file per chat
        summaries/index.json       summary index (summary_id -> metadata)
        summaries/<summary_id>.md  one markdown file per summary
    """

    def __init__(self, base_path: str, *, expiration_days: int = 0):
        self._base_path = Path(base_path).expanduser()
        self._chats_dir = self._base_path / "chats"
        self._summaries_dir = self._base_path / "summaries"
        self._chat_index_path = self._base_path / "index.json"
        self._summary_index_path = self._summaries_dir / "index.json"
        self._lock = threading.RLock()
        self._ensure_layout()
        if expiration_days > 0:
            self.expire_chats(expiration_days)

    def get_location(self) -> str:
        return str(self._base_path)

    def save_chat(self, record: SessionRecord) -> bool:
        if not self._valid_id(record.save_id):
            return False
        with self._lock:
            return self._commit_chat(record, int(time.time()))

    def load_chat(self, save_id: str) -> SessionRecord | None:
        if not self._valid_id(save_id):
            return None
        path = self._chat_path(save_id)
        try:
            data = _read_json(path)
            if data is None:
                logger.debug(f"Chat not found: {save_id}")
                return None
            return record_from_dict(data, save_id=save_id)
        except (StorageIOFailure, ValueError, TypeError) as ex:
            logger.warning(f"Failed to load chat {save_id}: {ex}")
            return None

    def delete_chat(self, save_id: str) -> bool:
        if not self._valid_id(save_id):
            return False
        with self._lock:
            path = self._chat_path(save_id)
            index = self._load_chat_index()
            entry = index.pop(save_id, None)
            try:
                previous = _read_bytes(path)
            except OSError as ex:
                logger.error(f"Failed to delete chat {save_id}: {ex}")
                return False
            if previous is None and entry is None:
                return False
            try:
                if previous is not None:
                    path.unlink()
                if entry is not None:
                    _write_json(self._chat_index_path, index)
            except (OSError, StorageIOFailure) as ex:
                logger.error(f"Failed to delete chat {save_id}: {ex}")
                if previous is not None:
                    _restore(path, previous)
                return False
        logger.debug(f"Deleted chat {save_id}")
        return True

    def rename_chat(self, save_id: str, new_title: str) -> bool:
        with self._lock:
            record = self.load_chat(save_id)
            if record is None:
                return False
            record.title = new_title
            return self._commit_chat(record, record.updated_at)

    def duplicate_chat(self, save_id: str, new_title: str | None = None) -> str | None:
        with self._lock:
            source = self.load_chat(save_id)
            if source is None:
                return None
            duplicate = copy.deepcopy(source)
            duplicate.save_id = self._new_save_id()
            duplicate.title = new_title or f"{source.title or 'Untitled'} (1)"
            if not self._commit_chat(duplicate, int(time.time())):
                return None
        logger.debug(f"Duplicated chat {save_id} as {duplicate.save_id}")
        return duplicate.save_id

    def get_chats(self, filter_fn: ChatFilter | None = None) -> list[ChatIndexEntry]:
        with self._lock:
            index = self._load_chat_index()
            summarized = {s.chat_id for s in self.get_summaries()}
        entries: list[ChatIndexEntry] = []
        for save_id, data in index.items():
            try:
                entry = self._to_chat_entry(save_id, data, summarized)
            except (TypeError, ValueError) as ex:
                logger.warning(f"Skipping malformed chat index entry {save_id!r}: {ex}")
                continue
            if filter_fn is not None and not filter_fn(entry):
                continue
            entries.append(entry)
        entries.sort(key=lambda e: e.updated_at, reverse=True)
        return entries

    def get_last_chat(self, filter_fn: ChatFilter | None = None) -> SessionRecord | None:
        for entry in self.get_chats(filter_fn):
            record = self.load_chat(entry.save_id)
            if record is not None:
                return record
        return None

    def expire_chats(self, days: int) -> list[str]:
        return expire_chats(self, days)

    def rebuild_index(self) -> int:
        with self._lock:
            index = self._scan_chats()
            try:
                _write_json(self._chat_index_path, index)
            except StorageIOFailure as ex:
                logger.error(f"Failed to write rebuilt chat index: {ex}")
        return len(index)

    def save_summary(self, summary: SummaryRecord) -> bool:
        if not self._valid_id(summary.summary_id):
            return False
        with self._lock:
            index = self._load_summary_index()
            stale = [
                sid
                for sid, data in index.items()
                if sid != summary.summary_id and isinstance(data, dict) and data.get("chat_id") == summary.chat_id
            ]
            path = self._summary_path(summary.summary_id)
            try:
                previous = _read_bytes(path)
                _atomic_write(path, summary.content)
            except (OSError, StorageIOFailure) as ex:
                logger.error(f"Failed to save summary {summary.summary_id}: {ex}")
                return False
            for sid in stale:
                index.pop(sid, None)
            index[summary.summary_id] = {
                "summary_id": summary.summary_id,
                "chat_id": summary.chat_id,
                "chat_title": summary.chat_title,
                "generated_at": summary.generated_at,
            }
            try:
                _write_json(self._summary_index_path, index)
            except StorageIOFailure as ex:
                logger.error(f"Failed to update summary index for {summary.summary_id}: {ex}")
                _restore(path, previous)
                return False
            for sid in stale:
                self._summary_path(sid).unlink(missing_ok=True)
                logger.debug(f"Replaced summary {sid} for chat {summary.chat_id}")
        summary.path = str(path)
        return True

    def load_summary(self, summary_id: str) -> str | None:
        if not self._valid_id(summary_id):
            return None
        try:
            return self._summary_path(summary_id).read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"Summary not found: {summary_id}")
            return None
        except (OSError, UnicodeDecodeError) as ex:
            logger.warning(f"Failed to load summary {summary_id}: {ex}")
            return None

    def delete_summary(self, summary_id: str) -> bool:
        if not self._valid_id(summary_id):
            return False
        with self._lock:
            path = self._summary_path(summary_id)
            index = self._load_summary_index()
            entry = index.pop(summary_id, None)
            try:
                previous = _read_bytes(path)
            except OSError as ex:
                logger.error(f"Failed to delete summary {summary_id}: {ex}")
                return False
            if previous is None and entry is None:
                return False
            try:
                if previous is not None:
                    path.unlink()
                if entry is not None:
                    _write_json(self._summary_index_path, index)
            except (OSError, StorageIOFailure) as ex:
                logger.error(f"Failed to delete summary {summary_id}: {ex}")
                if previous is not None:
                    _restore(path, previous)
                return False
        return True

    def get_summaries(self) -> list[SummaryIndexEntry]:
        with self._lock:
            index = self._load_summary_index()
        entries: list[SummaryIndexEntry] = []
        for summary_id, data in index.items():
            try:
                entries.append(
                    SummaryIndexEntry(
                        summary_id=summary_id,
                        chat_id=str(data["chat_id"]),
                        chat_title=data.get("chat_title") or "Untitled",
                        generated_at=_to_int(data.get("generated_at")),
                    )
                )
            except (KeyError, TypeError, ValueError, AttributeError) as ex:
                logger.warning(f"Skipping malformed summary index entry {summary_id!r}: {ex}")
        entries.sort(key=lambda e: e.generated_at, reverse=True)
        return entries

    def get_summary_for_chat(self, save_id: str) -> SummaryIndexEntry | None:
        for entry in self.get_summaries():
            if entry.chat_id == save_id:
                return entry
        return None

    def summary_path(self, summary_id: str) -> str:
        return str(self._summary_path(summary_id))

    def _ensure_layout(self) -> None:
        try:
            self._chats_dir.mkdir(parents=True, exist_ok=True)
            self._summaries_dir.mkdir(parents=True, exist_ok=True)
        except OSError as ex:
            logger.error(f"Failed to create history directories under {self._base_path}: {ex}")

    def _valid_id(self, item_id: str | None) -> bool:
        if not item_id or item_id in (".", "..") or "/" in item_id or "\\" in item_id:
            logger.warning(f"Invalid history id: {item_id!r}")
            return False
        return True

    def _chat_path(self, save_id: str) -> Path:
        return self._chats_dir / f"{save_id}.json"

    def _summary_path(self, summary_id: str) -> Path:
        return self._summaries_dir / f"{summary_id}.md"

    def _commit_chat(self, record: SessionRecord, updated_at: int) -> bool:
        """Write record then index; undo the record write if the index fails."""
        path = self._chat_path(record.save_id)
        data = record_to_dict(record)
        data["updated_at"] = updated_at
        try:
            previous = _read_bytes(path)
            _write_json(path, data)
        except (OSError, StorageIOFailure) as ex:
            logger.error(f"Failed to save chat {record.save_id}: {ex}")
            return False

        index = self._load_chat_index()
        index[record.save_id] = self._index_data(record, updated_at)
        try:
            _write_json(self._chat_index_path, index)
        except StorageIOFailure as ex:
            logger.error(f"Failed to update chat index for {record.save_id}: {ex}")
            _restore(path, previous)
            return False

        record.updated_at = updated_at
        logger.trace(f"Saved chat {record.save_id}")
        return True

    def _index_data(self, record: SessionRecord, updated_at: int) -> dict:
        return {
            "save_id": record.save_id,
            "title": record.title,
            "updated_at": updated_at,
            "message_count": len(record.messages),
            "adapter": record.adapter,
            "model": (record.settings or {}).get("model"),
            "cwd": record.cwd,
        }

    def _to_chat_entry(self, save_id: str, data: object, summarized: set[str]) -> ChatIndexEntry:
        if not isinstance(data, dict):
            raise TypeError(f"expected an object, got {type(data).__name__}")
        title = data.get("title")
        return ChatIndexEntry(
            save_id=save_id,
            title=title if isinstance(title, str) and title else save_id,
            updated_at=_to_int(data.get("updated_at")),
            message_count=_to_int(data.get("message_count")),
            adapter=data.get("adapter"),
            model=data.get("model"),
            cwd=data.get("cwd"),
            has_summary=save_id in summarized,
        )

    def _load_chat_index(self) -> dict[str, Any]:
        try:
            data = _read_json(self._chat_index_path)
        except StorageIOFailure as ex:
            logger.warning(f"Chat index unreadable, rebuilding from chat files: {ex}")
            return self._rebuild_and_store()
        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.warning("Chat index is not an object, rebuilding from chat files")
            return self._rebuild_and_store()
        return data

    def _rebuild_and_store(self) -> dict[str, Any]:
        index = self._scan_chats()
        try:
            _write_json(self._chat_index_path, index)
        except StorageIOFailure as ex:
            logger.error(f"Failed to write rebuilt chat index: {ex}")
        return index

    def _scan_chats(self) -> dict[str, Any]:
        index: dict[str, Any] = {}
        if not self._chats_dir.exists():
            return index
        for path in sorted(self._chats_dir.glob("*.json")):
            try:
                record = record_from_dict(_read_json(path), save_id=path.stem)
            except (StorageIOFailure, ValueError, TypeError) as ex:
                logger.warning(f"Skipping corrupt chat file {path.name}: {ex}")
                continue
            index[record.save_id] = self._index_data(record, record.updated_at)
        return index

    def _load_summary_index(self) -> dict[str, Any]:
        try:
            data = _read_json(self._summary_index_path)
        except StorageIOFailure as ex:
            logger.warning(f"Summary index unreadable: {ex}")
            return {}
        return data if isinstance(data, dict) else {}

    def _new_save_id(self) -> str:
        candidate = int(time.time() * 1000)
        index = self._load_chat_index()
        while str(candidate) in index or self._chat_path(str(candidate)).exists():
            candidate += 1
        return str(candidate)
