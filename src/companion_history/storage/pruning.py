from __future__ import annotations

import time
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from companion_history.storage.store import HistoryStore

_SECONDS_PER_DAY = 24 * 60 * 60


def expire_chats(store: HistoryStore, days: int, *, now: float | None = None) -> list[str]:
    """Delete chats not updated within ``days``. Summaries are kept."""
    if days <= 0:
        return []
    cutoff = (now if now is not None else time.time()) - days * _SECONDS_PER_DAY

    expired = [entry.save_id for entry in store.get_chats() if entry.updated_at < cutoff]
    deleted = [save_id for save_id in expired if store.delete_chat(save_id)]
    if deleted:
        logger.info(f"Expired {len(deleted)} chat(s) older than {days} day(s)")
    return deleted
