from companion_history.storage.models import ChatIndexEntry, SessionRecord, SummaryIndexEntry, SummaryRecord
from companion_history.storage.pruning import expire_chats
from companion_history.storage.store import HistoryStore

__all__ = [
    "ChatIndexEntry",
    "HistoryStore",
    "SessionRecord",
    "SummaryIndexEntry",
    "SummaryRecord",
    "expire_chats",
]
