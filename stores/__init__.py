"""Stores package: outline and block state with background persistence."""

from stores.block_store import BlockStore
from stores.history import HistoryManager
from stores.outline_store import OutlineStore
from stores.tasks import BackgroundTasks

__all__ = [
    "BlockStore",
    "HistoryManager",
    "OutlineStore",
    "BackgroundTasks",
]
