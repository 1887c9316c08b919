"""Models package: database, dataclass models, and enums."""

from models.database import Database, Table, Transaction
from models.outline import ChapterNode
from models.block import TextBlock, BlockSnapshot, Snapshot, take_snapshot
from models.enums import (
    NodeType,
    InsertionSide,
    BlockKind,
    SpacingMode,
    IndentMode,
)

__all__ = [
    "Database",
    "Table",
    "Transaction",
    "ChapterNode",
    "TextBlock",
    "BlockSnapshot",
    "Snapshot",
    "take_snapshot",
    "NodeType",
    "InsertionSide",
    "BlockKind",
    "SpacingMode",
    "IndentMode",
]
