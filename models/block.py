"""Manuscript text block and history snapshot models."""

import itertools
from dataclasses import dataclass
from typing import Optional

_key_counter = itertools.count(1)


def new_client_key() -> str:
    """Return a process-local key that is never handed out twice."""
    return f"k{next(_key_counter)}"


def derived_client_key(block_id: int) -> str:
    """Key for a block first seen when loaded from storage."""
    return f"b{block_id}"


@dataclass
class TextBlock:
    """One manuscript fragment inside an episode.

    ``id`` stays None until the background insert has stored the row;
    ``client_key`` is the identity used for every in-memory lookup.
    """
    id: Optional[int] = None
    client_key: str = ""
    chapter_id: int = 0
    project_id: int = 0
    content: str = ""
    order: int = 0


@dataclass(frozen=True)
class BlockSnapshot:
    """Minimal copy of a block captured for undo/redo."""
    id: Optional[int]
    client_key: str
    content: str
    order: int
    chapter_id: int
    project_id: int

    @classmethod
    def of(cls, block: TextBlock) -> "BlockSnapshot":
        return cls(
            id=block.id, client_key=block.client_key, content=block.content,
            order=block.order, chapter_id=block.chapter_id,
            project_id=block.project_id,
        )


Snapshot = tuple[BlockSnapshot, ...]


def take_snapshot(blocks) -> Snapshot:
    """Capture the full ordered block sequence of a chapter."""
    return tuple(BlockSnapshot.of(b) for b in blocks)
