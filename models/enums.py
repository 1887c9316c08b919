"""Enumerations for outline nodes and manuscript blocks."""

from enum import Enum


class NodeType(str, Enum):
    VOLUME = "volume"
    CHAPTER = "chapter"
    EPISODE = "episode"

    @property
    def can_have_children(self) -> bool:
        return self is not NodeType.EPISODE

    @property
    def rank(self) -> int:
        """Display rank used to interleave per-type sibling orders."""
        return _NODE_RANK[self]


_NODE_RANK = {NodeType.VOLUME: 0, NodeType.CHAPTER: 1, NodeType.EPISODE: 2}


class InsertionSide(str, Enum):
    BEFORE = "before"
    AFTER = "after"


class BlockKind(str, Enum):
    DIALOGUE = "dialogue"
    NARRATIVE = "narrative"
    EMPTY = "empty"


class SpacingMode(str, Enum):
    ADD = "add"
    REMOVE = "remove"


class IndentMode(str, Enum):
    AUTO = "auto"  # Indent every non-dialogue line
    ALL = "all"
    REMOVE = "remove"
