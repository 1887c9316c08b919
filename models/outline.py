"""Outline (chapter forest) data model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.enums import NodeType


@dataclass
class ChapterNode:
    """One node of a project's outline: a volume, chapter, or episode."""
    id: Optional[int] = None
    project_id: int = 0
    parent_id: Optional[int] = None
    title: str = ""
    type: NodeType = NodeType.CHAPTER
    order: int = 0  # Position among siblings with the same parent AND type
    created_at: Optional[datetime] = None
