"""Outline store: the project's chapter forest (volumes, chapters, episodes).

Nodes live in a flat arena keyed by id, with a secondary index from parent
id to child ids. Every traversal uses an explicit stack so deep outlines
cannot exhaust the interpreter's recursion limit.
"""

import logging
from datetime import datetime
from typing import Optional

from config.exceptions import OutlineCycleError, StorageError
from config.settings import Settings, get_settings
from models.block import TextBlock
from models.database import Database, Transaction
from models.enums import InsertionSide, NodeType
from models.outline import ChapterNode

logger = logging.getLogger(__name__)


class OutlineStore:
    """In-memory view of one project's outline, kept in sync with storage.

    The sqlite work is synchronous; the mutations are coroutines to match
    the ``BlockStore`` API.
    """

    def __init__(self, db: Database, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.project_id: Optional[int] = None
        self._nodes: dict[int, ChapterNode] = {}
        self._children: dict[Optional[int], list[int]] = {}

    # ---- Read helpers ----

    @property
    def nodes(self) -> list[ChapterNode]:
        """All nodes of the loaded project, sorted by order."""
        return sorted(self._nodes.values(), key=lambda n: (n.order, n.id))

    def get(self, node_id: Optional[int]) -> Optional[ChapterNode]:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def children(self, parent_id: Optional[int], node_type: Optional[NodeType] = None) -> list[ChapterNode]:
        """Children of ``parent_id`` (None for roots), sorted by order."""
        kids = [self._nodes[i] for i in self._children.get(parent_id, [])]
        if node_type is not None:
            kids = [k for k in kids if k.type is node_type]
        return sorted(kids, key=lambda n: (n.order, n.id))

    def ancestors(self, node_id: int) -> list[ChapterNode]:
        """Parent chain from the direct parent up to the root."""
        chain = []
        seen = {node_id}
        node = self.get(node_id)
        while node is not None and node.parent_id is not None:
            parent = self.get(node.parent_id)
            if parent is None or parent.id in seen:
                break
            seen.add(parent.id)
            chain.append(parent)
            node = parent
        return chain

    def walk(self) -> list[tuple[ChapterNode, int]]:
        """Depth-first display order as (node, depth) pairs.

        Orders are only unique per (parent, type), so siblings are combined
        and sorted by (order, type rank) before descending.
        """
        def display_sorted(parent_id):
            kids = [self._nodes[i] for i in self._children.get(parent_id, [])]
            return sorted(kids, key=lambda n: (n.order, n.type.rank, n.id))

        result = []
        stack = [(node, 0) for node in reversed(display_sorted(None))]
        while stack:
            node, depth = stack.pop()
            result.append((node, depth))
            for child in reversed(display_sorted(node.id)):
                stack.append((child, depth + 1))
        return result

    def default_parent_for(self, selected_id: Optional[int], node_type: NodeType) -> Optional[int]:
        """Parent a new node of ``node_type`` gets when added next to the selection."""
        selected = self.get(selected_id)
        if selected is None or node_type is NodeType.VOLUME:
            return None
        if node_type is NodeType.CHAPTER:
            if selected.type is NodeType.VOLUME:
                return selected.id
            if selected.type is NodeType.CHAPTER:
                return selected.parent_id
            parent = self.get(selected.parent_id)
            return parent.parent_id if parent else None
        if selected.type.can_have_children:
            return selected.id
        return selected.parent_id

    def _is_ancestor_or_self(self, candidate_id: int, node_id: Optional[int]) -> bool:
        """True if walking up from ``node_id`` reaches ``candidate_id``."""
        seen = set()
        current = self.get(node_id)
        while current is not None and current.id not in seen:
            if current.id == candidate_id:
                return True
            seen.add(current.id)
            current = self.get(current.parent_id)
        return False

    def _index(self, nodes: list[ChapterNode]) -> None:
        self._nodes = {n.id: n for n in nodes}
        self._children = {}
        for node in self.nodes:
            self._children.setdefault(node.parent_id, []).append(node.id)

    def subtree_ids(self, root_id: int) -> list[int]:
        """Pre-order ids of ``root_id`` and all its descendants."""
        ids = []
        stack = [root_id]
        seen = set()
        while stack:
            node_id = stack.pop()
            if node_id in seen:
                continue
            seen.add(node_id)
            ids.append(node_id)
            for child in reversed(self.children(node_id)):
                stack.append(child.id)
        return ids

    # ---- Loading ----

    async def load_tree(self, project_id: int) -> list[ChapterNode]:
        """Load the project's outline, repairing any parent cycles first."""
        self.project_id = project_id
        try:
            nodes = self.db.chapters.where(project_id=project_id)
            if self._repair_cycles(nodes):
                nodes = self.db.chapters.where(project_id=project_id)
        except StorageError as e:
            logger.error("load_tree(%d) failed: %s", project_id, e)
            return self.nodes
        self._index(nodes)
        return self.nodes

    def _repair_cycles(self, nodes: list[ChapterNode]) -> bool:
        by_id = {n.id: n for n in nodes}
        repaired = False
        for node in nodes:
            path = [node.id]
            visited = {node.id}
            current = by_id.get(node.parent_id) if node.parent_id is not None else None
            while current is not None:
                if current.id in visited:
                    err = OutlineCycleError(node.id, path + [current.id])
                    logger.warning("Fixing cyclic chapter: %s", err)
                    node.parent_id = None
                    try:
                        self.db.chapters.update(node.id, parent_id=None)
                        repaired = True
                    except StorageError as e:
                        logger.error("Could not persist cycle repair for %d: %s", node.id, e)
                    break
                visited.add(current.id)
                path.append(current.id)
                current = by_id.get(current.parent_id) if current.parent_id is not None else None
        return repaired

    async def _reload(self) -> list[ChapterNode]:
        if self.project_id is None:
            return []
        return await self.load_tree(self.project_id)

    # ---- Mutations ----

    async def add_node(
        self,
        parent_id: Optional[int],
        title: str,
        node_type: NodeType = NodeType.CHAPTER,
    ) -> Optional[ChapterNode]:
        """Append a node under ``parent_id``.

        The new order is the number of existing siblings with the same parent
        and the same type, so volumes, chapters and episodes under one parent
        are numbered independently.
        """
        if self.project_id is None:
            return None
        node_type = NodeType(node_type)
        if parent_id is not None:
            parent = self.get(parent_id)
            if parent is None or not parent.type.can_have_children:
                logger.debug("add_node: invalid parent %s", parent_id)
                return None

        node = ChapterNode(
            project_id=self.project_id,
            parent_id=parent_id,
            title=title,
            type=node_type,
            order=len(self.children(parent_id, node_type)),
            created_at=datetime.now(),
        )
        try:
            node.id = self.db.chapters.add(node)
        except StorageError as e:
            logger.error("add_node failed: %s", e)
            return None
        logger.info("Added %s %d '%s' under %s", node_type.value, node.id, title, parent_id)
        await self._reload()
        return self.get(node.id)

    async def rename_node(self, node_id: int, title: str) -> Optional[ChapterNode]:
        if self.get(node_id) is None:
            return None
        try:
            self.db.chapters.update(node_id, title=title)
        except StorageError as e:
            logger.error("rename_node failed: %s", e)
            return None
        await self._reload()
        return self.get(node_id)

    async def move_node(
        self,
        dragged_id: int,
        target_parent_id: Optional[int],
        reference_id: Optional[int] = None,
        side: Optional[InsertionSide] = None,
    ) -> list[ChapterNode]:
        """Reorder or reparent ``dragged_id`` relative to ``reference_id``.

        Without an explicit ``side`` the node lands after the reference when
        it was dragged downward inside the same parent and before it
        otherwise. With no reference (for example a drop on an empty child
        list) it goes to the end. The move is refused if it would put a node
        beneath itself.
        """
        dragged = self.get(dragged_id)
        if dragged is None or dragged_id == reference_id:
            return self.nodes
        if target_parent_id is not None:
            target_parent = self.get(target_parent_id)
            if target_parent is None or not target_parent.type.can_have_children:
                return self.nodes

        if dragged.type.can_have_children and self._is_ancestor_or_self(dragged_id, target_parent_id):
            logger.info("Refusing to move %d beneath itself (target %s)", dragged_id, target_parent_id)
            return self.nodes

        siblings = self.children(target_parent_id)
        ids = [s.id for s in siblings]
        dragged_index = ids.index(dragged_id) if dragged_id in ids else -1
        reference_index = ids.index(reference_id) if reference_id in ids else -1

        if dragged_index != -1:
            ids.pop(dragged_index)

        if reference_id in ids:
            pos = ids.index(reference_id)
            if side is None:
                moved_down = dragged_index != -1 and dragged_index < reference_index
                side = InsertionSide.AFTER if moved_down else InsertionSide.BEFORE
            insert_at = pos + 1 if InsertionSide(side) is InsertionSide.AFTER else pos
        else:
            insert_at = len(ids)
        ids.insert(insert_at, dragged_id)

        try:
            with self.db.transaction() as tx:
                for order, node_id in enumerate(ids):
                    tx.chapters.update(node_id, order=order, parent_id=target_parent_id)
        except StorageError as e:
            logger.error("move_node failed: %s", e)
            return self.nodes
        return await self._reload()

    async def duplicate_node(self, node_id: int) -> Optional[ChapterNode]:
        """Deep-copy a node and its subtree, placing the copy right after it.

        Only the copied root gets the title suffix; descendants keep their
        titles and are appended under their new parents. Episodes bring
        their blocks along.
        """
        source = self.get(node_id)
        if source is None:
            return None

        try:
            with self.db.transaction() as tx:
                new_root_id = self._copy_subtree(tx, source)
        except StorageError as e:
            logger.error("duplicate_node failed: %s", e)
            return None
        logger.info("Duplicated node %d as %d", node_id, new_root_id)
        await self._reload()
        return self.get(new_root_id)

    def _copy_subtree(self, tx: Transaction, source: ChapterNode) -> int:
        for sibling in self.children(source.parent_id, source.type):
            if sibling.order > source.order:
                tx.chapters.update(sibling.id, order=sibling.order + 1)

        root_id = self._copy_node(
            tx, source, source.parent_id,
            title=source.title + self.settings.duplicate_title_suffix,
            order=source.order + 1,
        )
        child_count: dict[int, int] = {}
        # (source child, new parent id), depth-first in sibling order
        stack = [(child, root_id) for child in reversed(self.children(source.id))]
        while stack:
            src, dest_parent = stack.pop()
            order = child_count.get(dest_parent, 0)
            child_count[dest_parent] = order + 1
            new_id = self._copy_node(tx, src, dest_parent, title=src.title, order=order)
            for child in reversed(self.children(src.id)):
                stack.append((child, new_id))
        return root_id

    def _copy_node(self, tx: Transaction, src: ChapterNode, parent_id: Optional[int], title: str, order: int) -> int:
        new_id = tx.chapters.add(ChapterNode(
            project_id=src.project_id,
            parent_id=parent_id,
            title=title,
            type=src.type,
            order=order,
            created_at=datetime.now(),
        ))
        if src.type is NodeType.EPISODE:
            for block in tx.text_blocks.where(chapter_id=src.id):
                tx.text_blocks.add(TextBlock(
                    chapter_id=new_id,
                    project_id=src.project_id,
                    content=block.content,
                    order=block.order,
                ))
        return new_id

    async def delete_node(self, node_id: int) -> list[int]:
        """Delete a node, its descendants, and their blocks. Returns removed ids."""
        if self.get(node_id) is None:
            return []
        doomed = self.subtree_ids(node_id)
        try:
            with self.db.transaction() as tx:
                # Children before parents
                for doomed_id in reversed(doomed):
                    tx.text_blocks.delete_where(chapter_id=doomed_id)
                    tx.chapters.delete(doomed_id)
        except StorageError as e:
            logger.error("delete_node failed: %s", e)
            return []
        logger.info("Deleted node %d and %d descendants", node_id, len(doomed) - 1)
        await self._reload()
        return doomed
