"""Block store: the ordered text blocks of the selected episode.

Mutations change the in-memory sequence synchronously and return before any
storage access; the writes run afterwards as background tasks that find
their block again by ``client_key``, never by position. Reorder, bulk
transforms and undo/redo finish by reloading the chapter from storage; a
duplicate re-reads only the stored block orders.
"""

import logging
from dataclasses import replace
from typing import Callable, Optional

from config.exceptions import StorageError
from config.settings import Settings, get_settings
from models.block import Snapshot, TextBlock, new_client_key
from models.database import Database
from models.enums import BlockKind, IndentMode, SpacingMode
from stores.history import HistoryManager
from stores.tasks import BackgroundTasks
from tools.block_transforms import (
    plan_blank_lines_between,
    plan_dialogue_spacing,
    plan_drop_kind,
)
from tools.text_utils import (
    apply_indentation,
    classify_block,
    join_blocks,
    remove_indentation,
    replace_all_words,
)

logger = logging.getLogger(__name__)


class BlockStore:
    """Optimistic, undoable editing of one chapter's blocks.

    Must be used from inside a running asyncio event loop: the synchronous
    mutations schedule their persistence on it.
    """

    def __init__(
        self,
        db: Database,
        settings: Optional[Settings] = None,
        history: Optional[HistoryManager] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.history = history or HistoryManager(
            max_depth=self.settings.history_max_depth,
            coalesce_ms=self.settings.history_coalesce_ms,
        )
        self.tasks = BackgroundTasks("blocks")
        self.selected_chapter_id: Optional[int] = None
        self.project_id: Optional[int] = None
        self._blocks: list[TextBlock] = []

    # ---- Read helpers ----

    @property
    def blocks(self) -> tuple[TextBlock, ...]:
        """Copies of the current blocks in manuscript order."""
        return tuple(replace(b) for b in self._blocks)

    @property
    def contents(self) -> list[str]:
        return [b.content for b in self._blocks]

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def get(self, client_key: str) -> Optional[TextBlock]:
        block = self._live(client_key)
        return replace(block) if block else None

    def manuscript_text(self, for_export: bool = False) -> str:
        return join_blocks(self.contents, for_export=for_export)

    def _live(self, client_key: str) -> Optional[TextBlock]:
        for block in self._blocks:
            if block.client_key == client_key:
                return block
        return None

    def _index_of(self, client_key: str) -> int:
        for i, block in enumerate(self._blocks):
            if block.client_key == client_key:
                return i
        return -1

    def classify(self, content: str) -> BlockKind:
        return classify_block(content, self.settings.dialogue_open, self.settings.dialogue_close)

    async def drain(self) -> None:
        """Wait for all in-flight background writes."""
        await self.tasks.drain()

    # ---- Loading ----

    async def select_chapter(self, chapter_id: Optional[int]) -> None:
        """Switch to ``chapter_id``, dropping the previous chapter's history."""
        await self.tasks.drain()
        self.history.clear()
        self.selected_chapter_id = None
        self.project_id = None
        self._blocks = []
        if chapter_id is None:
            return
        try:
            chapter = self.db.chapters.get(chapter_id)
        except StorageError as e:
            logger.error("select_chapter(%d) failed: %s", chapter_id, e)
            return
        if chapter is None:
            logger.debug("select_chapter: no chapter %d", chapter_id)
            return
        self.selected_chapter_id = chapter_id
        self.project_id = chapter.project_id
        await self._reload(chapter_id)

    async def _reload(
        self,
        chapter_id: int,
        key_hints: Optional[dict[int, str]] = None,
        keep_pending: bool = True,
    ) -> None:
        """Replace the in-memory sequence with what storage holds.

        Stored blocks keep the key they already had in memory (or the one
        given in ``key_hints``). With ``keep_pending``, blocks whose insert
        has not reached storage yet are kept, each placed after the block
        that preceded it.
        """
        try:
            rows = self.db.text_blocks.where(chapter_id=chapter_id)
        except StorageError as e:
            logger.error("Reload of chapter %d failed: %s", chapter_id, e)
            return
        if self.selected_chapter_id != chapter_id:
            return

        known = {b.id: b.client_key for b in self._blocks if b.id is not None}
        known.update(key_hints or {})
        fresh = []
        for row in rows:
            row.client_key = known.get(row.id, row.client_key)
            fresh.append(row)

        keys = {b.client_key for b in fresh}
        pending = self._blocks if keep_pending else []
        for i, block in enumerate(pending):
            if block.id is not None or block.client_key in keys:
                continue
            anchor = self._blocks[i - 1].client_key if i > 0 else None
            pos = 0
            if anchor is not None:
                pos = len(fresh)
                for j, other in enumerate(fresh):
                    if other.client_key == anchor:
                        pos = j + 1
                        break
            fresh.insert(pos, block)
            keys.add(block.client_key)
        self._blocks = fresh

    # ---- Optimistic mutations ----

    def _splice(self, index: int, block: TextBlock) -> list[int]:
        """Insert ``block`` at ``index``, making room in the order sequence.

        Returns the ids of stored blocks whose order moved.
        """
        shifted = []
        for other in self._blocks:
            if other.order >= block.order:
                other.order += 1
                if other.id is not None:
                    shifted.append(other.id)
        self._blocks.insert(index, block)
        return shifted

    def _insertion_point(self, after_key: Optional[str], after_order: Optional[int]) -> tuple[int, int]:
        if after_key is not None:
            idx = self._index_of(after_key)
            if idx != -1:
                return idx + 1, self._blocks[idx].order + 1
        if after_order is not None:
            for i, block in enumerate(self._blocks):
                if block.order > after_order:
                    return i, after_order + 1
            return len(self._blocks), after_order + 1
        next_order = max((b.order for b in self._blocks), default=-1) + 1
        return len(self._blocks), next_order

    def insert_block(
        self,
        content: str = "",
        after_key: Optional[str] = None,
        after_order: Optional[int] = None,
    ) -> Optional[str]:
        """Insert a new block and return its client key immediately.

        The position is taken from ``after_key`` when it is present in
        memory, else from ``after_order``, else the block is appended.
        """
        if self.selected_chapter_id is None:
            return None
        self.history.push(self._blocks)
        index, order = self._insertion_point(after_key, after_order)
        key = new_client_key()
        block = TextBlock(
            id=None, client_key=key,
            chapter_id=self.selected_chapter_id, project_id=self.project_id,
            content=content, order=order,
        )
        shifted = self._splice(index, block)
        self.tasks.spawn(self._persist_insert(key, shifted), "insert")
        return key

    def update_block(self, client_key: str, content: str) -> None:
        """Edit a block's content; rapid edits of one block share an undo entry."""
        block = self._live(client_key)
        if block is None or block.content == content:
            return
        self.history.record_edit(self._blocks, client_key)
        block.content = content
        if block.id is not None:
            self.tasks.spawn(self._persist_content(client_key), "update")

    def duplicate_block(self, client_key: str) -> Optional[str]:
        """Copy a block directly after itself; returns the copy's key."""
        idx = self._index_of(client_key)
        if idx == -1:
            return None
        self.history.push(self._blocks)
        src = self._blocks[idx]
        key = new_client_key()
        clone = TextBlock(
            id=None, client_key=key,
            chapter_id=src.chapter_id, project_id=src.project_id,
            content=src.content, order=src.order + 1,
        )
        shifted = self._splice(idx + 1, clone)
        self.tasks.spawn(self._persist_duplicate(key, shifted, src.chapter_id), "duplicate")
        return key

    def delete_block(self, client_key: str) -> None:
        idx = self._index_of(client_key)
        if idx == -1:
            return
        self.history.push(self._blocks)
        block = self._blocks.pop(idx)
        if block.id is not None:
            self.tasks.spawn(self._persist_delete(block.id), "delete")

    def merge_blocks(self, upper_key: str, lower_key: str) -> None:
        """Append the lower block to the upper one, joined by a newline."""
        upper = self._live(upper_key)
        lower_idx = self._index_of(lower_key)
        if upper is None or lower_idx == -1 or upper_key == lower_key:
            return
        self.history.push(self._blocks)
        lower = self._blocks.pop(lower_idx)
        upper.content = upper.content + "\n" + lower.content
        if upper.id is not None:
            self.tasks.spawn(self._persist_content(upper_key), "merge")
        if lower.id is not None:
            self.tasks.spawn(self._persist_delete(lower.id), "merge")

    def split_block(self, client_key: str, before: str, after: str) -> Optional[str]:
        """Split a block in two as one undo step; returns the new lower block's key."""
        idx = self._index_of(client_key)
        if idx == -1:
            return None
        self.history.push(self._blocks)
        block = self._blocks[idx]
        block.content = before
        if block.id is not None:
            self.tasks.spawn(self._persist_content(client_key), "split")
        key = new_client_key()
        lower = TextBlock(
            id=None, client_key=key,
            chapter_id=block.chapter_id, project_id=block.project_id,
            content=after, order=block.order + 1,
        )
        shifted = self._splice(idx + 1, lower)
        self.tasks.spawn(self._persist_insert(key, shifted), "split")
        return key

    # ---- Background persistence ----

    async def _persist_insert(self, client_key: str, shifted_ids: list[int]) -> None:
        block = self._live(client_key)
        if block is None:
            logger.debug("Block %s was removed before it was stored", client_key)
            return
        submitted = block.content
        with self.db.transaction() as tx:
            for block_id in shifted_ids:
                moved = next((b for b in self._blocks if b.id == block_id), None)
                if moved is not None:
                    tx.text_blocks.update(block_id, order=moved.order)
            new_id = tx.text_blocks.add(block)

        latest = self._live(client_key)
        if latest is None:
            return
        latest.id = new_id
        # The caller may have typed into the block while the insert was pending
        if latest.content != submitted:
            self.db.text_blocks.update(new_id, content=latest.content)

    async def _persist_duplicate(self, client_key: str, shifted_ids: list[int], chapter_id: int) -> None:
        await self._persist_insert(client_key, shifted_ids)
        # Rapid repeated duplicates leave stale orders in memory; re-read them
        await self._resync_orders(chapter_id)

    async def _resync_orders(self, chapter_id: int) -> None:
        """Adopt stored ``order`` values for the blocks still in memory.

        Content stays as it is in memory, and rows that are no longer in
        memory are ignored: later edits and deletes may still be queued.
        """
        try:
            rows = self.db.text_blocks.where(chapter_id=chapter_id)
        except StorageError as e:
            logger.error("Order resync of chapter %d failed: %s", chapter_id, e)
            return
        if self.selected_chapter_id != chapter_id:
            return
        stored = {row.id: row.order for row in rows}
        for block in self._blocks:
            if block.id in stored:
                block.order = stored[block.id]
        self._blocks.sort(key=lambda b: b.order)

    async def _persist_content(self, client_key: str) -> None:
        block = self._live(client_key)
        if block is not None and block.id is not None:
            self.db.text_blocks.update(block.id, content=block.content)

    async def _persist_delete(self, block_id: int) -> None:
        self.db.text_blocks.delete(block_id)

    # ---- Reordering and bulk transforms ----

    async def reorder_blocks(self, client_keys: list[str]) -> None:
        """Put the listed blocks first in the given order; the rest follow."""
        chapter_id = self.selected_chapter_id
        if chapter_id is None:
            return
        position = {k: i for i, k in enumerate(client_keys)}
        listed = sorted(
            (b for b in self._blocks if b.client_key in position),
            key=lambda b: position[b.client_key],
        )
        rest = [b for b in self._blocks if b.client_key not in position]
        reordered = listed + rest
        if [b.client_key for b in reordered] == [b.client_key for b in self._blocks]:
            return

        self.history.push(self._blocks)
        for order, block in enumerate(reordered):
            block.order = order
        self._blocks = reordered

        await self.tasks.drain()
        try:
            with self.db.transaction() as tx:
                for block in self._blocks:
                    if block.id is not None:
                        tx.text_blocks.update(block.id, order=block.order)
        except StorageError as e:
            logger.error("reorder_blocks failed: %s", e)
        await self._reload(chapter_id)

    async def _rewrite_chapter(self, label: str, planner: Callable[[list[TextBlock]], list]) -> None:
        """Apply a whole-chapter plan in one transaction, then reload."""
        chapter_id = self.selected_chapter_id
        if chapter_id is None:
            return
        self.history.push(self._blocks)
        await self.tasks.drain()
        if self.selected_chapter_id != chapter_id:
            return
        try:
            with self.db.transaction() as tx:
                rows = tx.text_blocks.where(chapter_id=chapter_id)
                plan = planner(rows)
                keep = {b.id for b in plan if b is not None}
                tx.text_blocks.bulk_delete(r.id for r in rows if r.id not in keep)
                for order, block in enumerate(plan):
                    if block is None:
                        tx.text_blocks.add(TextBlock(
                            chapter_id=chapter_id, project_id=self.project_id,
                            content="", order=order,
                        ))
                    elif block.order != order:
                        tx.text_blocks.update(block.id, order=order)
            logger.info("%s: chapter %d now has %d blocks", label, chapter_id, len(plan))
        except StorageError as e:
            logger.error("%s failed: %s", label, e)
        await self._reload(chapter_id)

    def _kind_of(self, block: TextBlock) -> BlockKind:
        return self.classify(block.content)

    async def insert_blank_lines_between_all_blocks(self) -> None:
        await self._rewrite_chapter(
            "insert_blank_lines",
            lambda rows: plan_blank_lines_between(rows, self._kind_of),
        )

    async def delete_all_empty_blocks(self) -> None:
        await self._rewrite_chapter(
            "delete_empty",
            lambda rows: plan_drop_kind(rows, self._kind_of, {BlockKind.EMPTY}),
        )

    async def delete_all_dialogue_blocks(self) -> None:
        await self._rewrite_chapter(
            "delete_dialogue",
            lambda rows: plan_drop_kind(rows, self._kind_of, {BlockKind.DIALOGUE}),
        )

    async def delete_all_narrative_blocks(self) -> None:
        # Anything that is not dialogue counts as narrative here, blanks included
        await self._rewrite_chapter(
            "delete_narrative",
            lambda rows: plan_drop_kind(rows, self._kind_of, {BlockKind.NARRATIVE, BlockKind.EMPTY}),
        )

    async def format_dialogue_spacing(self, mode: SpacingMode) -> None:
        mode = SpacingMode(mode)
        await self._rewrite_chapter(
            f"dialogue_spacing_{mode.value}",
            lambda rows: plan_dialogue_spacing(rows, self._kind_of, mode),
        )

    # ---- Content-wide edits ----

    async def _rewrite_contents(self, label: str, transform: Callable[[str], str]) -> int:
        """Apply ``transform`` to every block as a single undo step."""
        if self.selected_chapter_id is None:
            return 0
        changed = [(b, transform(b.content)) for b in self._blocks]
        changed = [(b, new) for b, new in changed if new != b.content]
        if not changed:
            return 0
        self.history.push(self._blocks)
        for block, new in changed:
            block.content = new

        await self.tasks.drain()
        try:
            with self.db.transaction() as tx:
                for block, _ in changed:
                    live = self._live(block.client_key)
                    if live is not None and live.id is not None:
                        tx.text_blocks.update(live.id, content=live.content)
        except StorageError as e:
            logger.error("%s failed: %s", label, e)
        logger.info("%s: changed %d blocks", label, len(changed))
        return len(changed)

    async def replace_all(self, search: str, replacement: str) -> int:
        """Replace ``search`` in every block; returns how many blocks changed."""
        return await self._rewrite_contents(
            "replace_all", lambda text: replace_all_words(text, search, replacement)
        )

    async def apply_indentation(self, mode: IndentMode = IndentMode.AUTO) -> int:
        mode = IndentMode(mode)
        indent = self.settings.indent_char

        def transform(text: str) -> str:
            if mode is IndentMode.REMOVE:
                return remove_indentation(text, indent)
            return apply_indentation(text, mode, indent)

        return await self._rewrite_contents(f"indent_{mode.value}", transform)

    # ---- Undo / redo ----

    async def undo(self) -> None:
        if self.selected_chapter_id is None:
            return
        snapshot = self.history.pop_undo(self._blocks)
        if snapshot is None:
            return
        await self._restore(snapshot)

    async def redo(self) -> None:
        if self.selected_chapter_id is None:
            return
        snapshot = self.history.pop_redo(self._blocks)
        if snapshot is None:
            return
        await self._restore(snapshot)

    async def _restore(self, snapshot: Snapshot) -> None:
        """Replace the chapter's stored blocks wholesale with ``snapshot``."""
        chapter_id = self.selected_chapter_id
        await self.tasks.drain()
        if self.selected_chapter_id != chapter_id:
            return
        hints: dict[int, str] = {}
        try:
            with self.db.transaction() as tx:
                tx.text_blocks.delete_where(chapter_id=chapter_id)
                for order, snap in enumerate(snapshot):
                    new_id = tx.text_blocks.add(TextBlock(
                        chapter_id=chapter_id, project_id=snap.project_id,
                        content=snap.content, order=order,
                    ))
                    hints[new_id] = snap.client_key
        except StorageError as e:
            logger.error("Restoring snapshot for chapter %d failed: %s", chapter_id, e)
            hints = {}
        # Nothing legitimate is pending after the drain; leftovers are failed inserts
        await self._reload(chapter_id, key_hints=hints, keep_pending=False)
