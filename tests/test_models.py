"""Tests for dataclass models, client keys, and enums."""

from models.block import (
    BlockSnapshot,
    TextBlock,
    derived_client_key,
    new_client_key,
    take_snapshot,
)
from models.enums import NodeType
from models.outline import ChapterNode


class TestChapterNode:
    def test_defaults(self):
        node = ChapterNode()
        assert node.id is None
        assert node.parent_id is None
        assert node.type is NodeType.CHAPTER
        assert node.order == 0

    def test_type_from_string(self):
        assert NodeType("episode") is NodeType.EPISODE


class TestNodeType:
    def test_only_episodes_are_leaves(self):
        assert NodeType.VOLUME.can_have_children
        assert NodeType.CHAPTER.can_have_children
        assert not NodeType.EPISODE.can_have_children

    def test_rank_orders_volume_chapter_episode(self):
        ranks = [t.rank for t in (NodeType.VOLUME, NodeType.CHAPTER, NodeType.EPISODE)]
        assert ranks == sorted(ranks)


class TestClientKeys:
    def test_new_keys_never_repeat(self):
        keys = {new_client_key() for _ in range(1000)}
        assert len(keys) == 1000

    def test_new_and_derived_keys_do_not_collide(self):
        assert new_client_key() != derived_client_key(1)
        assert derived_client_key(7) == "b7"


class TestSnapshot:
    def test_snapshot_copies_fields(self):
        block = TextBlock(id=3, client_key="b3", chapter_id=2, project_id=1, content="x", order=4)
        snap = BlockSnapshot.of(block)
        assert (snap.id, snap.client_key, snap.content, snap.order) == (3, "b3", "x", 4)
        assert (snap.chapter_id, snap.project_id) == (2, 1)

    def test_take_snapshot_keeps_sequence(self):
        blocks = [TextBlock(client_key=f"k{i}", content=str(i), order=i) for i in range(3)]
        snapshot = take_snapshot(blocks)
        assert isinstance(snapshot, tuple)
        assert [s.content for s in snapshot] == ["0", "1", "2"]
