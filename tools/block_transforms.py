"""Pure planners for whole-chapter block transforms.

Each planner takes the chapter's blocks in manuscript order and returns the
new sequence. Existing blocks are passed through by identity; ``None`` marks
a new empty block to be created at that position. Blocks missing from the
result are to be deleted. The caller renumbers ``order`` from 0.
"""

from typing import Callable, Optional, Sequence, TypeVar

from models.enums import BlockKind, SpacingMode

T = TypeVar("T")

Plan = list[Optional[T]]
Classifier = Callable[[T], BlockKind]


def _is_boundary(a: BlockKind, b: BlockKind) -> bool:
    return {a, b} == {BlockKind.DIALOGUE, BlockKind.NARRATIVE}


def plan_blank_lines_between(blocks: Sequence[T], classify: Classifier) -> Plan:
    """Put an empty block between every adjacent pair of non-empty blocks."""
    plan: Plan = []
    for i, block in enumerate(blocks):
        plan.append(block)
        if i + 1 < len(blocks):
            if classify(block) is not BlockKind.EMPTY and classify(blocks[i + 1]) is not BlockKind.EMPTY:
                plan.append(None)
    return plan


def plan_drop_kind(blocks: Sequence[T], classify: Classifier, kinds: set[BlockKind]) -> Plan:
    """Keep only the blocks whose kind is not in ``kinds``."""
    return [b for b in blocks if classify(b) not in kinds]


def plan_dialogue_spacing(blocks: Sequence[T], classify: Classifier, mode: SpacingMode) -> Plan:
    """Add or remove empty blocks at dialogue/narrative boundaries.

    ADD inserts one empty block wherever a dialogue block directly touches a
    narrative block. REMOVE deletes a whole run of empty blocks when the
    nearest non-empty blocks on either side form such a boundary.
    """
    kinds = [classify(b) for b in blocks]

    if mode is SpacingMode.ADD:
        plan: Plan = []
        for i, block in enumerate(blocks):
            plan.append(block)
            if i + 1 < len(blocks) and _is_boundary(kinds[i], kinds[i + 1]):
                plan.append(None)
        return plan

    plan = []
    for i, block in enumerate(blocks):
        if kinds[i] is BlockKind.EMPTY:
            left = i - 1
            while left >= 0 and kinds[left] is BlockKind.EMPTY:
                left -= 1
            right = i + 1
            while right < len(blocks) and kinds[right] is BlockKind.EMPTY:
                right += 1
            if left >= 0 and right < len(blocks) and _is_boundary(kinds[left], kinds[right]):
                continue
        plan.append(block)
    return plan
