"""Tools package: manuscript text utilities and block transform planners."""

from tools.text_utils import (
    is_dialogue,
    is_blank,
    classify_block,
    replace_all_words,
    apply_indentation,
    remove_indentation,
    convert_emphasis_for_export,
    join_blocks,
)
from tools.block_transforms import (
    plan_blank_lines_between,
    plan_drop_kind,
    plan_dialogue_spacing,
)

__all__ = [
    "is_dialogue",
    "is_blank",
    "classify_block",
    "replace_all_words",
    "apply_indentation",
    "remove_indentation",
    "convert_emphasis_for_export",
    "join_blocks",
    "plan_blank_lines_between",
    "plan_drop_kind",
    "plan_dialogue_spacing",
]
