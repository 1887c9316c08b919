"""Manuscript text utilities: dialogue detection, indentation, replacement, export."""

import re

from models.enums import BlockKind, IndentMode

DEFAULT_DIALOGUE_OPEN = "「"
DEFAULT_DIALOGUE_CLOSE = "」"
FULL_WIDTH_SPACE = "　"

# Opening brackets that mark a line as spoken or quoted for auto-indent
_DIALOGUE_LINE_STARTS = ("「", "『", "（")

# One or more consecutive emphasis-dot marks: |文《・》|字《・》
_EMPHASIS_RUN = re.compile(r"(?:\|[^|《]+《・》)+")


def is_dialogue(
    content: str,
    open_marker: str = DEFAULT_DIALOGUE_OPEN,
    close_marker: str = DEFAULT_DIALOGUE_CLOSE,
) -> bool:
    """True if the trimmed text opens and closes with the dialogue markers."""
    text = content.strip()
    return text.startswith(open_marker) and text.endswith(close_marker)


def is_blank(content: str) -> bool:
    return content.strip() == ""


def classify_block(
    content: str,
    open_marker: str = DEFAULT_DIALOGUE_OPEN,
    close_marker: str = DEFAULT_DIALOGUE_CLOSE,
) -> BlockKind:
    """Classify block content as dialogue, empty, or narrative."""
    if is_blank(content):
        return BlockKind.EMPTY
    if is_dialogue(content, open_marker, close_marker):
        return BlockKind.DIALOGUE
    return BlockKind.NARRATIVE


def replace_all_words(text: str, search: str, replacement: str) -> str:
    """Replace every literal occurrence of ``search``. Empty search is a no-op."""
    if not search:
        return text
    return text.replace(search, replacement)


def apply_indentation(
    text: str,
    mode: IndentMode = IndentMode.AUTO,
    indent_char: str = FULL_WIDTH_SPACE,
) -> str:
    """Indent each non-empty line with one full-width space.

    AUTO skips lines that open with a dialogue bracket; ALL indents every
    non-empty line. Lines that are already indented are left alone.
    """
    lines = text.split("\n")
    result = []
    for line in lines:
        if line.strip() == "" or line.startswith(indent_char):
            result.append(line)
            continue
        if mode is IndentMode.AUTO and line.strip().startswith(_DIALOGUE_LINE_STARTS):
            result.append(line)
            continue
        result.append(indent_char + line)
    return "\n".join(result)


def remove_indentation(text: str, indent_char: str = FULL_WIDTH_SPACE) -> str:
    """Strip one leading indent character from every line."""
    return "\n".join(
        line[len(indent_char):] if line.startswith(indent_char) else line
        for line in text.split("\n")
    )


def convert_emphasis_for_export(text: str) -> str:
    """Collapse runs of per-character emphasis marks into 《《...》》.

    ``|強《・》|調《・》`` becomes ``《《強調》》``.
    """
    if not text:
        return text

    def _collapse(match: re.Match) -> str:
        cleaned = match.group(0).replace("|", "").replace("《・》", "")
        return f"《《{cleaned}》》"

    return _EMPHASIS_RUN.sub(_collapse, text)


def join_blocks(contents: list[str], for_export: bool = False) -> str:
    """Join block contents into one manuscript string, one block per line."""
    text = "\n".join(contents)
    if for_export:
        text = convert_emphasis_for_export(text)
    return text
