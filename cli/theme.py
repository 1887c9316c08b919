"""Unified Rich theme and reusable UI helper functions for the CLI."""

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.theme import Theme
from rich.tree import Tree

from models.block import TextBlock
from models.enums import BlockKind
from models.outline import ChapterNode

INKWELL_THEME = Theme({
    "app.title": "bold",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "muted": "dim",
    "accent": "cyan",
    "stat.label": "dim",
    "stat.value": "bold",
    "node.volume": "bold cyan",
    "node.chapter": "blue",
    "node.episode": "default",
    "block.dialogue": "green",
    "block.empty": "dim",
})

_KIND_STYLE = {
    BlockKind.DIALOGUE: "block.dialogue",
    BlockKind.NARRATIVE: "default",
    BlockKind.EMPTY: "block.empty",
}


def get_console() -> Console:
    """Return a Console instance with the inkwell theme applied."""
    return Console(theme=INKWELL_THEME)


def app_header(title: str = "inkwell") -> Rule:
    """Return a Rule element for the application header banner."""
    return Rule(title=f"[bold]{title}[/]", style="dim")


def command_panel(title: str, fields: dict[str, str]) -> Panel:
    """Return a Panel displaying command parameters.

    Args:
        title: Panel title (e.g. "Duplicate node").
        fields: Ordered dict of label -> value pairs.
    """
    lines = []
    for label, value in fields.items():
        lines.append(f"  [stat.label]{label}:[/] [stat.value]{value}[/]")
    body = "\n".join(lines)
    return Panel(body, title=f"[bold]{title}[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))


def success_panel(title: str, body: str) -> Panel:
    """Return a green-bordered Panel for success results."""
    return Panel(body, title=f"[success]{title}[/]", box=box.ROUNDED, border_style="green", padding=(0, 2))


def _node_label(node: ChapterNode) -> str:
    style = f"node.{node.type.value}"
    return f"[{style}]{escape(node.title)}[/] [muted]#{node.id} {node.type.value}[/]"


def outline_tree(walked: list[tuple[ChapterNode, int]], project_id: int) -> Tree:
    """Build a Rich Tree from ``OutlineStore.walk()`` output.

    Args:
        walked: (node, depth) pairs in depth-first display order.
        project_id: Shown in the tree root label.
    """
    tree = Tree(f"[bold]Project {project_id}[/]")
    # Stack of branches by depth; walk() guarantees a parent precedes its children
    branches = [tree]
    for node, depth in walked:
        del branches[depth + 1:]
        branches.append(branches[depth].add(_node_label(node)))
    return tree


def block_table(blocks: list[TextBlock], kinds: list[BlockKind]) -> Table:
    """Build a Rich Table of a chapter's blocks with their classification."""
    table = Table(box=box.ROUNDED, border_style="dim", show_header=True, padding=(0, 1))
    table.add_column("#", style="muted", justify="right")
    table.add_column("Kind", style="muted")
    table.add_column("Content")

    for block, kind in zip(blocks, kinds):
        content = block.content
        if len(content) > 60:
            content = content[:60] + "..."
        table.add_row(str(block.order), kind.value, f"[{_KIND_STYLE[kind]}]{escape(content)}[/]")

    if not blocks:
        table.add_row("", "", "[muted](no blocks)[/]")
    return table
