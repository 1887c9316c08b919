"""CLI entry point: inkwell manuscript outline and block tools.

Usage:
  inkwell tree -p 1                 show a project's outline
  inkwell add -p 1 -t episode ...   add a node
  inkwell show -c 7                 list an episode's blocks
  inkwell tidy -c 7 --action ...    run a bulk block transform
  inkwell --help                    list all commands
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

# Ensure UTF-8 output on Windows to avoid encoding errors with Rich
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")

import click
from rich.panel import Panel

from cli.theme import (
    get_console,
    app_header,
    command_panel,
    success_panel,
    outline_tree,
    block_table,
)
from config.settings import Settings
from config.logging_config import setup_logging
from models.database import Database
from models.enums import IndentMode, InsertionSide, NodeType, SpacingMode
from stores.block_store import BlockStore
from stores.outline_store import OutlineStore

console = get_console()


def _init_logging(verbose: bool):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    settings = Settings()
    setup_logging(level=level, log_dir=settings.log_dir)


def _open() -> tuple[Settings, Database]:
    settings = Settings()
    return settings, Database(settings.sqlite_db_path)


async def _load_outline(project_id: int) -> OutlineStore:
    settings, db = _open()
    store = OutlineStore(db, settings)
    await store.load_tree(project_id)
    return store


async def _open_chapter(chapter_id: int) -> BlockStore:
    settings, db = _open()
    store = BlockStore(db, settings)
    await store.select_chapter(chapter_id)
    if store.selected_chapter_id is None:
        console.print(f"[error]No chapter with ID {chapter_id}[/]")
        sys.exit(1)
    return store


def _require_node(store: OutlineStore, node_id: int):
    node = store.get(node_id)
    if node is None:
        console.print(f"[error]No node {node_id} in project {store.project_id}[/]")
        sys.exit(1)
    return node


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """inkwell: outline and manuscript block editing.

    \b
    Outline commands take a project (-p), block commands a chapter (-c):
      inkwell tree -p 1
      inkwell add -p 1 -t volume "Book One"
      inkwell tidy -c 7 --action dialogue-add
    """
    _init_logging(verbose)


# ---------------------------------------------------------------------------
# outline commands
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--project", "-p", required=True, type=int, help="Project ID")
def tree(project):
    """Show the project's outline."""

    async def _run():
        store = await _load_outline(project)
        console.print(app_header())
        if not store.nodes:
            console.print("[warning]No outline yet. Use [info]inkwell add[/] to create one.[/]")
            return
        console.print(outline_tree(store.walk(), project))

    asyncio.run(_run())


@cli.command()
@click.option("--project", "-p", required=True, type=int, help="Project ID")
@click.option("--type", "-t", "node_type", default="chapter",
              type=click.Choice([t.value for t in NodeType]), help="Node type")
@click.option("--parent", default=None, type=int, help="Parent node ID (omit for a root node)")
@click.argument("title")
def add(project, node_type, parent, title):
    """Add a volume, chapter or episode.

    Examples:
      inkwell add -p 1 -t volume "Book One"
      inkwell add -p 1 -t episode --parent 3 "The Letter"
    """

    async def _run():
        store = await _load_outline(project)
        node = await store.add_node(parent, title, NodeType(node_type))
        if node is None:
            console.print(f"[error]Cannot add a {node_type} under {parent}[/]")
            sys.exit(1)
        console.print(success_panel("Added", f"  {node.type.value} #{node.id} [bold]{title}[/] (order {node.order})"))

    asyncio.run(_run())


@cli.command()
@click.option("--project", "-p", required=True, type=int, help="Project ID")
@click.argument("node_id", type=int)
@click.argument("title")
def rename(project, node_id, title):
    """Rename a node."""

    async def _run():
        store = await _load_outline(project)
        _require_node(store, node_id)
        await store.rename_node(node_id, title)
        console.print(f"[success]Renamed #{node_id} to '{title}'[/]")

    asyncio.run(_run())


@cli.command()
@click.option("--project", "-p", required=True, type=int, help="Project ID")
@click.option("--parent", default=None, type=int, help="New parent node ID (omit for root level)")
@click.option("--ref", "reference", default=None, type=int, help="Sibling to drop next to")
@click.option("--side", default=None, type=click.Choice([s.value for s in InsertionSide]),
              help="Place before or after --ref (default: by drag direction)")
@click.argument("node_id", type=int)
def move(project, parent, reference, side, node_id):
    """Move a node under a new parent and/or next to a sibling."""

    async def _run():
        store = await _load_outline(project)
        _require_node(store, node_id)
        await store.move_node(node_id, parent, reference, InsertionSide(side) if side else None)
        moved = store.get(node_id)
        if moved.parent_id != parent:
            console.print(f"[warning]Move of #{node_id} was refused[/]")
            sys.exit(1)
        console.print(outline_tree(store.walk(), project))

    asyncio.run(_run())


@cli.command()
@click.option("--project", "-p", required=True, type=int, help="Project ID")
@click.argument("node_id", type=int)
def duplicate(project, node_id):
    """Deep-copy a node, its descendants and their blocks."""

    async def _run():
        store = await _load_outline(project)
        source = _require_node(store, node_id)
        clone = await store.duplicate_node(node_id)
        if clone is None:
            console.print(f"[error]Duplicating #{node_id} failed, see the log[/]")
            sys.exit(1)
        console.print(success_panel(
            "Duplicated",
            f"  #{source.id} [bold]{source.title}[/] -> #{clone.id} [bold]{clone.title}[/]",
        ))

    asyncio.run(_run())


@cli.command()
@click.option("--project", "-p", required=True, type=int, help="Project ID")
@click.option("--force", "-f", is_flag=True, help="Skip the confirmation prompt")
@click.argument("node_id", type=int)
def delete(project, force, node_id):
    """Delete a node with all its descendants and blocks."""

    async def _run():
        store = await _load_outline(project)
        node = _require_node(store, node_id)
        descendants = len(store.subtree_ids(node_id)) - 1

        console.print(Panel(
            f"  [stat.label]Node:[/] [bold]{node.title}[/] [muted](#{node.id} {node.type.value})[/]\n"
            f"  [error]Also deletes {descendants} descendant node(s) and their blocks[/]",
            title="[error]Delete[/]",
            border_style="red",
            padding=(0, 2),
        ))
        if not force and not click.confirm("Delete? This cannot be undone", default=False):
            console.print("[warning]Cancelled[/]")
            return

        removed = await store.delete_node(node_id)
        if not removed:
            console.print("[error]Delete failed, see the log[/]")
            sys.exit(1)
        console.print(f"\n[success]Deleted {len(removed)} node(s)[/]")

    asyncio.run(_run())


# ---------------------------------------------------------------------------
# block commands
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--chapter", "-c", required=True, type=int, help="Chapter ID")
def show(chapter):
    """List a chapter's blocks."""

    async def _run():
        store = await _open_chapter(chapter)
        blocks = list(store.blocks)
        kinds = [store.classify(b.content) for b in blocks]
        console.print(app_header(f"chapter {chapter}"))
        console.print(block_table(blocks, kinds))

    asyncio.run(_run())


@cli.command(name="import")
@click.option("--chapter", "-c", required=True, type=int, help="Chapter ID")
@click.argument("source", type=click.File("r", encoding="utf-8"))
def import_text(chapter, source):
    """Append each line of SOURCE (or - for stdin) as a block."""

    async def _run():
        store = await _open_chapter(chapter)
        lines = source.read().splitlines()
        for line in lines:
            store.insert_block(line)
        await store.drain()
        console.print(f"[success]Appended {len(lines)} block(s) to chapter {chapter}[/]")

    asyncio.run(_run())


@cli.command()
@click.option("--chapter", "-c", required=True, type=int, help="Chapter ID")
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False, path_type=Path),
              help="Write to a file instead of stdout")
def export(chapter, output):
    """Export a chapter as plain text with emphasis marks collapsed."""

    async def _run():
        store = await _open_chapter(chapter)
        text = store.manuscript_text(for_export=True)
        if output is None:
            click.echo(text)
            return
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        console.print(f"[success]Exported {len(store.blocks)} block(s) to {output}[/]")

    asyncio.run(_run())


_TIDY_ACTIONS = {
    "blank-lines": lambda s: s.insert_blank_lines_between_all_blocks(),
    "delete-empty": lambda s: s.delete_all_empty_blocks(),
    "delete-dialogue": lambda s: s.delete_all_dialogue_blocks(),
    "delete-narrative": lambda s: s.delete_all_narrative_blocks(),
    "dialogue-add": lambda s: s.format_dialogue_spacing(SpacingMode.ADD),
    "dialogue-remove": lambda s: s.format_dialogue_spacing(SpacingMode.REMOVE),
}


@cli.command()
@click.option("--chapter", "-c", required=True, type=int, help="Chapter ID")
@click.option("--action", "-a", required=True, type=click.Choice(list(_TIDY_ACTIONS)),
              help="Bulk transform to apply")
def tidy(chapter, action):
    """Apply a bulk block transform to a chapter.

    Examples:
      inkwell tidy -c 7 -a dialogue-add
      inkwell tidy -c 7 -a delete-empty
    """

    async def _run():
        store = await _open_chapter(chapter)
        before = len(store.blocks)
        await _TIDY_ACTIONS[action](store)
        console.print(command_panel(f"tidy {action}", {
            "Chapter": str(chapter),
            "Blocks": f"{before} -> {len(store.blocks)}",
        }))

    asyncio.run(_run())


@cli.command()
@click.option("--chapter", "-c", required=True, type=int, help="Chapter ID")
@click.argument("search")
@click.argument("replacement")
def replace(chapter, search, replacement):
    """Replace SEARCH with REPLACEMENT in every block of a chapter."""

    async def _run():
        store = await _open_chapter(chapter)
        changed = await store.replace_all(search, replacement)
        console.print(f"[success]Changed {changed} block(s)[/]")

    asyncio.run(_run())


@cli.command()
@click.option("--chapter", "-c", required=True, type=int, help="Chapter ID")
@click.option("--mode", "-m", default="auto", type=click.Choice([m.value for m in IndentMode]),
              help="auto skips dialogue lines, all indents everything, remove strips indents")
def indent(chapter, mode):
    """Add or remove full-width paragraph indentation."""

    async def _run():
        store = await _open_chapter(chapter)
        changed = await store.apply_indentation(IndentMode(mode))
        console.print(f"[success]Changed {changed} block(s)[/]")

    asyncio.run(_run())


@cli.command()
@click.argument("target", type=click.Path(dir_okay=False, path_type=Path))
def backup(target):
    """Copy the database file to TARGET."""
    _, db = _open()
    path = db.backup_database(target)
    console.print(f"[success]Backed up to {path}[/]")


if __name__ == "__main__":
    cli()
