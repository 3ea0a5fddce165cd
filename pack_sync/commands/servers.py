"""Server list commands."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pack_sync.core.merge import load_remote_server_list
from pack_sync.formats.nbt import NbtParser, to_snbt


@click.group(name="servers")
@click.pass_context
def servers_group(ctx: click.Context) -> None:
    """Inspect server list documents."""
    pass


@servers_group.command(name="show")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--compressed", is_flag=True, help="Document is gzip-compressed")
@click.option("--raw", is_flag=True, help="Print the whole document in text form")
@click.pass_context
def show_servers(ctx: click.Context, file: Path, compressed: bool, raw: bool) -> None:
    """Show the servers stored in a tagged-value document."""
    console: Console = ctx.obj["console"]

    try:
        data = file.read_bytes()
        root = NbtParser(compressed=compressed).parse(data)
        entries = load_remote_server_list(data, compressed=compressed)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Failed to read {file}: {e}") from e

    if raw:
        console.print(to_snbt(root), markup=False, highlight=False, soft_wrap=True)
        return

    if ctx.obj["output"] == "json":
        print(json.dumps([entry.model_dump() for entry in entries], indent=2))
        return

    if not entries:
        console.print(f"No servers in {escape(str(file))}")
        return

    table = Table(title=f"Servers ({len(entries)})")
    table.add_column("Name", style="cyan")
    table.add_column("Address", style="green")
    table.add_column("Icon")
    table.add_column("Hidden")

    for entry in entries:
        table.add_row(
            escape(entry.name),
            escape(entry.ip) or "-",
            f"{len(entry.icon):,} chars" if entry.icon else "-",
            "yes" if entry.hidden else "no",
        )

    console.print(table)
