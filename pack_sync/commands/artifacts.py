"""Artifact registry commands."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pack_sync.core.config import InstallLayout, LocalConfig
from pack_sync.core.state import load_state


@click.group(name="artifacts")
@click.pass_context
def artifacts_group(ctx: click.Context) -> None:
    """Enable or disable artifacts by group."""
    pass


@artifacts_group.command(name="list")
@click.pass_context
def list_artifacts(ctx: click.Context) -> None:
    """List known artifact groups and their state."""
    install_dir: Path = ctx.obj["install_dir"]
    console: Console = ctx.obj["console"]
    layout = InstallLayout(install_dir)

    local = LocalConfig.load(layout.local_config_file)
    state = load_state(layout)

    files: dict[str, list[str]] = {}
    for info in state.mods:
        if info.artifact.group:
            files.setdefault(info.artifact.group, []).append(info.filename)

    groups = sorted(set(local.disabled_artifacts) | set(files), key=str.casefold)

    if ctx.obj["output"] == "json":
        print(json.dumps(
            [
                {
                    "group": group,
                    "disabled": local.disabled_artifacts.get(group, False),
                    "files": files.get(group, []),
                }
                for group in groups
            ],
            indent=2,
        ))
        return

    if not groups:
        console.print("No artifacts known yet")
        return

    table = Table(title=f"Artifacts ({len(groups)})")
    table.add_column("Group", style="cyan")
    table.add_column("State")
    table.add_column("Files", style="green")

    for group in groups:
        disabled = local.disabled_artifacts.get(group, False)
        table.add_row(
            escape(group),
            "[red]disabled[/red]" if disabled else "[green]enabled[/green]",
            escape(", ".join(files.get(group, []))) or "-",
        )

    console.print(table)


def _set_disabled(ctx: click.Context, group: str, disabled: bool) -> None:
    install_dir: Path = ctx.obj["install_dir"]
    console: Console = ctx.obj["console"]
    layout = InstallLayout(install_dir)

    local = LocalConfig.load(layout.local_config_file)
    local.disabled_artifacts[group] = disabled
    local.save(layout.local_config_file)

    state = "disabled" if disabled else "enabled"
    console.print(f"[green]✓[/green] {escape(group)} {state}")


@artifacts_group.command(name="enable")
@click.argument("group")
@click.pass_context
def enable_artifact(ctx: click.Context, group: str) -> None:
    """Enable an artifact group."""
    _set_disabled(ctx, group, False)


@artifacts_group.command(name="disable")
@click.argument("group")
@click.pass_context
def disable_artifact(ctx: click.Context, group: str) -> None:
    """Disable an artifact group; its files are no longer loaded."""
    _set_disabled(ctx, group, True)
