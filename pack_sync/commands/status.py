"""Show the sync status of an install."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pack_sync.core.config import ConfigError, InstallLayout, LocalConfig, PackConfig, SyncSettings
from pack_sync.core.state import load_state


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show pack version, mod count and repository roots."""
    settings: SyncSettings = ctx.obj["settings"]
    install_dir: Path = ctx.obj["install_dir"]
    console: Console = ctx.obj["console"]
    layout = InstallLayout(install_dir)

    try:
        pack: PackConfig | None = PackConfig.load(layout.pack_config_file)
    except ConfigError:
        pack = None

    local = LocalConfig.load(layout.local_config_file) if layout.local_config_file.exists() else LocalConfig()
    state = load_state(layout)
    disabled = sorted(group for group, flag in local.disabled_artifacts.items() if flag)

    info = {
        "install_dir": str(install_dir),
        "api": pack.api if pack else None,
        "pack_code": pack.pack_code if pack else None,
        "version": state.version,
        "mods": len(state.mods),
        "pause_updates": local.pause_updates,
        "disabled_artifacts": disabled,
        "primary_repository": str(settings.primary_repository()),
        "secondary_repository": str(layout.secondary_repository),
    }

    if ctx.obj["output"] == "json":
        print(json.dumps(info, indent=2))
        return

    if pack is None:
        console.print(f"[yellow]Not configured:[/yellow] {escape(str(layout.pack_config_file))} is missing or invalid")

    table = Table(title="Pack Sync Status")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Install Directory", escape(info["install_dir"]))  # type: ignore[arg-type]
    if pack is not None:
        table.add_row("API", escape(pack.api))
        table.add_row("Pack Code", escape(pack.pack_code))
    table.add_row("Version", escape(state.version) or "-")
    table.add_row("Mods", f"{len(state.mods):,}")
    table.add_row("Updates Paused", "yes" if local.pause_updates else "no")
    table.add_row("Disabled Artifacts", escape(", ".join(disabled)) or "-")
    table.add_row("Primary Repository", escape(info["primary_repository"]))  # type: ignore[arg-type]
    table.add_row("Secondary Repository", escape(info["secondary_repository"]))  # type: ignore[arg-type]

    console.print(table)
