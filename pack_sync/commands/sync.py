"""Run a sync cycle."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pack_sync.core.config import SyncSettings
from pack_sync.core.engine import SyncEngine, SyncResult
from pack_sync.core.issues import IssueLevel
from pack_sync.core.types import PlatformInfo


def _result_json(result: SyncResult) -> dict[str, object]:
    return {
        "version": result.version,
        "updated": result.updated,
        "failed": result.failed,
        "load": [str(path) for path in result.paths],
        "issues": [
            {
                "level": issue.level.value,
                "message": issue.message,
                "path": str(issue.path) if issue.path is not None else None,
                "cause": str(issue.cause) if issue.cause is not None else None,
            }
            for issue in result.issues
        ],
    }


def _print_result(console: Console, result: SyncResult, verbose: bool) -> None:
    for issue in result.issues:
        style = "red" if issue.level == IssueLevel.ERROR else "yellow"
        console.print(f"[{style}]{issue.level.value.upper()}[/{style}] {escape(issue.display())}", highlight=False)

    if result.load_plan is None:
        return

    if result.updated:
        console.print(f"[green]✓[/green] Pack updated to {escape(result.version)}")
    elif result.failed:
        console.print(f"[red]✗[/red] Sync failed, loading cached mods ({escape(result.version or 'no version')})")
    else:
        console.print(f"[green]✓[/green] Pack is up to date ({escape(result.version or 'no version')})")

    table = Table(title=f"Load List ({len(result.paths)} files)")
    table.add_column("#", style="dim")
    table.add_column("File", style="cyan")
    if verbose:
        table.add_column("Path", style="green")

    for index, path in enumerate(result.paths, 1):
        row = [str(index), escape(path.name)]
        if verbose:
            row.append(escape(str(path)))
        table.add_row(*row)

    console.print(table)


@click.command()
@click.option("--mc-version", default="", help="Game version reported to the server")
@click.option("--loader-version", default="", help="Mod loader version")
@click.option("--loader-api-version", default="", help="Mod loader API version")
@click.option("--server/--client", default=False, help="Dedicated server or client install")
@click.option("--dev", is_flag=True, help="Development environment")
@click.pass_context
def sync(
    ctx: click.Context,
    mc_version: str,
    loader_version: str,
    loader_api_version: str,
    server: bool,
    dev: bool,
) -> None:
    """Run one sync cycle and print the load list."""
    settings: SyncSettings = ctx.obj["settings"]
    install_dir: Path = ctx.obj["install_dir"]
    console: Console = ctx.obj["console"]

    platform = PlatformInfo(
        mc_version=mc_version,
        loader_version=loader_version,
        loader_api_version=loader_api_version,
        server=server,
        dev=dev,
    )

    engine = SyncEngine(install_dir, settings)
    try:
        result = engine.run(platform)
        engine.notify_exit(result.context)
    finally:
        engine.close()

    if ctx.obj["output"] == "json":
        print(json.dumps(_result_json(result), indent=2))
    else:
        _print_result(console, result, ctx.obj["verbose"])

    if result.has_errors:
        sys.exit(1)
