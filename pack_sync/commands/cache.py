"""Content repository commands."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pack_sync.core.config import InstallLayout, SyncSettings
from pack_sync.core.fetcher import PhaseRunner
from pack_sync.core.issues import IssueReporter
from pack_sync.core.repository import ContentRepository
from pack_sync.core.utils import format_size


@click.group(name="cache")
@click.pass_context
def cache_group(ctx: click.Context) -> None:
    """Inspect the content repository."""
    pass


@cache_group.command(name="verify")
@click.pass_context
def verify_cache(ctx: click.Context) -> None:
    """Verify size and checksum of every cached file."""
    settings: SyncSettings = ctx.obj["settings"]
    install_dir: Path = ctx.obj["install_dir"]
    console: Console = ctx.obj["console"]
    layout = InstallLayout(install_dir)

    issues = IssueReporter()
    repository = ContentRepository(settings.primary_repository(), layout.secondary_repository, issues)
    repository.open()

    with PhaseRunner(issues, max_workers=settings.max_workers) as runner:
        repository.discover(runner)

    entries = repository.entries()
    bad = [entry for entry in entries if not repository.verify(entry)]
    total_size = sum(entry.info.size for entry in entries)

    if ctx.obj["output"] == "json":
        print(json.dumps(
            {
                "roots": [str(root) for root in repository.roots()],
                "entries": len(entries),
                "total_size": total_size,
                "failed": [str(entry.path) for entry in bad],
                "warnings": [issue.display() for issue in issues.warnings],
            },
            indent=2,
        ))
    else:
        for issue in issues.warnings:
            console.print(f"[yellow]WARNING[/yellow] {escape(issue.display())}", highlight=False)

        table = Table(title="Repository")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Roots", escape(", ".join(str(root) for root in repository.roots())))
        table.add_row("Entries", f"{len(entries):,}")
        table.add_row("Total Size", format_size(total_size))
        table.add_row("Failed", f"{len(bad):,}")
        console.print(table)

        for entry in bad:
            console.print(f"[red]✗[/red] {escape(entry.info.filename)} ({escape(str(entry.path))})")
        if not bad:
            console.print(f"[green]✓[/green] All {len(entries)} cached files verified")

    if bad:
        sys.exit(1)
