"""Main entry point for the pack-sync CLI."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import click
import structlog
from rich.console import Console

from pack_sync import __version__
from pack_sync.commands.artifacts import artifacts_group
from pack_sync.commands.cache import cache_group
from pack_sync.commands.servers import servers_group
from pack_sync.commands.status import status
from pack_sync.commands.sync import sync
from pack_sync.core.config import SyncSettings


def configure_logging(colors: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


configure_logging()

logger = structlog.get_logger()


@click.group()
@click.version_option(version=__version__, prog_name="pack-sync")
@click.option(
    "--install-dir",
    "-i",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Game install directory",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Settings file (JSON)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", "-d", is_flag=True, help="Enable debug output")
@click.option(
    "--output",
    "-o",
    type=click.Choice(["rich", "json", "plain"], case_sensitive=False),
    default="rich",
    help="Output format",
)
@click.pass_context
def main(
    ctx: click.Context,
    install_dir: Path,
    config: Path | None,
    verbose: bool,
    debug: bool,
    output: str,
) -> None:
    """Keep a game install in sync with its remote mod pack."""
    ctx.ensure_object(dict)

    try:
        settings = SyncSettings.load(config)
    except (OSError, ValueError) as e:
        logger.error("settings_load_failed", error=str(e))
        sys.exit(1)

    if debug:
        configure_logging(colors=True)

    # Create console for rich output
    console = Console(
        force_terminal=output == "rich",
        no_color=output != "rich",
        width=None if output == "rich" else 120,
    )

    ctx.obj["settings"] = settings
    ctx.obj["install_dir"] = install_dir
    ctx.obj["console"] = console
    ctx.obj["output"] = output
    ctx.obj["verbose"] = verbose or debug
    ctx.obj["debug"] = debug

    logger.debug("cli_initialized", install_dir=str(install_dir), settings=settings.model_dump())


# Register commands
main.add_command(sync)
main.add_command(status)
main.add_command(artifacts_group)
main.add_command(cache_group)
main.add_command(servers_group)


def handle_exception(exc_type: type[BaseException], exc_value: BaseException, exc_traceback: Any) -> None:
    """Handle uncaught exceptions."""
    if issubclass(exc_type, KeyboardInterrupt):
        logger.info("operation_cancelled")
        sys.exit(1)

    logger.error(
        "uncaught_exception",
        exc_info=(exc_type, exc_value, exc_traceback),
    )
    sys.exit(1)


if __name__ == "__main__":
    sys.excepthook = handle_exception

    try:
        main()
    except Exception as e:
        logger.error("cli_failed", error=str(e))
        sys.exit(1)
