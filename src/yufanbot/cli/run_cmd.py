"""Run the bot host."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

import typer
from rich.console import Console

from yufanbot.app import Application
from yufanbot.cli.app import setup_logging
from yufanbot.config.loader import ConfigError, load_config
from yufanbot.plugins.errors import CacheDirectoryUnavailable

console = Console()
logger = logging.getLogger(__name__)


def run_command(config_path: str | None = None) -> None:
    """Load config, then run the application until SIGINT or SIGTERM.

    Args:
        config_path: Optional path to config file
    """
    path = Path(config_path) if config_path else None
    try:
        config = load_config(path)
    except ConfigError as e:
        console.print(f"[red]Failed to load config: {e}[/red]")
        raise typer.Exit(code=1) from e

    setup_logging(config.logging.level)
    application = Application(config)

    try:
        asyncio.run(_run(application))
    except CacheDirectoryUnavailable as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e


async def _run(application: Application) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, application.stop)
        except NotImplementedError:
            logger.debug("Signal handlers are not supported on this platform")
            break
    await application.run()
