"""Main CLI application using Typer."""

import logging
import sys

import typer
from rich.console import Console
from rich.logging import RichHandler

from yufanbot import __version__

app = typer.Typer(
    name="yufanbot",
    help="yufanbot - a bot host that compiles and loads plugin packages",
    no_args_is_help=True,
)

console = Console()


def setup_logging(level: str = "INFO") -> None:
    """Route log records through rich at ``level``."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.command()
def version():
    """Show yufanbot version."""
    console.print(f"yufanbot version {__version__}")


@app.command()
def run(
    config_path: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (default: ~/.yufanbot/yufanbot.yaml)",
    ),
):
    """Load plugins and run the bot until interrupted."""
    from yufanbot.cli.run_cmd import run_command

    run_command(config_path=config_path)


# Plugin commands
plugin_app = typer.Typer(help="Compile and inspect plugin packages")
app.add_typer(plugin_app, name="plugin")


@plugin_app.command("list")
def plugin_list(
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """Compile every package in the plugin directory and list the results."""
    from yufanbot.cli.plugin_cmd import list_plugins

    list_plugins(config_path=config_path)


@plugin_app.command("compile")
def plugin_compile(
    path: str = typer.Argument(..., help="Path to a .yf plugin package"),
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """Compile a single plugin package and show its metadata."""
    from yufanbot.cli.plugin_cmd import compile_plugin

    if not compile_plugin(path, config_path=config_path):
        raise typer.Exit(code=1)


def main():
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
