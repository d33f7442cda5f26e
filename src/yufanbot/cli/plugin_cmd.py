"""CLI commands for plugin packages."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from yufanbot.cli.app import setup_logging
from yufanbot.config.loader import ConfigError, load_config
from yufanbot.config.schema import YufanConfig
from yufanbot.plugins.compiler import PluginCompiler
from yufanbot.plugins.errors import CacheDirectoryUnavailable
from yufanbot.plugins.manifest import LoadedPlugin
from yufanbot.plugins.package import validate_suffix

console = Console()


def _load(config_path: str | None) -> YufanConfig:
    try:
        config = load_config(Path(config_path) if config_path else None)
    except ConfigError as e:
        console.print(f"[red]Failed to load config: {e}[/red]")
        raise typer.Exit(code=1) from e
    setup_logging(config.logging.level)
    return config


async def _compile(config: YufanConfig, paths: list[Path]) -> list[LoadedPlugin]:
    compiler = PluginCompiler(config.plugins)
    try:
        compiler.prepare()
        collection = await compiler.compile_all(paths)
        return sorted(collection, key=lambda p: p.metadata.id)
    finally:
        await compiler.aclose()


def list_plugins(config_path: str | None = None) -> None:
    """Compile every package in the plugin directory and print a table."""
    config = _load(config_path)
    directory = Path(config.plugins.directory).expanduser()
    packages = (
        sorted(p for p in directory.iterdir() if p.is_file() and validate_suffix(p))
        if directory.is_dir()
        else []
    )

    if not packages:
        console.print("[dim]No plugin packages found.[/dim]")
        console.print(f"Drop .yf packages in {directory}.")
        return

    try:
        plugins = asyncio.run(_compile(config, packages))
    except CacheDirectoryUnavailable as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Plugins ({len(plugins)} of {len(packages)} loaded)")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Authors")
    table.add_column("Dependencies", style="green")

    for plugin in plugins:
        m = plugin.metadata
        table.add_row(
            m.id,
            m.name or "-",
            m.version,
            ", ".join(m.authors) or "-",
            ", ".join(m.dependencies) or "-",
        )
        plugin.unload()

    console.print(table)


def compile_plugin(path: str, config_path: str | None = None) -> bool:
    """Compile one package and print its metadata.

    Returns:
        True if the package produced a plugin
    """
    config = _load(config_path)

    try:
        plugins = asyncio.run(_compile(config, [Path(path)]))
    except CacheDirectoryUnavailable as e:
        console.print(f"[red]{e}[/red]")
        return False

    if not plugins:
        console.print(f"[red]Failed to compile {path}; see the log for details.[/red]")
        return False

    plugin = plugins[0]
    m = plugin.metadata
    console.print(f"\n[bold cyan]{m.display_name}[/bold cyan] v{m.version}")
    console.print(f"  ID: {m.id}")
    if m.description:
        console.print(f"  {m.description}")
    if m.authors:
        console.print(f"  Authors: {', '.join(m.authors)}")
    console.print(f"  Entry: {type(plugin.entry).__module__}.{type(plugin.entry).__qualname__}")
    if m.dependencies:
        console.print(f"  Dependencies: {', '.join(m.dependencies)}")
    plugin.unload()
    return True
