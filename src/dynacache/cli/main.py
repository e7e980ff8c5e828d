"""
CLI for the cache writer.

Commands:
    dynacache create-table NAME - Provision a cache table
    dynacache put NAME KEY VALUE - Write an entry
    dynacache get NAME KEY - Read an entry
    dynacache remove NAME KEY - Delete an entry
    dynacache clear NAME - Delete every entry of a cache
    dynacache sweep - Reap expired rows from the local store
    dynacache config - Show current configuration
    dynacache version - Print version

All data commands operate on the SQLite store at CACHE_DB_PATH.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Annotated, Any, Awaitable, Callable, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from dynacache import __version__
from dynacache.backends.sqlite import SQLiteBackend
from dynacache.config import Settings, clear_settings_cache, get_settings
from dynacache.exceptions import DynaCacheError
from dynacache.logging import setup_logging
from dynacache.types import Found
from dynacache.writer import DefaultCacheWriter

app = typer.Typer(
    name="dynacache",
    help="Key-value cache writer with advisory sentinel locking",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception:
        return None


def _require_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'dynacache config' to see the current values."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL)
    return settings


def _run(
    settings: Settings,
    action: Callable[[DefaultCacheWriter, SQLiteBackend], Awaitable[Any]],
) -> Any:
    """Open the store, run ``action`` with a configured writer, close the store."""

    async def runner() -> Any:
        backend = SQLiteBackend(settings.CACHE_DB_PATH)
        await backend.init()
        try:
            writer = DefaultCacheWriter(
                backend,
                poll_interval=settings.poll_interval,
                max_lock_wait=settings.max_lock_wait,
                clear_concurrency=settings.CACHE_CLEAR_CONCURRENCY,
            )
            return await action(writer, backend)
        finally:
            await backend.close()

    try:
        return asyncio.run(runner())
    except DynaCacheError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _ttl_or_default(ttl: Optional[int], settings: Settings, name: str) -> timedelta:
    if ttl is not None:
        return timedelta(seconds=ttl)
    return settings.cache_properties(name).ttl


@app.command("create-table")
def create_table(
    name: Annotated[str, typer.Argument(help="Cache (table) name")],
    ttl: Annotated[
        Optional[int],
        typer.Option("--ttl", "-t", help="TTL in seconds; enables the TTL sweep when > 0"),
    ] = None,
) -> None:
    """Create the cache table unless it exists."""
    settings = _require_settings()
    props = settings.cache_properties(name)

    created = _run(
        settings,
        lambda writer, _: writer.create_if_not_exists(
            name,
            _ttl_or_default(ttl, settings, name),
            props.read_capacity_units,
            props.write_capacity_units,
        ),
    )
    if created:
        console.print(f"[green]Created[/green] table {name}")
    else:
        console.print(f"[yellow]Table {name} already exists[/yellow]")


@app.command()
def put(
    name: Annotated[str, typer.Argument(help="Cache name")],
    key: Annotated[str, typer.Argument(help="Entry key")],
    value: Annotated[Optional[str], typer.Argument(help="Value (UTF-8 text)")] = None,
    ttl: Annotated[
        Optional[int],
        typer.Option("--ttl", "-t", help="TTL in seconds (default from settings)"),
    ] = None,
    if_absent: Annotated[
        bool,
        typer.Option("--if-absent", help="Only write if the key has no live entry"),
    ] = False,
) -> None:
    """Write an entry. Omitting VALUE stores an explicit null."""
    settings = _require_settings()
    payload = value.encode("utf-8") if value is not None else None
    effective_ttl = _ttl_or_default(ttl, settings, name)

    if if_absent:
        result = _run(
            settings,
            lambda writer, _: writer.put_if_absent(name, key, payload, effective_ttl),
        )
        if isinstance(result, Found):
            console.print(f"[yellow]Key exists, kept:[/yellow] {_render(result.value)}")
            return
    else:
        _run(settings, lambda writer, _: writer.put(name, key, payload, effective_ttl))

    console.print(f"[green]Stored[/green] {name}/{key}")


@app.command()
def get(
    name: Annotated[str, typer.Argument(help="Cache name")],
    key: Annotated[str, typer.Argument(help="Entry key")],
) -> None:
    """Read an entry. Exits with code 2 when the key is absent or expired."""
    settings = _require_settings()
    result = _run(settings, lambda writer, _: writer.get(name, key))

    if not isinstance(result, Found):
        error_console.print(f"[yellow]No entry for[/yellow] {name}/{key}")
        raise typer.Exit(2)
    console.print(_render(result.value))


@app.command()
def remove(
    name: Annotated[str, typer.Argument(help="Cache name")],
    key: Annotated[str, typer.Argument(help="Entry key")],
) -> None:
    """Delete an entry."""
    settings = _require_settings()
    _run(settings, lambda writer, _: writer.remove(name, key))
    console.print(f"[green]Removed[/green] {name}/{key}")


@app.command()
def clear(
    name: Annotated[str, typer.Argument(help="Cache name")],
) -> None:
    """Delete every entry of a cache."""
    settings = _require_settings()
    _run(settings, lambda writer, _: writer.clear(name))
    console.print(f"[green]Cleared[/green] {name}")


@app.command()
def sweep() -> None:
    """Physically delete expired rows from tables with a TTL sweep."""
    settings = _require_settings()
    removed = _run(settings, lambda _, backend: backend.sweep_expired())
    console.print(f"Swept {removed} expired item(s)")


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    console.print("[bold]Cache Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()
    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print()
        error_console.print("Check CACHES (must be a JSON list with unique cache names)")
        error_console.print("and that numeric CACHE_* variables are non-negative integers.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for setting, value in settings.display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(setting, display_value)

    console.print(table)
    console.print()

    if settings.locking_enabled:
        wait = (
            f"{settings.CACHE_MAX_LOCK_WAIT_MS} ms"
            if settings.CACHE_MAX_LOCK_WAIT_MS is not None
            else "unbounded"
        )
        console.print(
            Panel(
                f"[bold]Poll interval:[/bold] {settings.CACHE_POLL_INTERVAL_MS} ms\n"
                f"[bold]Max wait:[/bold] {wait}\n\n"
                "[dim]The lock is advisory: a sentinel key without owner or lease.[/dim]",
                title="[bold cyan]Locking enabled[/bold cyan]",
                border_style="cyan",
            )
        )
    else:
        console.print("[yellow]Locking disabled (CACHE_POLL_INTERVAL_MS=0).[/yellow]")
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"dynacache version {__version__}")


def _render(value: bytes | None) -> str:
    if value is None:
        return "[dim]null[/dim]"
    return escape(value.decode("utf-8", errors="replace"))


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
