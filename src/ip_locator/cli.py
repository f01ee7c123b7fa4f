"""Command-line interface for ip_locator.

Provides the main entry point and subcommands for looking up IP addresses,
listing the available services and managing the local database and cache.
"""

import asyncio
import logging
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from ip_locator.assets import DatabaseAssetManager
from ip_locator.cache import DB_UPDATING_KEY, LocationCache
from ip_locator.config import Settings, get_settings
from ip_locator.errors import IpLocatorError
from ip_locator.jobs import AsyncioJobQueue
from ip_locator.models import LocationRecord, LookupResult, select_options
from ip_locator.resolver import create_resolver, validate_ip

app = typer.Typer(
    name="ip-locator",
    help="Resolve visitor IP addresses to approximate locations.",
    no_args_is_help=True,
)
db_app = typer.Typer(help="Manage the local GeoLite2 database.", no_args_is_help=True)
app.add_typer(db_app, name="db")

console = Console()
err_console = Console(stderr=True)

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)
logger = logging.getLogger("ip_locator")


def _setup_logging(verbose: bool) -> None:
    """Configure logging level based on verbosity flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.getLogger("ip_locator").setLevel(level)


def _load_settings() -> Settings:
    """Load settings, exiting with a readable error if they are invalid."""
    try:
        return get_settings()
    except (IpLocatorError, ValidationError) as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=1)


def _open_cache(settings: Settings) -> LocationCache:
    return LocationCache(db_path=settings.cache.path, ttl_seconds=settings.cache.ttl_seconds)


async def _run_lookup(ip: str, settings: Settings) -> LookupResult:
    """Resolve one IP with a resolver built from the settings."""
    async with create_resolver(settings) as resolver:
        return await resolver.resolve(ip)


def _print_location(record: LocationRecord) -> None:
    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("IP", record.ip)
    table.add_row("Address", record.address or "-")
    table.add_row("Latitude", str(record.latitude))
    table.add_row("Longitude", str(record.longitude))
    for key, value in record.parts.as_dict().items():
        table.add_row(key.capitalize(), value or "-")
    console.print(table)


@app.command()
def lookup(
    ip: Annotated[str, typer.Argument(help="IP address to look up")],
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output",
        ),
    ] = False,
) -> None:
    """Look up the location of an IP address.

    Exit codes:
        0 - Location found
        1 - No location available or error occurred
    """
    _setup_logging(verbose)
    settings = _load_settings()

    try:
        result = asyncio.run(_run_lookup(ip, settings))
    except IpLocatorError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if isinstance(result, LocationRecord):
        _print_location(result)
        raise typer.Exit(code=0)

    if result.is_not_ready:
        console.print(f"[yellow]Not ready:[/yellow] {result.detail}")
    else:
        console.print(f"[yellow]No location for {ip}[/yellow] ({result.reason.value})")
        if verbose and result.detail:
            console.print(f"[dim]{result.detail}[/dim]")
    raise typer.Exit(code=1)


@app.command()
def services() -> None:
    """List the available geolocation services."""
    settings = _load_settings()
    active = settings.geo.service.value

    for value, label in select_options().items():
        marker = "[green]*[/green]" if value == active else " "
        console.print(f"{marker} [bold]{value}[/bold]  {label}")


@db_app.command("status")
def db_status() -> None:
    """Show the local database location, age and refresh state."""
    settings = _load_settings()
    assets = DatabaseAssetManager.from_settings(
        settings.storage, _open_cache(settings), AsyncioJobQueue()
    )
    status = assets.status()

    console.print(f"[bold]Database:[/bold] {status['path']}")
    if not status["exists"]:
        console.print("[yellow]Not downloaded[/yellow]")
    else:
        console.print(f"[bold]Modified:[/bold] {status['modified_at'] or 'unknown'}")
        state = "[yellow]stale[/yellow]" if status["stale"] else "[green]fresh[/green]"
        console.print(f"[bold]State:[/bold] {state}")
    if status["updating"]:
        console.print("[dim]Download in progress[/dim]")


@db_app.command("update")
def db_update(
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Download even if another download is marked as pending",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output",
        ),
    ] = False,
) -> None:
    """Download the GeoLite2 database now and wait for it to finish."""
    _setup_logging(verbose)
    settings = _load_settings()
    cache = _open_cache(settings)
    assets = DatabaseAssetManager.from_settings(settings.storage, cache, AsyncioJobQueue())

    if not cache.add(DB_UPDATING_KEY, True, assets.lock_ttl) and not force:
        err_console.print("[yellow]A database download is already pending[/yellow]")
        raise typer.Exit(code=1)

    with console.status("Downloading GeoLite2 database..."):
        ok = asyncio.run(assets.create_download_job().run())

    if not ok:
        err_console.print("[red]Database download failed[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]Updated:[/green] {assets.path()}")


@app.command()
def cache(
    action: Annotated[
        str,
        typer.Argument(help="Cache action: 'show', 'clear' or 'purge'"),
    ],
    ip: Annotated[
        Optional[str],
        typer.Argument(help="Specific IP to clear (optional)"),
    ] = None,
) -> None:
    """Manage the location cache.

    Actions:
        show  - Display cache location, entry count, and size
        clear - Clear all cached locations (or a specific IP)
        purge - Remove expired entries
    """
    cache_instance = _open_cache(_load_settings())

    if action == "show":
        info = cache_instance.info()
        console.print(f"[bold]Cache Location:[/bold] {info['path']}")
        console.print(f"[bold]Entries:[/bold] {info['count']}")
        console.print(f"[bold]Size:[/bold] {info['size_bytes'] / 1024:.1f} KB")

    elif action == "clear":
        if ip:
            address = validate_ip(ip)
            if address is None:
                err_console.print(f"[red]Not a cacheable IP address:[/red] {ip}")
                raise typer.Exit(code=1)
            cache_instance.clear(ip=address)
            console.print(f"[green]Cleared cache for:[/green] {address}")
        else:
            cache_instance.clear()
            console.print("[green]Cache cleared[/green]")

    elif action == "purge":
        removed = cache_instance.purge_expired()
        console.print(f"[green]Removed {removed} expired entries[/green]")

    else:
        err_console.print(f"[red]Unknown action:[/red] {action}")
        err_console.print("Valid actions: show, clear, purge")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
