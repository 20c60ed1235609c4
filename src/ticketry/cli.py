"""
Ticketry CLI - command-line interface for database and plugin management.
"""

import logging
from contextlib import contextmanager
from typing import Generator

import typer
from rich.console import Console
from rich.table import Table

from ticketry.config import settings
from ticketry.db.connection import check_connection, init_db
from ticketry.db.database import Database
from ticketry.exceptions import DatabaseError
from ticketry.logging_config import setup_logging
from ticketry.plugins.manager import HOST_BASENAME, PluginManager

app = typer.Typer(
    name="ticketry",
    help="Ticketry - issue tracker database and plugin management",
    no_args_is_help=True,
)
db_app = typer.Typer(help="Database commands", no_args_is_help=True)
plugins_app = typer.Typer(help="Plugin commands", no_args_is_help=True)
app.add_typer(db_app, name="db")
app.add_typer(plugins_app, name="plugins")

console = Console()


def _setup_logging() -> None:
    try:
        setup_logging(context="cli")
    except PermissionError:
        logging.basicConfig(level=logging.INFO)


@contextmanager
def open_database() -> Generator[Database, None, None]:
    """Connect to the configured database, exiting with an error on failure."""
    _setup_logging()
    db = Database()
    try:
        db.connect()
    except DatabaseError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    try:
        yield db
    finally:
        db.close()


@contextmanager
def open_plugin_manager() -> Generator[PluginManager, None, None]:
    with open_database() as db:
        if not db.table_exists(db.get_table("plugin")):
            console.print(
                "[bold red]Error:[/bold red] Plugin table missing. "
                "Run 'ticketry db init' first."
            )
            raise typer.Exit(1)

        manager = PluginManager(db)
        manager.init_all()
        yield manager


@db_app.command("check")
def db_check() -> None:
    """Check that the database is reachable."""
    with open_database() as db:
        if not check_connection(db):
            console.print("[bold red]✗ Database is not responding[/bold red]")
            raise typer.Exit(1)
        console.print(f"[green]✓ Connected to {db.dbtype} database[/green]")


@db_app.command("init")
def db_init() -> None:
    """Create the core tables if they don't exist."""
    with open_database() as db:
        init_db(db)
        console.print("[green]✓ Core tables created[/green]")


@db_app.command("tables")
def db_tables() -> None:
    """List the tables in the database."""
    with open_database() as db:
        tables = db.get_table_list()
        if not tables:
            console.print("[yellow]No tables found[/yellow]")
            return
        for table_name in sorted(tables):
            console.print(f"  {table_name}")


@plugins_app.command("list")
def plugins_list() -> None:
    """List available plugins and their state."""
    with open_plugin_manager() as manager:
        installed = manager.get_installed()

        table = Table(title="Plugins")
        table.add_column("Basename", style="cyan")
        table.add_column("Name")
        table.add_column("Version")
        table.add_column("Installed")
        table.add_column("Initialized")

        for basename, info in manager.find_all().items():
            table.add_row(
                basename,
                info.name,
                info.version,
                "yes" if basename in installed else "no",
                "yes" if manager.is_registered(basename) else "no",
            )

        console.print(table)


@plugins_app.command("install")
def plugins_install(
    basename: str = typer.Argument(..., help="Plugin basename"),
) -> None:
    """Install a plugin and apply its schema."""
    with open_plugin_manager() as manager:
        if basename == HOST_BASENAME or manager.is_installed(basename):
            console.print(f"[yellow]⚠ Plugin {basename} is already installed[/yellow]")
            return

        if not manager.install(basename):
            console.print(f"[bold red]✗ Failed to install {basename}[/bold red]")
            raise typer.Exit(1)
        console.print(f"[green]✓ Installed {basename}[/green]")


@plugins_app.command("upgrade")
def plugins_upgrade(
    basename: str = typer.Argument(..., help="Plugin basename"),
) -> None:
    """Apply a plugin's pending schema steps."""
    with open_plugin_manager() as manager:
        if not manager.is_installed(basename):
            console.print(f"[bold red]Error:[/bold red] {basename} is not installed")
            raise typer.Exit(1)

        if not manager.needs_upgrade(basename):
            console.print(f"Plugin {basename} is up to date")
            return

        if not manager.upgrade(basename):
            console.print(f"[bold red]✗ Failed to upgrade {basename}[/bold red]")
            raise typer.Exit(1)
        console.print(f"[green]✓ Upgraded {basename}[/green]")


@plugins_app.command("uninstall")
def plugins_uninstall(
    basename: str = typer.Argument(..., help="Plugin basename"),
) -> None:
    """Uninstall a plugin. Its tables and configuration are kept."""
    with open_plugin_manager() as manager:
        if not manager.is_installed(basename):
            console.print(f"[yellow]⚠ Plugin {basename} is not installed[/yellow]")
            return

        manager.uninstall(basename)
        console.print(f"[green]✓ Uninstalled {basename}[/green]")


@app.command()
def serve(
    host: str = typer.Option(settings.api_host, help="Host to bind to"),
    port: int = typer.Option(settings.api_port, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
) -> None:
    """
    Start the FastAPI server.

    Runs the Ticketry plugin management API.
    """
    import uvicorn

    console.print("[bold green]Starting Ticketry API server...[/bold green]")
    console.print(f"  Host: {host}")
    console.print(f"  Port: {port}")
    console.print(f"  Reload: {reload}")
    console.print(f"\n  API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "ticketry.api.app:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
