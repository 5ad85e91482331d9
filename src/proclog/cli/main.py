"""
proclog CLI - Main entry point.

Provides commands for:
- init: Create the durable log table
- show: List durable log entries
- sessions: Summarise logged sessions
- stats: Show aggregated statistics
- purge: Delete old entries
- health: Check database connectivity
- config: Show effective configuration
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

import typer
from rich.console import Console
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from proclog.debug.errors import DebugLogError

app = typer.Typer(
    name="proclog",
    help="Inspect and administer the durable debug log",
    add_completion=True,
)
console = Console()

T = TypeVar("T")

DATABASE_URL_OPTION = typer.Option(
    None, "--database-url", "-D", help="Database URL (overrides configuration)"
)


@app.callback()
def main(
    log_level: str = typer.Option(None, "--log-level", "-l", help="Log level"),
) -> None:
    """Inspect and administer the durable debug log."""
    from proclog.config import get_settings

    level = (log_level or get_settings().logger.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _run(database_url: str | None, work: Callable[[], Awaitable[T]]) -> T:
    """Run a coroutine against an initialized database, reporting failures."""
    from proclog.debug.database import close_database, init_database, is_missing_table_error

    async def runner() -> T:
        await init_database(database_url)
        try:
            return await work()
        finally:
            await close_database()

    try:
        return asyncio.run(runner())
    except DBAPIError as e:
        if is_missing_table_error(e):
            console.print("[yellow]No durable log table yet. Run 'proclog init' first.[/yellow]")
        else:
            console.print(f"[red]Database error: {e}[/red]")
        raise typer.Exit(1)
    except (DebugLogError, SQLAlchemyError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def init(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """Create the durable log table if it does not exist."""
    from proclog.debug.database import get_engine
    from proclog.debug.logger import ensure_durable_table

    async def work() -> bool:
        async with get_engine().connect() as conn:
            return await ensure_durable_table(conn)

    if _run(database_url, work):
        console.print("[green]Created durable log table[/green]")
    else:
        console.print("[dim]Durable log table already exists[/dim]")


@app.command()
def show(
    session_id: int | None = typer.Option(None, "--session", "-s", help="Session ID"),
    limit: int = typer.Option(50, "--limit", "-n", help="Number of entries"),
    contains: str | None = typer.Option(None, "--contains", "-c", help="Message substring"),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Show durable log entries, newest first."""
    from rich.table import Table

    from proclog.debug.store import get_log_store

    async def work() -> dict[str, Any]:
        return await get_log_store().list_entries(
            limit=limit, session_id=session_id, contains=contains
        )

    data = _run(database_url, work)
    items = data["items"]
    if not items:
        console.print("[dim]No entries[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Time")
    table.add_column("Session", justify="right")
    table.add_column("Message")

    for entry in items:
        table.add_row(
            (entry.get("entrytime") or "-")[:19],
            str(entry["session_id"]),
            entry["message"],
        )

    console.print(table)
    if data["has_more"]:
        console.print(f"[dim]Showing {len(items)} of {data['total']} entries[/dim]")


@app.command()
def sessions(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of sessions"),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Summarise sessions present in the durable log."""
    from rich.table import Table

    from proclog.debug.store import get_log_store

    async def work() -> list[dict[str, Any]]:
        return await get_log_store().list_sessions(limit=limit)

    rows = _run(database_url, work)
    if not rows:
        console.print("[dim]No sessions logged[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Session", justify="right")
    table.add_column("Entries", justify="right")
    table.add_column("First")
    table.add_column("Last")

    for row in rows:
        table.add_row(
            str(row["session_id"]),
            str(row["entries"]),
            (row["first_entry"] or "-")[:19],
            (row["last_entry"] or "-")[:19],
        )

    console.print(table)


@app.command()
def stats(
    hours: int = typer.Option(24, "--hours", help="Hours to look back"),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Show aggregated statistics."""
    from proclog.debug.store import get_log_store

    async def work() -> dict[str, Any]:
        return await get_log_store().get_stats(hours=hours)

    console.print_json(data=_run(database_url, work))


@app.command()
def purge(
    days: int | None = typer.Option(None, "--days", "-d", help="Delete entries older than this"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Delete durable entries older than the retention period."""
    from proclog.config import get_settings
    from proclog.debug.store import get_log_store

    days = days if days is not None else get_settings().database.retention_days
    if not yes:
        typer.confirm(f"Delete debug log entries older than {days} days?", abort=True)

    async def work() -> int:
        return await get_log_store().purge_entries(days)

    deleted = _run(database_url, work)
    console.print(f"[green]Deleted {deleted} entries[/green]")


@app.command()
def health(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """Check database connectivity."""
    from proclog.debug.database import check_database_health

    result = _run(database_url, check_database_health)
    if result["connected"]:
        console.print(f"[green]✓[/green] database: connected ({result['latency_ms']}ms)")
    else:
        console.print(f"[red]✗[/red] database: {result['error']}")
        raise typer.Exit(1)


@app.command()
def config() -> None:
    """Show effective configuration."""
    from proclog.config import get_settings_dict

    console.print_json(data=get_settings_dict())


@app.command()
def version() -> None:
    """Show version information."""
    from proclog import __version__

    console.print(f"proclog version {__version__}")


if __name__ == "__main__":
    app()
