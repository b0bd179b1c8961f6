"""
Operator commands for checking the incubator campaign from a terminal.
"""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from incubator.core.config import Settings, settings
from incubator.core.exceptions import IncubatorException
from incubator.core.logging import setup_logging, get_logger
from incubator.services.balance_service import BalanceService
from incubator.services.connection_manager import ConnectionManager
from incubator.services.leaderboard_service import LeaderboardService

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="Incubator campaign RPC commands")


def build_connection_manager(config: Settings) -> ConnectionManager:
    return ConnectionManager(config)


def _stale_note(is_stale: bool) -> str:
    return " [yellow](stale)[/yellow]" if is_stale else ""


@app.command()
def balance(address: Optional[str] = typer.Argument(None, help="Owner wallet, defaults to the campaign wallet")):
    """Show the token balance of a wallet."""
    address = address or settings.incubator_wallet

    async def _balance():
        manager = build_connection_manager(settings)
        try:
            return await BalanceService(manager, settings).get_balance(address)
        finally:
            await manager.close()

    setup_logging()
    console.print(f"Fetching {settings.token_symbol} balance...")
    try:
        snapshot = asyncio.run(_balance())
    except IncubatorException as e:
        console.print(f"[red]❌ {e.message}[/red]")
        raise typer.Exit(code=1)
    except Exception as e:
        logger.error("Balance check failed", address=address, error=str(e))
        console.print(f"[red]❌ Error fetching balance: {e}[/red]")
        raise typer.Exit(code=1)

    console.print(
        f"Current {settings.token_symbol} balance: "
        f"[bold]{snapshot.amount:,}[/bold] {settings.token_symbol}"
        f"{_stale_note(snapshot.is_stale)}"
    )


@app.command()
def leaderboard(limit: int = typer.Option(settings.leaderboard_default_limit, help="Number of depositors to show")):
    """Show the top depositors into the campaign wallet."""
    async def _leaderboard():
        manager = build_connection_manager(settings)
        try:
            return await LeaderboardService(manager, settings).get_leaderboard(limit)
        finally:
            await manager.close()

    setup_logging()
    snapshot = asyncio.run(_leaderboard())

    if not snapshot.entries:
        message = "No depositors found" if snapshot.success else "Failed to fetch leaderboard"
        console.print(f"[yellow]{message}[/yellow]")
        raise typer.Exit(code=0 if snapshot.success else 1)

    table = Table(title=f"Top depositors{' (stale)' if snapshot.is_stale else ''}")
    table.add_column("#", justify="right")
    table.add_column("Address", no_wrap=True)
    table.add_column(settings.token_symbol, justify="right")
    table.add_column("Last deposit")

    for rank, entry in enumerate(snapshot.entries, start=1):
        last_deposit = entry.last_deposit_time.strftime("%Y-%m-%d %H:%M") if entry.last_deposit_time else "-"
        table.add_row(str(rank), entry.address, f"{entry.amount:,}", last_deposit)

    console.print(table)


@app.command()
def health():
    """Probe every configured RPC endpoint."""
    async def _health():
        manager = build_connection_manager(settings)
        try:
            return await manager.health_check()
        finally:
            await manager.close()

    setup_logging()
    report = asyncio.run(_health())

    table = Table(title="RPC endpoints")
    table.add_column("Endpoint", no_wrap=True)
    table.add_column("Status")
    table.add_column("Latency", justify="right")
    table.add_column("Error")

    for url, result in report["endpoints"].items():
        status = "[green]healthy[/green]" if result["healthy"] else "[red]down[/red]"
        latency = f"{result['response_time'] * 1000:.0f} ms" if result["response_time"] is not None else "-"
        table.add_row(url, status, latency, result["error"] or "")

    console.print(table)
    stats = report["stats"]
    console.print(f"Active endpoint: {stats['active_endpoint']} (switches: {stats['state']['switch_count']})")

    if not any(result["healthy"] for result in report["endpoints"].values()):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
