"""
aiexpense CLI.

Commands:
    init-db        Create database tables
    parse          Parse a message and record its expenses
    sync-pricing   Sync the AI pricing ledger from the pricing provider
    refresh-rates  Fetch and cache exchange rates for the configured bases
    ai-cost        Show AI spend for the last N days
    serve          Run the HTTP API
"""
import asyncio
import logging

import httpx
import typer
from rich.console import Console
from rich.table import Table

from aiexpense import __version__, database
from aiexpense.config import settings
from aiexpense.container import build_container
from aiexpense.services.expense_service import format_amount

app = typer.Typer(
    name="aiexpense",
    help="aiexpense - AI-assisted expense ingestion",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


@app.callback()
def main(
    log_level: str = typer.Option(settings.LOG_LEVEL, "--log-level", help="Logging level"),
):
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _with_container(func):
    """Run `func(container)` with tables created and the cost meter running."""
    await database.init_db()
    async with httpx.AsyncClient() as http_client:
        container = build_container(database.async_session, http_client=http_client)
        container.cost_meter.start()
        try:
            return await func(container)
        finally:
            await container.cost_meter.stop()


@app.command("init-db")
def init_db_command():
    """Create database tables.

    Example: aiexpense init-db
    """
    asyncio.run(database.init_db())
    console.print("[green]✓[/green] Database initialized")


@app.command()
def parse(
    text: str = typer.Argument(..., help="Message text, e.g. 'lunch $12 coffee $4'"),
    user: str = typer.Option("terminal-user", "--user", "-u", help="User ID"),
):
    """Parse a message and record its expenses.

    Example: aiexpense parse "breakfast $20 lunch $30" --user alice
    """
    result = asyncio.run(_with_container(lambda c: c.message_service.process(user, text)))

    if not result.expenses:
        console.print(f"[yellow]{result.reply}[/yellow]")
        if result.failed:
            raise typer.Exit(1)
        return

    table = Table()
    table.add_column("Date", style="dim")
    table.add_column("Description", style="cyan")
    table.add_column("Category")
    table.add_column("Amount", justify="right")
    table.add_column("Original", justify="right", style="dim")
    for expense in result.expenses:
        original = ""
        if expense.currency != expense.home_currency:
            original = f"{format_amount(expense.original_amount)} {expense.currency}"
        table.add_row(
            expense.expense_date.strftime("%Y-%m-%d"),
            expense.description,
            expense.category or "-",
            f"{format_amount(expense.home_amount)} {expense.home_currency}",
            original,
        )
    console.print(table)
    console.print(
        f"[green]✓[/green] Recorded {len(result.expenses)} expense(s), "
        f"total: [bold]{format_amount(result.total)} {result.home_currency}[/bold]"
    )


@app.command("sync-pricing")
def sync_pricing():
    """Sync the AI pricing ledger from the configured pricing provider.

    Example: aiexpense sync-pricing
    """
    result = asyncio.run(_with_container(lambda c: c.pricing_sync.sync()))

    if not result.success:
        for error in result.errors:
            err_console.print(f"[red]Error:[/red] {error}")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] {result.provider}: {result.models_updated} updated, "
        f"{result.models_unchanged} unchanged"
    )
    if result.updated_configs:
        table = Table()
        table.add_column("Model", style="cyan")
        table.add_column("Input / token", justify="right")
        table.add_column("Output / token", justify="right")
        for config in result.updated_configs:
            table.add_row(config.model, f"{config.input_token_price:.10f}", f"{config.output_token_price:.10f}")
        console.print(table)
    for error in result.errors:
        err_console.print(f"[yellow]Warning:[/yellow] {error}")


@app.command("refresh-rates")
def refresh_rates():
    """Fetch and cache exchange rates for the configured base currencies.

    Example: aiexpense refresh-rates
    """
    stored = asyncio.run(_with_container(lambda c: c.exchange_service.refresh_rates()))

    table = Table()
    table.add_column("Base", style="cyan")
    table.add_column("Rates stored", justify="right")
    for base, count in stored.items():
        table.add_row(base, str(count) if count else "[red]0[/red]")
    console.print(table)

    if not any(stored.values()):
        err_console.print("[red]Error:[/red] no exchange rates could be fetched")
        raise typer.Exit(1)


@app.command("ai-cost")
def ai_cost(
    days: int = typer.Option(30, "--days", "-d", help="Days to report"),
    limit: int = typer.Option(10, "--limit", "-n", help="Top users to show"),
):
    """Show AI spend for the last N days.

    Example: aiexpense ai-cost --days 7
    """
    async def _report(container):
        report = container.cost_report
        return (
            await report.summary(days),
            await report.by_operation(days),
            await report.top_users(days, limit),
        )

    summary, operations, users = asyncio.run(_with_container(_report))

    console.print(f"[bold]AI cost, last {days} days[/bold]")
    console.print(f"  Calls:  {summary['total_calls']}")
    console.print(f"  Tokens: {summary['total_tokens']}")
    console.print(f"  Cost:   ${summary['total_cost']:.6f} {summary['currency']}")

    if operations:
        table = Table(title="By operation")
        table.add_column("Operation", style="cyan")
        table.add_column("Calls", justify="right")
        table.add_column("Tokens", justify="right")
        table.add_column("Cost (USD)", justify="right")
        for row in operations:
            table.add_row(row["operation"], str(row["calls"]), str(row["total_tokens"]), f"{row['cost']:.6f}")
        console.print(table)

    if users:
        table = Table(title="Top users")
        table.add_column("User", style="cyan")
        table.add_column("Calls", justify="right")
        table.add_column("Cost (USD)", justify="right")
        for row in users:
            table.add_row(row["user_id"], str(row["calls"]), f"{row['cost']:.6f}")
        console.print(table)


@app.command()
def serve(
    host: str = typer.Option(settings.HOST, "--host", help="Bind address"),
    port: int = typer.Option(settings.PORT, "--port", help="Bind port"),
):
    """Run the HTTP API.

    Example: aiexpense serve --port 8080
    """
    import uvicorn

    uvicorn.run("aiexpense.main:app", host=host, port=port)


@app.command()
def version():
    """Show version."""
    console.print(f"aiexpense v{__version__}")


if __name__ == "__main__":
    app()
