"""weighbatch CLI.

Commands:
- init: Initialize database schema
- reconcile: Fold unsummarized scale events into batches
- reconcile-status: Show recent reconciliation runs
- promote: Release a pending batch for review
- reopen: Return a failed batch to processed
- transmit: Send a processed batch to SAP
- batches: List batches
- stats: Show batch statistics
- web serve: Run the API
"""

from __future__ import annotations

import asyncio
from datetime import datetime

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy import select

from weighbatch.batching.queries import batch_statistics, fetch_batches
from weighbatch.batching.reconciler import reconcile
from weighbatch.config import get_config
from weighbatch.core.logging import configure_logging
from weighbatch.db.connection import close_db, get_session, init_db
from weighbatch.db.models import ReconcileRunModel
from weighbatch.exceptions import WeighbatchError
from weighbatch.models import BatchFilter, TransmissionStatus
from weighbatch.transmission.service import begin_transmission, promote_batch, reopen_batch

app = typer.Typer(
    name="weighbatch",
    help="weighbatch - Weight summary batching for scale results",
    no_args_is_help=True,
)

web_cli = typer.Typer(help="Web API")
app.add_typer(web_cli, name="web")

console = Console()

STATUS_STYLES = {
    "pending": "white",
    "processed": "cyan",
    "sending": "yellow",
    "failed": "red",
    "success": "green",
}


def _run(coro):
    """Run a command coroutine, reporting domain errors without a traceback."""

    async def _wrapped():
        try:
            return await coro
        finally:
            await close_db()

    try:
        return asyncio.run(_wrapped())
    except WeighbatchError as e:
        console.print(f"[red]✗[/red] {e.message} ({e.code})")
        raise typer.Exit(code=1) from e


@app.callback()
def _setup():
    configure_logging()


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="reconcile")
def reconcile_cmd(
    order: str | None = typer.Option(
        None, "--order", help="Only reconcile this production order number"
    ),
):
    """Fold unsummarized scale events into weight summary batches."""
    console.print("[bold]Reconciling scale events[/bold]" + (f" for order {order}" if order else ""))

    async def _reconcile():
        async with get_session() as session:
            return await reconcile(session, production_order_number=order, trigger="cli")

    result = _run(_reconcile())

    if result.status.value == "NOOP":
        console.print("[yellow]No unsummarized scale events[/yellow]")
        return

    table = Table(title="Reconciliation")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")
    table.add_row("Events processed", str(result.events_processed))
    table.add_row("Batches created", str(result.batches_created))
    table.add_row("Batches reused", str(result.batches_reused))
    table.add_row("Items created", str(result.items_created))
    table.add_row("Items updated", str(result.items_updated))
    table.add_row("Groups skipped", str(result.groups_skipped))
    console.print(table)


@app.command(name="reconcile-status")
def reconcile_status_cmd(
    last_n: int = typer.Option(10, "--last", "-n", help="Show last N runs"),
):
    """Show recent reconciliation runs."""

    async def _status():
        async with get_session() as session:
            result = await session.execute(
                select(ReconcileRunModel)
                .order_by(ReconcileRunModel.run_timestamp.desc())
                .limit(last_n)
            )
            return result.scalars().all()

    runs = _run(_status())
    if not runs:
        console.print("[yellow]No reconciliation runs found[/yellow]")
        return

    table = Table(title=f"Last {last_n} reconciliation runs")
    table.add_column("When")
    table.add_column("Trigger")
    table.add_column("Status")
    table.add_column("Events", justify="right")
    table.add_column("Batches +/=", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Message", style="dim")
    for run in runs:
        status = "[red]FAILED[/red]" if run.status == "FAILED" else f"[green]{run.status}[/green]"
        table.add_row(
            run.run_timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            run.trigger,
            status,
            str(run.events_processed),
            f"{run.batches_created}/{run.batches_reused}",
            str(run.groups_skipped),
            run.message or "",
        )
    console.print(table)


@app.command()
def promote(
    batch_id: int = typer.Argument(..., help="Batch ID"),
    actor: str = typer.Option("cli", "--actor", help="User recorded on the batch"),
):
    """Move a pending batch to processed."""

    async def _promote():
        async with get_session() as session:
            return await promote_batch(session, batch_id, actor=actor)

    batch = _run(_promote())
    console.print(
        f"[bold green]✓[/bold green] {batch.batch_code} is now {batch.transmission_status.value}"
    )


@app.command()
def reopen(
    batch_id: int = typer.Argument(..., help="Batch ID"),
    actor: str = typer.Option("cli", "--actor", help="User recorded on the batch"),
):
    """Move a failed batch back to processed."""

    async def _reopen():
        async with get_session() as session:
            return await reopen_batch(session, batch_id, actor=actor)

    batch = _run(_reopen())
    console.print(
        f"[bold green]✓[/bold green] {batch.batch_code} is now {batch.transmission_status.value}"
    )


@app.command()
def transmit(
    batch_id: int = typer.Argument(..., help="Batch ID"),
    actor: str = typer.Option("cli", "--actor", help="User recorded on the batch"),
):
    """Send a processed batch to SAP."""
    console.print(f"[bold]Transmitting batch {batch_id}[/bold]")

    async def _transmit():
        async with get_session() as session:
            return await begin_transmission(session, batch_id, actor=actor)

    result = _run(_transmit())

    style = STATUS_STYLES.get(result.status.value, "white")
    console.print(f"{result.batch_code}: [{style}]{result.status.value}[/{style}] {result.message}")
    for item in result.items:
        console.print(f"  • item {item.id}: {item.status.value} {item.total_weight}")

    if result.status == TransmissionStatus.FAILED:
        raise typer.Exit(code=1)


@app.command()
def batches(
    status: TransmissionStatus | None = typer.Option(None, "--status", help="Filter by status"),
    search: str | None = typer.Option(None, "--search", help="Batch code contains"),
    start_date: datetime | None = typer.Option(None, "--from", formats=["%Y-%m-%d"]),
    end_date: datetime | None = typer.Option(None, "--to", formats=["%Y-%m-%d"]),
    page: int = typer.Option(0, "--page"),
    page_size: int = typer.Option(20, "--page-size"),
):
    """List weight summary batches."""
    filters = BatchFilter(
        status=status,
        search=search,
        start_date=start_date.date() if start_date else None,
        end_date=end_date.date() if end_date else None,
    )

    async def _list():
        async with get_session() as session:
            return await fetch_batches(session, filters, page=page, page_size=page_size)

    listing = _run(_list())
    meta = listing["meta"]

    table = Table(title=f"Batches (page {meta['current_page'] + 1}/{max(meta['total_pages'], 1)})")
    table.add_column("ID", justify="right")
    table.add_column("Code", style="cyan")
    table.add_column("Detail", justify="right")
    table.add_column("Status")
    table.add_column("Events")
    table.add_column("Created")
    for batch in listing["batches"]:
        style = STATUS_STYLES.get(batch.transmission_status.value, "white")
        table.add_row(
            str(batch.id),
            batch.batch_code,
            str(batch.production_order_detail_id),
            f"[{style}]{batch.transmission_status.value}[/{style}]",
            f"{batch.scale_event_id_from}-{batch.scale_event_id_to}",
            batch.created_at.strftime("%Y-%m-%d %H:%M") if batch.created_at else "",
        )
    console.print(table)
    console.print(f"{meta['total_items']} batches total")


@app.command()
def stats():
    """Show batch statistics."""

    async def _stats():
        async with get_session() as session:
            return await batch_statistics(session)

    data = _run(_stats())

    table = Table(title="Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for status, count in data["batches_by_status"].items():
        table.add_row(f"Batches {status}", str(count))
    table.add_row("Items", str(data["total_items"]))
    table.add_row("Total weight", f"{data['total_weight']:,.3f}")
    table.add_row("Total converted weight", f"{data['total_weight_converted']:,.3f}")
    console.print(table)


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI service."""
    import uvicorn

    typer.echo(f"Starting weighbatch API on http://{host}:{port}")
    uvicorn.run("weighbatch.web.app:app", host=host, port=port, reload=reload, workers=1)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
