"""Command-line interface for Selliox.

The scheduled commands (``run-draw``, ``send-reminders``, ``expire-entries``)
are meant to be triggered by cron; each is safe to fire more than once.
"""

import asyncio
from datetime import datetime
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from selliox.errors import RewardError
from selliox.logging_config import configure_logging, get_logger
from selliox.storage.db import db

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="selliox",
    help="Selliox - referral rewards and monthly prize draw",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()

AtOption = Annotated[
    datetime | None,
    typer.Option("--at", help="Run as if the current time were this (ISO format)"),
]


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("serve")
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Bind port")] = 8000,
    reload: Annotated[bool, typer.Option("--reload", help="Reload on code changes (development)")] = False,
) -> None:
    """Run the HTTP API."""
    import uvicorn

    console.print(f"[bold blue]Serving Selliox API on http://{host}:{port}[/bold blue]")
    uvicorn.run("selliox.api.main:app", host=host, port=port, reload=reload, log_config=None)


@app.command("create-admin")
def create_admin(
    email: Annotated[str, typer.Option("--email", "-e", help="Admin email")],
    password: Annotated[str, typer.Option("--password", "-p", prompt=True, hide_input=True, help="Admin password")],
    name: Annotated[str | None, typer.Option("--name", "-n", help="Display name")] = None,
) -> None:
    """Create an admin account."""
    from selliox.auth.local import auth_service

    try:
        user = auth_service.create_user(email=email, password=password, name=name, is_admin=True)
    except RewardError as e:
        console.print(f"[bold red]✗[/bold red] {e.message}")
        raise typer.Exit(1)

    console.print(f"[bold green]✓[/bold green] Admin created with ID: [bold]{user.id}[/bold]")


@app.command("run-draw")
def run_draw_command(at: AtOption = None) -> None:
    """Run the draw for the month that just ended."""
    from selliox.email.service import send_winner_email
    from selliox.scheduler.jobs import run_monthly_draw_job

    try:
        result = run_monthly_draw_job(now=at)
    except RewardError as e:
        console.print(f"[bold red]✗[/bold red] Draw failed: {e.message}")
        raise typer.Exit(1)

    status = result["status"]
    if status == "skipped":
        console.print(f"[yellow]Draw {result['run_key']} already handled by another run[/yellow]")
        return
    if status == "no_entries":
        console.print(f"[yellow]No active entries for draw {result['run_key']}[/yellow]")
        return
    if status == "already_completed":
        console.print(f"[yellow]Draw {result['run_key']} was already completed[/yellow]")
        return

    draw = result["draw"]
    console.print(f"[bold green]✓[/bold green] Draw {result['run_key']} completed")
    console.print(f"  Winner: {draw['winner']['user_id']} ({draw['winner']['tickets']} tickets)")
    console.print(f"  Total entries: {draw['total_entries']}")
    console.print(f"  Prize: ${draw['prize_amount']:g}")

    if not asyncio.run(send_winner_email(draw["id"])):
        console.print("[yellow]Winner email not sent (see logs)[/yellow]")


@app.command("send-reminders")
def send_reminders_command(at: AtOption = None) -> None:
    """Send draw reminders to every ticket holder."""
    from selliox.scheduler.jobs import send_draw_reminders_job

    result = send_draw_reminders_job(now=at)
    if result["status"] == "sent":
        console.print(f"[bold green]✓[/bold green] Sent {result['sent']} reminders for {result['run_key']}")
    else:
        console.print(f"[yellow]No reminders sent ({result['status']})[/yellow]")


@app.command("expire-entries")
def expire_entries_command(at: AtOption = None) -> None:
    """Expire draw entries past their expiry date."""
    from selliox.scheduler.jobs import expire_entries_job

    result = expire_entries_job(now=at)
    if result["status"] == "skipped":
        console.print(f"[yellow]Expiry for {result['run_key']} already handled[/yellow]")
        return

    console.print(
        f"[bold green]✓[/bold green] Expired {result['tickets']} tickets for {result['users']} users"
    )


@app.command("reconcile-tickets")
def reconcile_tickets_command(
    fix: Annotated[bool, typer.Option("--fix", help="Overwrite drifting counters with the ledger total")] = False,
) -> None:
    """Compare user ticket counters with the ticket ledger."""
    from selliox.draws.ledger import reconcile_ticket_counters

    report = reconcile_ticket_counters(fix=fix)
    if not report["drift_count"]:
        console.print(f"[bold green]✓[/bold green] {report['users_checked']} users checked, no drift")
        return

    table = Table(title="Ticket counter drift")
    table.add_column("User ID", style="cyan")
    table.add_column("Counter", justify="right")
    table.add_column("Ledger", justify="right")
    for row in report["drift"]:
        table.add_row(str(row["user_id"]), str(row["counter"]), str(row["ledger"]))
    console.print(table)

    if fix:
        console.print(f"[bold green]✓[/bold green] Fixed {report['drift_count']} counters")
    else:
        console.print("[yellow]Run again with --fix to repair[/yellow]")
        raise typer.Exit(1)


@app.command("draw-summary")
def draw_summary_command() -> None:
    """Show the current draw and recent results."""
    from selliox.draws.engine import get_draw_management_summary

    summary = get_draw_management_summary()

    console.print(f"[bold]Active tickets:[/bold] {summary['total_entries']}")
    console.print(f"[bold]Participants:[/bold] {summary['total_participants']}")
    console.print(f"[bold]Payments awaiting processing:[/bold] {summary['pending_payments']}")

    draws = ([summary["current_draw"]] if summary["current_draw"] else []) + summary["past_draws"]
    if not draws:
        console.print("[yellow]No draws yet[/yellow]")
        return

    table = Table(title="Draws")
    table.add_column("Period", style="cyan")
    table.add_column("Status")
    table.add_column("Winner")
    table.add_column("Tickets", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Payment")

    for draw in draws:
        winner = draw["winner"].get("user") or {}
        table.add_row(
            f"{draw['month_name']} {draw['year']}",
            draw["status"],
            winner.get("email") or "-",
            str(draw["winner"]["tickets"] or "-"),
            str(draw["total_entries"]),
            draw["payment_status"],
        )

    console.print(table)


if __name__ == "__main__":
    app()
