"""
Command Line Interface for Reminder Mailer

Operator commands for the database, the HTTP server and the reminder sweep.
"""

from __future__ import annotations

import dataclasses
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer
from rich import print as rich_print
from rich.console import Console
from rich.table import Table

from .config.logging_config import setup_logging
from .config.settings import ConfigurationError, Settings, load_settings
from .database.models import Reminder
from .database.operations import (
    StorageError,
    get_all_reminders,
    get_pending_reminders,
    get_unconfirmed_reminders,
    initialize_database,
)
from .handlers.common import HandlerResponse
from .handlers.submission import submit_reminder
from .handlers.sweep import SweepResult, resend_confirmations, run_sweep
from .monitoring.health import HealthMonitor, HealthStatus, SystemMetrics, collect_system_metrics
from .security.credentials import AppConfig, CredentialError, CredentialManager

# Initialize CLI app
app = typer.Typer(
    name="reminders",
    help="Reminder Mailer - schedule one-off reminder emails",
    add_completion=False,
    rich_markup_mode="rich"
)

console = Console()

DEFAULT_CONFIG_FILE: Path = Path("config/credentials.enc")
CPU_SAMPLE_SECONDS: float = 0.5

DatabaseOption = typer.Option(None, "--db", help="SQLite database file (overrides DATABASE_URL)")


def get_settings(db: Optional[Path] = None) -> Settings:
    """Load settings from the environment, exiting on invalid configuration."""
    try:
        settings: Settings = load_settings()
    except ConfigurationError as e:
        rich_print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(1)

    if db is not None:
        settings = dataclasses.replace(settings, database_path=db)
    return settings


def print_reminders(reminders: List[Reminder], title: str) -> None:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Email")
    table.add_column("Due (UTC)")
    table.add_column("Timezone")
    table.add_column("Confirmed")
    table.add_column("State", style="green")

    for reminder in reminders:
        table.add_row(
            reminder.id,
            reminder.email,
            f"{reminder.date} {reminder.time}",
            reminder.timezone,
            "yes" if reminder.sent_confirmation else "no",
            reminder.reminder_state.value,
        )

    console.print(table)


def print_results(results: List[SweepResult], title: str) -> None:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Email")
    table.add_column("Result")
    table.add_column("Error", style="red")

    for result in results:
        table.add_row(
            result.id,
            result.email,
            "[green]sent[/green]" if result.success else "[red]failed[/red]",
            result.error or "",
        )

    console.print(table)


@app.command("init-db")
def init_db(db: Optional[Path] = DatabaseOption) -> None:
    """Create the reminders table and its index."""
    settings: Settings = get_settings(db)
    try:
        initialize_database(settings.database_path)
    except StorageError as e:
        rich_print(f"[red]Failed to initialize database: {e}[/red]")
        raise typer.Exit(1)
    rich_print(f"[green]Database ready at {settings.database_path}[/green]")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on"),
    db: Optional[Path] = DatabaseOption,
) -> None:
    """Run the HTTP API."""
    import uvicorn

    from .api.app import create_app

    settings: Settings = get_settings(db)
    setup_logging(settings.logging_config())

    rich_print(f"[bold blue]Serving Reminder Mailer on http://{host}:{port}[/bold blue]")
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())


@app.command()
def sweep(
    now: Optional[str] = typer.Option(None, "--now", help="Sweep as of this ISO-8601 UTC instant"),
    db: Optional[Path] = DatabaseOption,
) -> None:
    """Send every reminder that is due."""
    settings: Settings = get_settings(db)

    sweep_time: Optional[datetime] = None
    if now:
        try:
            sweep_time = datetime.fromisoformat(now.replace("Z", "+00:00"))
        except ValueError:
            rich_print(f"[red]Invalid --now value: {now}[/red]")
            raise typer.Exit(1)

    initialize_database(settings.database_path)
    response: HandlerResponse = run_sweep(
        settings.create_email_service(),
        db_path=settings.database_path,
        now=sweep_time,
    )

    if not response.ok:
        rich_print(f"[red]Sweep failed: {response.body.get('error', response.body['message'])}[/red]")
        raise typer.Exit(1)

    rich_print(f"[green]{response.body['message']}[/green]")
    results: List[SweepResult] = [
        SweepResult(r["id"], r["email"], r["success"], r.get("error")) for r in response.body["results"]
    ]
    if results:
        print_results(results, "Sweep Results")
    if any(not result.success for result in results):
        raise typer.Exit(1)


@app.command()
def add(
    email: str = typer.Argument(..., help="Recipient address"),
    date: str = typer.Argument(..., help="Local date, YYYY-MM-DD"),
    time: str = typer.Argument(..., help="Local time, HH:MM"),
    timezone: Optional[str] = typer.Option(None, "--timezone", help="IANA zone or UTC offset"),
    db: Optional[Path] = DatabaseOption,
) -> None:
    """Schedule a reminder and send its confirmation email."""
    settings: Settings = get_settings(db)
    initialize_database(settings.database_path)

    payload: dict[str, str] = {"email": email, "date": date, "time": time}
    if timezone:
        payload["timezone"] = timezone

    response: HandlerResponse = submit_reminder(
        payload,
        settings.create_email_service(),
        db_path=settings.database_path,
        default_timezone=settings.default_timezone,
    )

    if not response.ok:
        rich_print(f"[red]{response.body['message']}[/red]")
        raise typer.Exit(1)

    rich_print(f"[green]{response.body['message']}[/green]")
    rich_print(f"Reminder ID: [cyan]{response.body['reminderId']}[/cyan]")


@app.command("list")
def list_reminders(
    pending: bool = typer.Option(False, "--pending", help="Only reminders that are due now"),
    unconfirmed: bool = typer.Option(False, "--unconfirmed", help="Only reminders without a confirmation"),
    db: Optional[Path] = DatabaseOption,
) -> None:
    """Show stored reminders."""
    if pending and unconfirmed:
        rich_print("[red]Use either --pending or --unconfirmed, not both[/red]")
        raise typer.Exit(1)

    settings: Settings = get_settings(db)
    if not settings.database_path.exists():
        rich_print(f"[yellow]No database at {settings.database_path}. Run 'reminders init-db' first.[/yellow]")
        raise typer.Exit(1)

    if pending:
        reminders, title = get_pending_reminders(db_path=settings.database_path), "Due Reminders"
    elif unconfirmed:
        reminders, title = get_unconfirmed_reminders(db_path=settings.database_path), "Unconfirmed Reminders"
    else:
        reminders, title = get_all_reminders(db_path=settings.database_path), "All Reminders"

    if not reminders:
        rich_print("[yellow]No reminders found[/yellow]")
        return
    print_reminders(reminders, title)


@app.command("resend-confirmations")
def resend(db: Optional[Path] = DatabaseOption) -> None:
    """Retry confirmation emails that failed at submission time."""
    settings: Settings = get_settings(db)
    results: List[SweepResult] = resend_confirmations(
        settings.create_email_service(), db_path=settings.database_path
    )

    if not results:
        rich_print("[green]Every reminder is confirmed[/green]")
        return

    print_results(results, "Confirmation Resends")
    if any(not result.success for result in results):
        raise typer.Exit(1)


@app.command()
def setup(
    config_file: Path = typer.Option(
        Path(os.environ.get("REMINDER_CONFIG_FILE", str(DEFAULT_CONFIG_FILE))),
        "--config",
        "-c",
        help="Encrypted credentials file to write",
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Store SMTP credentials in an encrypted file."""
    rich_print("[bold blue]Reminder Mailer Setup[/bold blue]")

    if config_file.exists() and not force:
        rich_print(f"[yellow]Configuration already exists at {config_file}[/yellow]")
        rich_print("[yellow]Use --force to reconfigure.[/yellow]")
        return

    master_password: str = typer.prompt(
        "Create a master password for encrypting your credentials",
        hide_input=True,
        confirmation_prompt=True,
    )

    rich_print("\n[bold]SMTP Configuration[/bold]")
    smtp_server: str = typer.prompt("SMTP server", default="smtp.gmail.com")
    smtp_port: int = typer.prompt("SMTP port", default=587, type=int)
    smtp_username: str = typer.prompt("SMTP username")
    smtp_password: str = typer.prompt("SMTP password", hide_input=True)
    from_email: str = typer.prompt("Sender address", default=smtp_username)
    from_name: str = typer.prompt("Sender name", default="Reminder Mailer")

    rich_print("\n[bold]Service Configuration[/bold]")
    app_config: AppConfig = AppConfig(
        database_url=typer.prompt("Database path", default="reminders.db"),
        default_timezone=typer.prompt("Default timezone", default="UTC"),
    )

    try:
        CredentialManager.setup_wizard(
            config_file,
            master_password,
            smtp_username=smtp_username,
            smtp_password=smtp_password,
            from_email=from_email,
            from_name=from_name,
            smtp_server=smtp_server,
            smtp_port=smtp_port,
            app_config=app_config,
        )
    except (CredentialError, ValueError) as e:
        rich_print(f"[red]Setup failed: {e}[/red]")
        raise typer.Exit(1)

    rich_print(f"\n[bold green]Configuration saved to {config_file}[/bold green]")
    rich_print("[cyan]Set REMINDER_CONFIG_FILE and MASTER_PASSWORD to use it.[/cyan]")


@app.command()
def health(db: Optional[Path] = DatabaseOption) -> None:
    """Check the database and host resources."""
    settings: Settings = get_settings(db)

    def sample_host() -> SystemMetrics:
        return collect_system_metrics(cpu_interval=CPU_SAMPLE_SECONDS)

    monitor = HealthMonitor(settings.database_path, metrics_provider=sample_host)
    status: HealthStatus = monitor.perform_health_check()

    table = Table(title="System Health", show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan")
    table.add_column("Details")

    if status.reminder_counts is not None:
        counts = status.reminder_counts
        table.add_row(
            "Database",
            f"{counts['total']} reminders, {counts['pending']} pending, "
            f"{counts['in_flight']} in flight, {counts['sent']} sent",
        )
    if status.system_metrics is not None:
        metrics = status.system_metrics
        table.add_row(
            "Host",
            f"CPU: {metrics.cpu_percent:.1f}%, RAM: {metrics.memory_percent:.1f}%, "
            f"Disk: {metrics.disk_usage_percent:.1f}%",
        )
    for warning in status.warnings:
        table.add_row("[yellow]Warning[/yellow]", warning)
    for error in status.errors:
        table.add_row("[red]Error[/red]", error)

    console.print(table)

    if not status.is_healthy:
        rich_print("[red]UNHEALTHY[/red]")
        raise typer.Exit(1)
    rich_print("[green]HEALTHY[/green]")


def main() -> None:
    """Main entry point for the CLI application."""
    app()


if __name__ == "__main__":
    main()
