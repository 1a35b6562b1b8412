"""
Backup commands: create and list pre-migration backups.
"""
from typing import Optional

import typer
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from asset_relocator.cli.commands.utils import (
    ENV_OPTION_HELP,
    console,
    environment_label,
    fail,
    load_cli_settings,
)
from asset_relocator.cli.logging import setup_cli_logging
from asset_relocator.core.database import AssetStore
from asset_relocator.core.exceptions import RelocatorError, StoreUnavailable
from asset_relocator.core.reporting import ConsoleReporter
from asset_relocator.services.backup_service import BackupManager


def backup(
    env: Optional[str] = typer.Option(None, "--env", "-e", help=ENV_OPTION_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
):
    """
    Create a full backup before migrating.

    Writes a database snapshot, a JSON export and a CSV mapping of every
    source-tagged record, verifies them and writes a report.
    """
    settings = load_cli_settings(env)
    logger = setup_cli_logging("backup", settings, verbose=verbose)
    reporter = ConsoleReporter(console)

    reporter.section(f"{settings.source_provider} to {settings.destination_provider} - Pre-Migration Backup")
    reporter.info(f"Environment: {environment_label(settings)}")

    try:
        reporter.info("Connecting to database...")
        store = AssetStore.from_settings(settings)
    except StoreUnavailable as e:
        logger.error(f"Database unavailable: {e}")
        fail(f"Backup failed: {e}")
    reporter.success(f"Connected to {store.client} database")

    manager = BackupManager(settings, store=store, reporter=reporter)
    try:
        info = manager.run_backup()
    except (RelocatorError, SQLAlchemyError) as e:
        logger.error(f"Backup failed: {e}")
        fail(f"Backup failed: {e}")
    finally:
        store.dispose()

    if info is None:
        raise typer.Exit(code=0)

    summary = Table(title="Backup Summary")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", style="white")
    summary.add_row("Total Files", str(info.total_files))
    summary.add_row("Database Backup", info.database_backup.name)
    summary.add_row("JSON Backup", info.json_backup.name)
    summary.add_row("CSV Mapping", info.csv_backup.name)
    summary.add_row("Report", info.report.name if info.report else "N/A")
    console.print(summary)

    console.print("[bold green]✓ Backup completed successfully[/bold green]")
    console.print("\nNext steps:")
    console.print(f"  1. Verify backup files in {manager.backup_dir}/")
    console.print("  2. Run migration: asset-relocator migrate --dry-run, then asset-relocator migrate")
    console.print("  3. If needed, restore: asset-relocator restore")


def list_backups(
    env: Optional[str] = typer.Option(None, "--env", "-e", help=ENV_OPTION_HELP),
):
    """List backup sets, newest first."""
    settings = load_cli_settings(env)
    backups = BackupManager.list_backups(settings.backup_dir)

    if not backups:
        console.print(f"[yellow]No backups found in {settings.backup_dir}[/yellow]")
        raise typer.Exit(code=0)

    table = Table(title="Available Backups")
    table.add_column("#", style="dim")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Files", style="white")
    table.add_column("Artifacts", style="white")
    for index, backup_set in enumerate(backups, start=1):
        table.add_row(str(index), backup_set.timestamp, str(len(backup_set.files)), ", ".join(backup_set.files))
    console.print(table)
