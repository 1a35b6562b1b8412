"""
Restore command: roll the database back to a backup snapshot.
"""
from pathlib import Path
from typing import Optional

import typer
from sqlalchemy.exc import SQLAlchemyError

from asset_relocator.cli.commands.utils import (
    ENV_OPTION_HELP,
    confirm_action,
    console,
    environment_label,
    fail,
    load_cli_settings,
)
from asset_relocator.cli.logging import setup_cli_logging
from asset_relocator.core.exceptions import RelocatorError, RestoreAborted
from asset_relocator.core.reporting import ConsoleReporter
from asset_relocator.services.backup_service import BackupManager


def restore(
    env: Optional[str] = typer.Option(None, "--env", "-e", help=ENV_OPTION_HELP),
    backup: Optional[str] = typer.Option(
        None, "--backup", "-b", help="Backup timestamp (YYYY-MM-DD-HH-MM-SS); defaults to the most recent"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
):
    """
    Restore the database from a backup set.

    A copy of the current database is kept before it is overwritten, and
    record counts per provider are shown afterwards.
    """
    settings = load_cli_settings(env)
    logger = setup_cli_logging("restore", settings, verbose=verbose)
    reporter = ConsoleReporter(console)

    reporter.section(f"{settings.source_provider} to {settings.destination_provider} - Restore from Backup")
    reporter.info(f"Environment: {environment_label(settings)}")

    manager = BackupManager(settings, reporter=reporter)

    reporter.section("Available Backups")
    for index, backup_set in enumerate(manager.list_backups(manager.backup_dir), start=1):
        reporter.info(f"{index}. {backup_set.timestamp} ({len(backup_set.files)} files)")

    def confirm(message: str) -> bool:
        return yes or confirm_action(f"\n{message}", default=False)

    try:
        manager.restore(backup, confirm=confirm)
    except RestoreAborted:
        logger.info("Restore cancelled by user")
        console.print("[yellow]Restore cancelled[/yellow]")
        raise typer.Exit(code=0)
    except (RelocatorError, SQLAlchemyError, OSError) as e:
        logger.error(f"Restore failed: {e}")
        fail(f"Restore failed: {e}")

    console.print("[bold green]✓ Restore completed successfully[/bold green]")
    console.print("\nNext steps:")
    console.print("  1. Verify the media library in the application")
    state_file = Path(settings.migration_state_file)
    if state_file.exists():
        # Restored records are still listed as processed and would be skipped
        reporter.warning(f"Migration state {state_file} predates this restore")
        console.print(f"  2. Move {state_file} aside before re-running the migration")
    else:
        console.print("  2. If correct, you can re-run the migration if needed")
