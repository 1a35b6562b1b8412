"""
Status command: show the persisted migration ledger.
"""
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from asset_relocator.cli.commands.utils import ENV_OPTION_HELP, console, fail, load_cli_settings
from asset_relocator.core.exceptions import StateFileCorrupted
from asset_relocator.services.state_store import MigrationStateStore


def status(
    env: Optional[str] = typer.Option(None, "--env", "-e", help=ENV_OPTION_HELP),
    state_file: Optional[Path] = typer.Option(None, "--state-file", help="Ledger path (default: MIGRATION_STATE_FILE)"),
):
    """Show progress and failures recorded by previous migration runs."""
    settings = load_cli_settings(env)
    path = state_file or Path(settings.migration_state_file)

    if not path.exists():
        console.print(f"[yellow]No migration state found at {path}[/yellow]")
        raise typer.Exit(code=0)

    try:
        state = MigrationStateStore(path, persist=False).load()
    except StateFileCorrupted as e:
        fail(str(e))

    stats = state.statistics
    summary = Table(title=f"Migration {state.migration_id}")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", style="white")
    summary.add_row("Status", state.status.value)
    summary.add_row("Started", state.start_time)
    summary.add_row("Finished", state.end_time or "-")
    summary.add_row("Total Files", str(stats.total_files))
    summary.add_row("Processed", str(stats.processed))
    summary.add_row("Success", str(stats.success))
    summary.add_row("Failed", str(stats.failed))
    summary.add_row("Skipped", str(stats.skipped))
    console.print(summary)

    if state.failed_files:
        failures = Table(title="Failed Files")
        failures.add_column("ID", style="cyan")
        failures.add_column("Original URL", style="white")
        failures.add_column("Error", style="red")
        for failed in state.failed_files:
            failures.add_row(str(failed.id), failed.original_url or "-", failed.error)
        console.print(failures)
