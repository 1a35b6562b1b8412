"""
Migration command: move source-tagged assets to the destination store.
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
from asset_relocator.core.exceptions import InvalidEndpoint, StateFileCorrupted, StoreUnavailable
from asset_relocator.core.reporting import ConsoleReporter
from asset_relocator.models.enums import MigrationStatus
from asset_relocator.services.migration_service import MigrationEngine
from asset_relocator.services.object_storage import ObjectStoreClient
from asset_relocator.services.source_client import SourceClient
from asset_relocator.services.state_store import MigrationStateStore


def migrate(
    env: Optional[str] = typer.Option(None, "--env", "-e", help=ENV_OPTION_HELP),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview migration without uploads or database changes"),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", "-c", min=1, max=32, help="Parallel workers (default: MIGRATION_CONCURRENCY)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
):
    """
    Migrate every source-tagged asset to the destination store.

    This command:
    - Skips records whose source object no longer exists
    - Reuses destination objects that already exist under the same key
    - Rewrites each record in its own transaction after a confirmed upload
    - Saves progress after every record so an interrupted run can resume
    """
    settings = load_cli_settings(env)
    logger = setup_cli_logging("migrate", settings, verbose=verbose)
    reporter = ConsoleReporter(console)
    workers = concurrency or settings.migration_concurrency

    reporter.section(f"{settings.source_provider} to {settings.destination_provider} Migration")
    if dry_run:
        console.print("[bold yellow]DRY RUN MODE - No changes will be made[/bold yellow]")

    header = Table(title="Migration Settings")
    header.add_column("Setting", style="cyan")
    header.add_column("Value", style="white")
    header.add_row("Environment", environment_label(settings))
    header.add_row("Database", settings.database_client)
    header.add_row("Bucket", settings.aws_bucket or "-")
    header.add_row("Concurrency", str(workers))
    header.add_row("Mode", "DRY RUN" if dry_run else "LIVE")
    console.print(header)

    try:
        object_store = ObjectStoreClient.from_settings(settings)
        reporter.success(f"Destination bucket: {object_store.bucket}")
        store = AssetStore.from_settings(settings)
        reporter.success(f"Connected to {store.client} database")
    except (StoreUnavailable, InvalidEndpoint) as e:
        logger.error(f"Migration setup failed: {e}")
        fail(f"Migration failed: {e}")

    state_store = MigrationStateStore(settings.migration_state_file, persist=not dry_run)

    try:
        with SourceClient.from_settings(settings) as source:
            engine = MigrationEngine(
                store,
                object_store,
                source,
                state_store,
                reporter=reporter,
                concurrency=workers,
                dry_run=dry_run,
                verify_existing_size=settings.verify_existing_size,
            )
            state = engine.run()
    except (StoreUnavailable, StateFileCorrupted, SQLAlchemyError) as e:
        logger.error(f"Migration aborted: {e}")
        fail(f"Migration failed: {e}")
    finally:
        store.dispose()

    if dry_run:
        console.print(
            f"\n[green]✓ Dry run complete. {state.statistics.planned} files would be migrated.[/green]"
        )
        console.print("Run without --dry-run to perform the migration")
    elif state.status == MigrationStatus.COMPLETED:
        console.print("[bold green]✓ Migration completed successfully[/bold green]")
    else:
        console.print(
            f"[yellow]⚠ Migration completed with {state.statistics.failed} errors; "
            f"re-run to retry failed files[/yellow]"
        )
