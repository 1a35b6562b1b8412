"""
Main CLI application using Typer.

Entry point: python -m asset_relocator
CLI Name: asset-relocator
"""
import typer

from asset_relocator import __version__ as app_version

app = typer.Typer(
    name="asset-relocator",
    help="Asset Relocator - move media assets between object stores with backup and restore",
    no_args_is_help=True,
)


@app.command()
def version():
    """Show CLI version information."""
    typer.echo(f"Asset Relocator version {app_version}")


# Register commands
from asset_relocator.cli.commands import backup, migrate, restore, status
app.command("backup")(backup.backup)
app.command("backups")(backup.list_backups)
app.command("migrate")(migrate.migrate)
app.command("restore")(restore.restore)
app.command("status")(status.status)
