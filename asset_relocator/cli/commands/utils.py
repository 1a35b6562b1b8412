"""
Shared helpers for CLI commands.
"""
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from asset_relocator.core.config import Settings, load_settings

console = Console()

ENV_OPTION_HELP = "Environment name; loads .env.<ENV> on top of .env"


def confirm_action(message: str, default: bool = False) -> bool:
    """Ask a y/N question on the terminal."""
    return typer.confirm(message, default=default)


def load_cli_settings(environment: Optional[str]) -> Settings:
    """Load settings or exit with code 1 on invalid configuration."""
    try:
        return load_settings(environment)
    except ValidationError as e:
        console.print("[red]Invalid configuration:[/red]")
        for error in e.errors():
            location = ".".join(str(part) for part in error.get("loc", ())) or "settings"
            console.print(f"  • {location}: {error.get('msg')}")
        raise typer.Exit(code=1)


def fail(message: str, code: int = 1) -> None:
    """Print an error and exit."""
    console.print(f"[red]✗ {message}[/red]")
    raise typer.Exit(code=code)


def environment_label(settings: Settings) -> str:
    return "Production" if settings.environment == "production" else "Local"
