"""
Progress reporting for long-running relocator operations.

Components receive a Reporter explicitly instead of writing to a shared
console. ``Reporter`` itself is silent, which makes it the reporter of choice
for tests and automation.
"""
from typing import Mapping, Optional

from rich.console import Console
from rich.table import Table

from asset_relocator.core.logging_config import log_error, log_info, log_warning


class Reporter:
    """Silent reporter. Subclasses decide where messages go."""

    def section(self, title: str) -> None:
        pass

    def info(self, message: str) -> None:
        pass

    def success(self, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass

    def progress(self, current: int, total: int, label: str = "") -> None:
        pass

    def stats(self, title: str, values: Mapping[str, object]) -> None:
        pass


NullReporter = Reporter


class ConsoleReporter(Reporter):
    """Rich console output mirrored into the application log."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def section(self, title: str) -> None:
        log_info(f"== {title} ==")
        self.console.rule(f"[bold cyan]{title}[/bold cyan]")

    def info(self, message: str) -> None:
        log_info(message)
        self.console.print(f"[blue]ℹ[/blue] {message}")

    def success(self, message: str) -> None:
        log_info(message)
        self.console.print(f"[green]✓ {message}[/green]")

    def warning(self, message: str) -> None:
        log_warning(message)
        self.console.print(f"[yellow]⚠ {message}[/yellow]")

    def error(self, message: str) -> None:
        log_error(message)
        self.console.print(f"[red]✗ {message}[/red]")

    def progress(self, current: int, total: int, label: str = "") -> None:
        percentage = (current / total * 100) if total else 100.0
        suffix = f" - {label}" if label else ""
        self.console.print(f"[dim][{current}/{total}] {percentage:5.1f}%{suffix}[/dim]")

    def stats(self, title: str, values: Mapping[str, object]) -> None:
        table = Table(title=title)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")
        for name, value in values.items():
            table.add_row(str(name), str(value))
        log_info(title, **{str(k).replace(" ", "_").lower(): v for k, v in values.items()})
        self.console.print(table)
