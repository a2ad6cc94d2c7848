"""
Console management for certkeeper.

Provides a small wrapper around rich consoles for CLI output and error
reporting.
"""

from rich.console import Console
from rich.table import Table


class ConsoleManager:
    """Manages console output and error handling for certkeeper."""

    def __init__(self) -> None:
        """Initialize the console manager with stdout and stderr consoles."""
        self.console = Console()
        self.error_console = Console(stderr=True)

    def print(
        self,
        message: str,
        markup: bool = True,
        highlight: bool = False,
        end: str = "\n",
    ) -> None:
        """Print a message to the standard console."""
        self.console.print(message, markup=markup, highlight=highlight, end=end)

    def print_raw(self, message: str, end: str = "") -> None:
        """Print raw output without markup or highlighting."""
        self.console.print(message, markup=False, highlight=False, end=end)

    def print_success(self, message: str) -> None:
        """Print a success message to the standard console."""
        self.console.print(f"[bold green]✓[/bold green] {message}")

    def print_error(self, message: str, end: str = "\n") -> None:
        """Print an error message to the error console."""
        self.error_console.print(f"[bold red]Error:[/bold red] {message}", end=end)

    def print_warning(self, message: str, end: str = "\n") -> None:
        """Print a warning message to the error console."""
        self.error_console.print(f"[yellow]Warning:[/yellow] {message}", end=end)

    def print_note(
        self, message: str, error: Exception | None = None, end: str = "\n"
    ) -> None:
        """Print a note message to the error console, optionally with an error."""
        if error:
            self.error_console.print(
                f"[yellow]Note:[/yellow] {message}: [red]{error}[/red]", end=end
            )
        else:
            self.error_console.print(f"[yellow]Note:[/yellow] {message}", end=end)

    def print_status_table(self, title: str, rows: list[tuple[str, str]]) -> None:
        """Print a two-column key/value table."""
        table = Table(title=title, show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for field, value in rows:
            table.add_row(field, value)
        self.console.print(table)


# Global instance for use throughout the package
console_manager = ConsoleManager()
