"""
Rich-based console utilities for the cohortstats CLI.

Provides consistent terminal output with:
- Styled messages (info, success, warning, error)
- Error panels
- Result tables for sources, cohorts and statistics
"""

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

COHORTSTATS_THEME = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "red bold",
        "highlight": "magenta",
        "muted": "dim",
        "brand": "bold blue",
        "path": "cyan underline",
    }
)

# Global console instance with custom theme
console = Console(theme=COHORTSTATS_THEME)

TAGLINE = "Cohort statistics for OMOP warehouses"


def print_logo(show_tagline: bool = True, show_version: bool = True) -> None:
    """Print the application name with optional tagline and version."""
    from cohortstats import __version__

    logo_text = Text("cohortstats", style="bold blue")

    if show_tagline:
        logo_text.append(Text(f"\n  {TAGLINE}", style="italic cyan"))

    if show_version:
        logo_text.append(Text(f"\n  v{__version__}", style="dim"))

    console.print(logo_text)


def info(message: str, prefix: str = "info") -> None:
    """Print an info message."""
    console.print(f"[info]{prefix}:[/info] {message}")


def success(message: str, prefix: str = "done") -> None:
    """Print a success message."""
    console.print(f"[success]{prefix}:[/success] {message}")


def warning(message: str, prefix: str = "warning") -> None:
    """Print a warning message."""
    console.print(f"[warning]{prefix}:[/warning] {message}")


def print_key_value(key: str, value: Any, indent: int = 2) -> None:
    """Print a key-value pair."""
    spaces = " " * indent
    console.print(f"{spaces}[muted]{key}:[/muted] {value}")


def print_error_panel(title: str, message: str, hint: str | None = None) -> None:
    """Print an error in a styled panel."""
    content = f"[error]{message}[/error]"
    if hint:
        content += f"\n\n[dim]Hint: {hint}[/dim]"
    console.print(Panel(content, title=f"[error]{title}[/error]", padding=(1, 2)))


def create_status_table(title: str | None = None) -> Table:
    """Create a styled table for result display."""
    table = Table(
        title=title,
        show_header=True,
        header_style="bold",
        border_style="dim",
        padding=(0, 1),
    )
    return table


def print_rows_table(
    columns: list[tuple[str, str]],
    rows: list[list[Any]],
    title: str | None = None,
) -> None:
    """
    Print rows as a table.

    Args:
        columns: (header, justify) pairs
        rows: Row values, converted with str()
        title: Optional table title
    """
    table = create_status_table(title)
    for header, justify in columns:
        table.add_column(header, justify=justify)
    for row in rows:
        table.add_row(*("[muted]-[/muted]" if v is None else str(v) for v in row))
    console.print(table)
