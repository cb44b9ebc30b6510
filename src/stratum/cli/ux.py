"""
CLI UX utilities built on rich.

Environment handling:
- Respects NO_COLOR and FORCE_COLOR environment variables
- Errors go to stderr so JSON output on stdout stays parseable
"""

from __future__ import annotations

import os

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

# Nord color palette (https://www.nordtheme.com/)
STRATUM_THEME = Theme(
    {
        "info": "#88C0D0",  # Nord frost - light blue
        "success": "#A3BE8C",  # Nord aurora - green
        "warning": "#EBCB8B",  # Nord aurora - yellow
        "error": "#BF616A bold",  # Nord aurora - red
        "muted": "#D8DEE9",  # Nord snow storm - light grey
    }
)

# Status name -> theme style
STATUS_STYLES = {
    "Pending": "muted",
    "Creating": "info",
    "Created": "success",
    "VerifyFailed": "warning",
    "Deleting": "info",
    "Deleted": "muted",
    "Failed": "error",
}


console = Console(
    theme=STRATUM_THEME,
    force_terminal=os.environ.get("FORCE_COLOR") is not None,
    no_color=os.environ.get("NO_COLOR") is not None,
)

err_console = Console(
    theme=STRATUM_THEME,
    stderr=True,
    no_color=os.environ.get("NO_COLOR") is not None,
)


# === Output Formatting ===


def success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]✓ {message}[/success]")


def error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[error]✗ {message}[/error]")


def warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[warning]⚠ {message}[/warning]")


def info(message: str) -> None:
    """Print an info message."""
    console.print(f"[info]ℹ {message}[/info]")


def header(title: str) -> None:
    """Print a section header."""
    console.print()
    console.print(Panel(f"[bold]{title}[/bold]", border_style="cyan"))


def styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "muted")
    return f"[{style}]{status}[/{style}]"


def print_table(
    title: str,
    columns: list[str],
    rows: list[list[str]],
    show_header: bool = True,
) -> None:
    """Print a formatted table."""
    table = Table(title=title, show_header=show_header)

    for col in columns:
        table.add_column(col)

    for row in rows:
        table.add_row(*row)

    console.print(table)

