"""
Terminal output helpers for battman.

Every command prints through the shared Rich ``console`` so styling and
test capture stay in one place.
"""

from rich.console import Console
from rich.panel import Panel

from battman import __version__

VERSION = __version__

console = Console()

_STATUS_STYLES: dict[str, tuple[str, str]] = {
    "info": ("cyan", "ℹ"),
    "success": ("green", "✓"),
    "warning": ("yellow", "⚠"),
    "error": ("red", "✗"),
    "battery": ("bold green", "🔋"),
}


def cx_print(message: str, status: str = "info") -> None:
    """Print a status line prefixed with an icon for the given status."""
    style, icon = _STATUS_STYLES.get(status, _STATUS_STYLES["info"])
    console.print(f"[{style}]{icon}[/{style}] {message}")


def cx_header(title: str) -> None:
    console.print()
    console.print(f"[bold]{title}[/bold]")


def show_banner(show_version: bool = False) -> None:
    title = "Battery & Power Manager"
    if show_version:
        title += f" v{VERSION}"
    console.print(Panel.fit(f"[bold blue]{title}[/bold blue]", border_style="blue"))
