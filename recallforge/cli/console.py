"""Console output helpers.

Provides consistent formatting for CLI output messages, including an error
panel with "Why" and "How to fix" sections for RecallForgeError.
"""

from __future__ import annotations

from typing import List

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from recallforge.core.exceptions import RecallForgeError

# Shared console instance
_console: Console | None = None


def get_console() -> Console:
    """Get shared console instance (lazy-loaded)."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def tip(message: str) -> None:
    """Display a dim tip line."""
    get_console().print(f"  [dim]Tip: {message}[/dim]")


def render_error(exc: RecallForgeError) -> None:
    """Render a RecallForgeError as an error panel."""
    content = _build_error_content(str(exc), exc.why_it_happened, exc.how_to_fix)
    panel = Panel(
        content,
        title=f"[bold red]Error: {exc.error_code}[/bold red]",
        border_style="red",
        padding=(1, 2),
    )
    get_console().print(panel)


def _build_error_content(message: str, why: str, how_to_fix: List[str]) -> Text:
    text = Text()
    text.append(message, style="bold")
    text.append("\n\nWhy it happened:\n", style="yellow")
    text.append(why)
    text.append("\n\nHow to fix:\n", style="green")
    for suggestion in how_to_fix:
        text.append(f"  - {suggestion}\n")
    return text
