"""Rich terminal output for intentcrowd."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..storage.models import ItemStatus, Submission, TrainingItem

console = Console()

STATUS_STYLES = {
    ItemStatus.PENDING: "yellow",
    ItemStatus.RESOLVED: "green",
    ItemStatus.CONFLICTED: "red",
}


def setup_logging(level: str = "WARNING"):
    """Route log records through rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def render_item(item: TrainingItem, history: Optional[list[Submission]] = None) -> Panel:
    """Render one training item with its submissions."""
    style = STATUS_STYLES[item.status]

    lines = [
        f"[bold]{item.sentence}[/bold]",
        "",
        f"  ID             {item.id}",
        f"  Foreign ID     {item.foreign_id or '[dim](none)[/dim]'}",
        f"  Submissions    {item.trained_count}/{item.max_assignments}",
        f"  Status         [{style}]{item.status.value}[/{style}]",
    ]
    if item.resolved_label:
        lines.append(f"  Resolved as    [green]{item.resolved_label}[/green]")

    if history:
        lines.append("")
        lines.append("[bold]Submitted Labels[/bold]")
        for i, sub in enumerate(history, 1):
            lines.append(f"  {i}. {sub.label}  [dim]{sub.submitted_at:%Y-%m-%d %H:%M}[/dim]")

    return Panel(
        "\n".join(lines),
        title=f"[{style}]Training Item {item.id}[/{style}]",
        border_style=style,
        padding=(0, 1),
    )


def items_table(items: list[TrainingItem]) -> Table:
    """Compact table of training items."""
    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Sentence")
    table.add_column("Foreign ID", style="dim")
    table.add_column("Done", justify="right")
    table.add_column("Status")
    table.add_column("Label")

    for item in items:
        sentence = item.sentence if len(item.sentence) <= 50 else item.sentence[:47] + "..."
        style = STATUS_STYLES[item.status]
        table.add_row(
            str(item.id),
            sentence,
            item.foreign_id,
            f"{item.trained_count}/{item.max_assignments}",
            f"[{style}]{item.status.value}[/{style}]",
            item.resolved_label or "",
        )

    return table


def print_error(message: str):
    """Print an error message."""
    console.print(f"[red]Error:[/red] {message}")


def print_warning(message: str):
    """Print a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {message}")


def print_success(message: str):
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_info(message: str):
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")
