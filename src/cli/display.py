"""CLI rendering and confirmation for the ingestion wizard."""

from typing import Any, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskID, TextColumn
from rich.prompt import Confirm
from rich.table import Table

from src.wizard import (
    Event,
    EventBus,
    EventType,
    ExecutionResult,
    PreviewResult,
    StatusLevel,
    StatusMessage,
)

console = Console()

STATUS_STYLES = {
    StatusLevel.INFO: ("[blue]•[/blue]", "blue"),
    StatusLevel.SUCCESS: ("[green]✓[/green]", "green"),
    StatusLevel.WARNING: ("[yellow]![/yellow]", "yellow"),
    StatusLevel.ERROR: ("[red]✗[/red]", "red"),
}

# Cells are truncated so wide rows stay readable in a terminal
MAX_CELL_WIDTH = 40


class WizardDisplay:
    """Render wizard state to the terminal and ask for confirmation."""

    def __init__(self, auto_approve: bool = False, quiet: bool = False, out: Optional[Console] = None):
        """
        Initialize the display.

        Args:
            auto_approve: If True, confirmations are answered yes without prompting
            quiet: Only print errors and the final summary
            out: Console to print to (defaults to stdout)
        """
        self.auto_approve = auto_approve
        self.quiet = quiet
        self.console = out or console
        self._progress: Optional[Progress] = None
        self._progress_task: Optional[TaskID] = None

    def request_approval(self, action: str, details: dict[str, Any]) -> bool:
        """
        Show what is about to happen and get the user's answer.

        Returns:
            True if approved, False otherwise
        """
        if self.auto_approve:
            self.console.print(f"[yellow]Auto-approving action: {action}[/yellow]")
            return True

        self.console.print()
        self.console.print(
            Panel(
                f"[bold yellow]Confirm: {action}[/bold yellow]",
                title="Ingestion",
                border_style="yellow",
            )
        )
        self._display_details(details)

        self.console.print()
        try:
            approved = Confirm.ask("[bold]Proceed?[/bold]", default=False)
        except KeyboardInterrupt:
            self.console.print("\n[red]Cancelled by user[/red]")
            return False

        if approved:
            self.console.print("[green]✓ Approved[/green]")
        else:
            self.console.print("[red]✗ Declined[/red]")
        return approved

    def _display_details(self, details: dict[str, Any]) -> None:
        for key, value in details.items():
            if isinstance(value, list):
                self.console.print(f"  {key}:")
                for item in value[:10]:
                    self.console.print(f"    • {item}")
                if len(value) > 10:
                    self.console.print(f"    ... and {len(value) - 10} more")
            else:
                self.console.print(f"  {key}: {value}")

    def display_status(self, step: str, status: Optional[StatusMessage]) -> None:
        """Print the outcome of a step."""
        if status is None:
            return
        if self.quiet and not status.is_error:
            return
        icon, color = STATUS_STYLES[status.level]
        self.console.print(f"{icon} [bold]{step}:[/bold] [{color}]{status.text}[/{color}]")

    def display_progress(self, phase: str, message: str, status: str = "running") -> None:
        """Display progress update."""
        if self.quiet:
            return
        status_icons = {
            "running": "[blue]⟳[/blue]",
            "completed": "[green]✓[/green]",
            "failed": "[red]✗[/red]",
            "waiting": "[yellow]⏳[/yellow]",
        }
        icon = status_icons.get(status, "•")
        self.console.print(f"{icon} [bold]{phase}:[/bold] {message}")

    def display_tables(self, tables: list[str]) -> None:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("#", style="dim", justify="right")
        table.add_column("Table", style="cyan")
        for index, name in enumerate(tables):
            table.add_row(str(index), name)
        self.console.print(table)

    def display_columns(self, columns: list[Any]) -> None:
        """Show discovered columns with their inclusion flags."""
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("#", style="dim", justify="right")
        table.add_column("Column", style="cyan")
        table.add_column("Type", style="green")
        table.add_column("Included", justify="center")
        for col in columns:
            table.add_row(
                str(col.position),
                col.name,
                col.type or "-",
                "[green]✓[/green]" if col.selected else "[red]✗[/red]",
            )
        self.console.print(table)

    def display_preview(self, result: Optional[PreviewResult]) -> None:
        """Render preview rows, with the ``Showing X of Y rows`` caption."""
        if result is None or not result.rows:
            return

        table = Table(show_header=True, header_style="bold")
        for name in result.columns:
            table.add_column(name, overflow="ellipsis", max_width=MAX_CELL_WIDTH)
        for row in result.rows:
            table.add_row(*("" if row.get(name) is None else str(row.get(name)) for name in result.columns))
        self.console.print(table)
        self.console.print(f"[dim]{result.caption}[/dim]")

    # Execution progress

    def attach(self, events: EventBus) -> None:
        """Drive a progress bar from the executor's events."""
        events.subscribe(EventType.EXECUTION_STARTED, self._on_execution_started)
        events.subscribe(EventType.EXECUTION_PROGRESS, self._on_execution_progress)
        events.subscribe(EventType.EXECUTION_SUCCEEDED, self._on_execution_finished)
        events.subscribe(EventType.EXECUTION_FAILED, self._on_execution_finished)

    def _on_execution_started(self, event: Event) -> None:
        if self.quiet:
            return
        self._progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            console=self.console,
            transient=True,
        )
        self._progress.start()
        self._progress_task = self._progress.add_task(
            f"Ingesting ({event.data.get('direction')})", total=100
        )

    def _on_execution_progress(self, event: Event) -> None:
        value = event.data.get("progress")
        if self._progress is None or self._progress_task is None or value is None:
            return
        self._progress.update(self._progress_task, completed=value)

    def _on_execution_finished(self, event: Event) -> None:
        if self._progress is None:
            return
        self._progress.stop()
        self._progress = None
        self._progress_task = None

    def display_result(self, result: ExecutionResult) -> None:
        records = result.total_records if result.total_records is not None else "unknown"
        self.console.print(f"[green]Total records processed:[/green] {records}")
        if result.saved_path:
            self.console.print(f"[green]Saved to:[/green] {result.saved_path}")

    def display_summary(self, results: dict[str, Any]) -> None:
        """Display final summary of the wizard session."""
        self.console.print()
        self.console.print(Panel("[bold]Ingestion Summary[/bold]", border_style="blue"))

        table = Table(show_header=True, header_style="bold")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        for key, value in results.items():
            table.add_row(str(key), str(value))

        self.console.print(table)
