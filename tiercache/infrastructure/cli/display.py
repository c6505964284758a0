import json
import logging
from datetime import datetime
from typing import Any, Dict, List

from rich.box import ROUNDED, SIMPLE
from rich.console import Console
from rich.json import JSON
from rich.panel import Panel
from rich.table import Table

from tiercache.domain.interfaces.user_interface import UserInterface
from tiercache.domain.models.cache import CacheOperation, CacheStats

logger = logging.getLogger(__name__)

class ConsoleDisplay(UserInterface):
    """Renders command results on a rich Console."""

    def __init__(self, console: Console = None):
        """Uses the given Console, or a default one writing to stdout."""
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """The underlying rich Console; tests swap it for a mock."""
        return self._console

    @console.setter
    def console(self, value: Console) -> None:
        self._console = value

    def display_output(self, output: Any, **kwargs: Any) -> None:
        """Displays a cached value. Structured values are rendered as highlighted JSON.

        Args:
            output: The value to display.
            **kwargs: Rendering options:
                - title: Panel title (default: "Value")
        """
        title = kwargs.get("title", "Value")
        if isinstance(output, str):
            body: Any = output
        else:
            try:
                body = JSON(json.dumps(output))
            except (TypeError, ValueError) as e:
                logger.debug(f"Falling back to repr for non-JSON output: {e}")
                body = repr(output)
        self.console.print(Panel(body, title=f"[bold]{title}[/bold]", title_align="left", box=ROUNDED, padding=(0, 1)))

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {error_message}")

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        self.console.print(f"[bold yellow]Warning:[/bold yellow] {warning_message}")

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        self.console.print(f"[blue]Info:[/blue] {info_message}")

    def display_stats(self, stats: CacheStats) -> None:
        """Displays a per-level statistics table with an overall row."""
        table = Table(title="Cache Statistics", show_header=True, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Level", style="bold")
        table.add_column("Hits", justify="right")
        table.add_column("Misses", justify="right")
        table.add_column("Hit Rate", justify="right")
        table.add_column("Size", justify="right")

        for level in ("l1", "l2", "l3"):
            tier = stats.tier(level)
            size = f"{tier.size}/{tier.max_size}" if tier.max_size is not None else str(tier.size)
            table.add_row(level.upper(), str(tier.hits), str(tier.misses), f"{tier.hit_rate:.1%}", size)

        table.add_row(
            "[bold]Overall[/bold]",
            str(stats.overall.total_hits),
            str(stats.overall.total_misses),
            f"{stats.overall.overall_hit_rate:.1%}",
            "",
        )
        self.console.print(table)

    def display_operations(self, operations: List[CacheOperation]) -> None:
        """Displays operation log entries, oldest first."""
        if not operations:
            self.display_info("No cache operations recorded.")
            return

        table = Table(title="Recent Operations", show_header=True, box=SIMPLE, padding=(0, 1))
        table.add_column("Time", style="dim")
        table.add_column("Op", style="bold")
        table.add_column("Level")
        table.add_column("Key", style="cyan")
        table.add_column("ms", justify="right")
        table.add_column("OK", justify="center")
        table.add_column("Size", justify="right")

        for op in operations:
            timestamp = datetime.fromtimestamp(op.timestamp / 1000).strftime("%H:%M:%S")
            table.add_row(
                timestamp,
                op.operation,
                op.level,
                op.key[:12],
                f"{op.duration:.1f}",
                "[green]✓[/green]" if op.success else "[red]✗[/red]",
                "" if op.size is None else str(op.size),
            )
        self.console.print(table)

    def display_mapping(self, title: str, values: Dict[str, Any]) -> None:
        table = Table(title=title, show_header=False, box=ROUNDED, padding=(0, 1))
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in values.items():
            table.add_row(str(key), str(value))
        self.console.print(table)
