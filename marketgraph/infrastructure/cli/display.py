import logging
import json
from typing import Optional, Any

from rich.console import Console
from rich.panel import Panel
from rich.box import ROUNDED, HEAVY, SIMPLE
from rich.text import Text
from rich.table import Table
from rich.syntax import Syntax

from marketgraph.domain.interfaces.user_interface import UserInterface
from marketgraph.domain.models.envelope import PaginationMeta

logger = logging.getLogger(__name__)

class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        """Initializes the rich Console."""
        self._console = console or Console()

    @property
    def console(self):
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_json(self, data: Any, **kwargs: Any) -> None:
        """Renders data as highlighted JSON inside a panel.

        Args:
            data: JSON-compatible data.
            **kwargs: Additional arguments including:
                - title: Panel title (default: "Result")
        """
        title = kwargs.get("title", "Result")
        rendered = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        logger.debug(f"display_json called: title={title}, length={len(rendered)}")
        panel = Panel(
            Syntax(rendered, "json", word_wrap=True),
            title=f"[bold white]{title}[/bold white]",
            title_align="left",
            border_style="blue",
            box=ROUNDED,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_pagination(self, meta: Optional[PaginationMeta]) -> None:
        """Shows page metadata as a compact table. Unknown totals are shown as 'n/a'."""
        if meta is None:
            return
        table = Table(show_header=False, box=SIMPLE, border_style="cyan", padding=(0, 1))
        table.add_column("Field", style="bold cyan")
        table.add_column("Value")

        def fmt(value: Optional[int]) -> str:
            return "n/a" if value is None else str(value)

        table.add_row("Page", fmt(meta.page))
        table.add_row("Per page", fmt(meta.per_page))
        table.add_row("Total items", fmt(meta.total_items))
        table.add_row("Total pages", fmt(meta.total_pages))
        if meta.pagination_limit is not None:
            table.add_row("Pagination limit", str(meta.pagination_limit))
        if meta.pagination_unsupported:
            table.add_row("Pagination", "unsupported for this query")
        self.console.print(table)

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message in a distinct style.

        Args:
            error_message: The error message to display.
        """
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message with enhanced styling.

        Args:
            info_message: The informational message to display.
        """
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1)
        )
        self.console.print(panel)
