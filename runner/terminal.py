"""Terminal front end: risk profile menu, action stream and shutdown summary."""

import logging
from typing import Callable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ai.risk_profile import DEFAULT_PROFILE, normalize_risk_tag
from core.position_ledger import LiquidationSummary
from infra.symbols import display_name

logger = logging.getLogger(__name__)


class TerminalUI:
    """Rich console wrapper used by the runner."""

    def __init__(self, console: Optional[Console] = None,
                 input_fn: Optional[Callable[[str], str]] = None):
        self.console = console or Console()
        self._input = input_fn or self.console.input

    def display_welcome(self) -> None:
        self.console.print(Panel("Crypto Hedge Fund Manager Terminal", style="bold blue"))

    def select_risk_profile(self) -> str:
        """Prompt for a risk profile; anything but 1/2 defaults to low."""
        self.console.print("1. High Risk High Returns")
        self.console.print("2. Low Risk Low Returns\n")

        try:
            answer = self._input("Enter any digit 1 or 2: ")
        except EOFError:
            answer = ""

        choice = (answer or "").strip()
        if choice in ("1", "2"):
            tag = normalize_risk_tag(choice)
        else:
            self.console.print("\n[yellow]Invalid choice. Defaulting to Low Risk.[/yellow]")
            tag = DEFAULT_PROFILE

        logger.info(f"Selected: {tag} risk profile")
        self.console.print(f"\nChecking the {tag} risk coins...")
        return tag

    def info(self, message: str) -> None:
        self.console.print(message)

    def error(self, message: str) -> None:
        self.console.print(f"[red]{message}[/red]")

    def display_summary(self, summary: LiquidationSummary) -> None:
        """Render the shutdown closure summary."""
        if summary.closed_count == 0:
            self.console.print("\n📊 No open positions to close.")
            return

        table = Table(title="📉 POSITION CLOSURE SUMMARY")
        table.add_column("#", justify="right")
        table.add_column("Asset")
        table.add_column("Type")
        table.add_column("Entry", justify="right")
        table.add_column("Exit", justify="right")
        table.add_column("Size", justify="right")
        table.add_column("P&L", justify="right")

        for index, closed in enumerate(summary.positions, start=1):
            position = closed.position
            color = "green" if closed.is_profit else "red"
            outcome = "profit" if closed.is_profit else "loss"
            table.add_row(
                str(index),
                display_name(position.identifier),
                position.type.upper(),
                f"${position.entry_price:.6f}",
                f"${closed.current_price:.6f}",
                f"${position.size:.2f}",
                f"[{color}]${abs(closed.pnl):.2f} ({outcome})[/{color}]",
            )

        self.console.print(table)
        self.console.print(f"Total Closed: {summary.closed_count} position(s)")
        self.console.print(f"Total P&L: ${summary.total_pnl:.2f}")
