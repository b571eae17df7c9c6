"""perfconform.console._rich -- Rich-based backend.

Coloured terminal output: failing rows in red, passing rows dimmed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from perfconform.console._plain import SUMMARY_HEADERS, outcome_rows

if TYPE_CHECKING:
    from perfconform.domain.models import CheckOutcome

_THEME = Theme(
    {
        "note": "blue",
        "pass": "bold green",
        "fail": "bold red",
        "warn": "bold yellow",
        "check": "bold cyan",
        "muted": "dim",
    }
)


class RichBackend:
    """ConsoleProtocol implementation backed by Rich."""

    def __init__(self, console: Console | None = None) -> None:
        if console is None:
            console = Console(theme=_THEME, highlight=False)
        else:
            console.push_theme(_THEME)
        self._con = console

    def info(self, message: str) -> None:
        self._con.print(Text(f"  {message}", style="note"))

    def success(self, message: str) -> None:
        self._con.print(Text(f"  ✓ {message}", style="pass"))

    def warning(self, message: str) -> None:
        self._con.print(Text(f"  ! {message}", style="warn"))

    def error(self, message: str) -> None:
        self._con.print(Text(f"  ✗ {message}", style="fail"))

    def panel(self, content: str, *, title: str = "", style: str = "") -> None:
        self._con.print(Panel.fit(Text(content), title=title or None, box=box.ROUNDED, border_style=style or "muted"))

    def table(self, headers: list[str], rows: list[list[str]], *, title: str = "") -> None:
        grid = Table(*headers, title=title or None, box=box.SIMPLE_HEAD, header_style="check")
        for row in rows:
            failing = bool(row) and row[0] == "FAIL"
            grid.add_row(*(Text(cell) for cell in row), style="fail" if failing else None)
        self._con.print(grid)

    def kv(self, data: dict[str, str], *, title: str = "") -> None:
        if title:
            self._con.print(Text(title, style="check"))
        grid = Table.grid(padding=(0, 2))
        grid.add_column(justify="right", style="muted")
        grid.add_column()
        for key, value in data.items():
            grid.add_row(key, Text(value))
        self._con.print(grid)

    def check_started(self, current: int, total: int, name: str) -> None:
        self._con.print(Text.assemble("\n  ", (f"[{current}/{total}]", "check"), f" {name}"))

    def check_result(self, outcome: CheckOutcome) -> None:
        if outcome.passed:
            line = Text.assemble("    ", ("✓", "pass"), f" {outcome.target} ", (outcome.observed[:60], "muted"))
        else:
            line = Text.assemble("    ", ("✗", "fail"), f" {outcome.target}: {outcome.detail[:120]}")
        self._con.print(line)

    def summary(self, outcomes: list[CheckOutcome], elapsed: float) -> None:
        self.table(SUMMARY_HEADERS, outcome_rows(outcomes), title="Results")
        failed = sum(1 for o in outcomes if not o.passed)
        if failed:
            title, style = f" ✗ {len(outcomes)} checks, {failed} failed ({elapsed:.1f}s) ", "red"
        else:
            title, style = f" ✓ {len(outcomes)} checks passed ({elapsed:.1f}s) ", "green"
        self._con.print()
        self._con.print(Rule(title, style=style))
