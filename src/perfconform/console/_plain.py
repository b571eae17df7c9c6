"""perfconform.console._plain -- Plain-text backend.

Used for CI logs and whenever stdout is not a TTY.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from perfconform.domain.models import CheckOutcome

SUMMARY_HEADERS = ["Status", "Check", "Target", "Expected", "Observed", "Attempts"]


def outcome_rows(outcomes: list[CheckOutcome]) -> list[list[str]]:
    """Flatten outcomes into summary table rows."""
    rows: list[list[str]] = []
    for o in outcomes:
        status = "ok" if o.passed else "FAIL"
        observed = o.observed if o.passed else f"{o.observed} ({o.error_kind})"
        rows.append([status, o.name, o.target, o.expected[:40], observed[:60], str(o.attempts)])
    return rows


def render_columns(headers: list[str], rows: list[list[str]]) -> list[str]:
    """Left-align ``rows`` under ``headers``; short rows are padded."""
    width = len(headers)
    padded = [[*r[:width], *[""] * (width - len(r))] for r in rows]
    sizes = [max(len(cell) for cell in col) for col in zip(headers, *padded, strict=False)]

    def _line(cells: list[str]) -> str:
        return "  ".join(c.ljust(n) for c, n in zip(cells, sizes, strict=True)).rstrip()

    return [_line(headers), _line(["-" * n for n in sizes]), *(_line(r) for r in padded)]


class PlainBackend:
    """ConsoleProtocol implementation using only built-in print()."""

    def info(self, message: str) -> None:
        print(f"  {message}")

    def success(self, message: str) -> None:
        print(f"  OK    {message}")

    def warning(self, message: str) -> None:
        print(f"  WARN  {message}")

    def error(self, message: str) -> None:
        print(f"  ERROR {message}")

    def panel(self, content: str, *, title: str = "", style: str = "") -> None:
        print()
        if title:
            print(f"  {title}")
            print(f"  {'-' * len(title)}")
        for line in content.splitlines():
            print(f"    {line}")

    def table(self, headers: list[str], rows: list[list[str]], *, title: str = "") -> None:
        if title:
            print(f"\n  {title}:")
        if headers:
            for line in render_columns(headers, rows):
                print(f"  {line}")

    def kv(self, data: dict[str, str], *, title: str = "") -> None:
        if title:
            print(f"\n  {title}:")
        width = max((len(k) for k in data), default=0)
        for key, value in data.items():
            print(f"  {key.rjust(width)}: {value}")

    def check_started(self, current: int, total: int, name: str) -> None:
        print(f"\n  [{current}/{total}] {name}")

    def check_result(self, outcome: CheckOutcome) -> None:
        if outcome.passed:
            print(f"    ✓ {outcome.target}")
        else:
            print(f"    ✗ {outcome.target}: {outcome.detail[:120]}")

    def summary(self, outcomes: list[CheckOutcome], elapsed: float) -> None:
        self.table(SUMMARY_HEADERS, outcome_rows(outcomes), title="Results")
        failed = sum(1 for o in outcomes if not o.passed)
        word = "passed" if not failed else f"{failed} failed"
        print(f"\n━━ {len(outcomes)} checks {word} ── {elapsed:.1f}s ━━")
