"""perfconform.console._protocol -- ConsoleProtocol definition.

Structural interface shared by the plain and Rich backends; imports
nothing beyond the standard library.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from perfconform.domain.models import CheckOutcome


class ConsoleProtocol(Protocol):
    """perfconform terminal output protocol.

    **General messages**::

        console.info("Found 3 worker-rt nodes")
        console.success("All checks passed")
        console.warning("No sysctl targets for network-latency")
        console.error("Profile not found")

    **Structured panels**::

        console.panel("profile: ci", title="perfconform")
        console.table(["Check", "Result"], [["reserved-capacity", "ok"]])
        console.kv({"Reserved": "0-1", "Isolated": "2-7"})

    **Run lifecycle** -- used by ``perfconform.scenario``::

        console.check_started(1, 12, "reserved-capacity")
        console.check_result(outcome)
        console.summary(outcomes, elapsed)
    """

    # -- General messages ---------------------------------------------------

    def info(self, message: str) -> None:
        """Informational message."""
        ...

    def success(self, message: str) -> None:
        """Success / positive-outcome message."""
        ...

    def warning(self, message: str) -> None:
        """Warning message."""
        ...

    def error(self, message: str) -> None:
        """Error message."""
        ...

    # -- Structured panels --------------------------------------------------

    def panel(self, content: str, *, title: str = "", style: str = "") -> None:
        """Display *content* in a bordered panel."""
        ...

    def table(self, headers: list[str], rows: list[list[str]], *, title: str = "") -> None:
        """Display a table with *headers* and *rows*."""
        ...

    def kv(self, data: dict[str, str], *, title: str = "") -> None:
        """Display key-value pairs."""
        ...

    # -- Run lifecycle ------------------------------------------------------

    def check_started(self, current: int, total: int, name: str) -> None:
        """Display a ``[current/total] name`` step indicator."""
        ...

    def check_result(self, outcome: CheckOutcome) -> None:
        """Display the outcome of one check on one target."""
        ...

    def summary(self, outcomes: list[CheckOutcome], elapsed: float) -> None:
        """Display the end-of-run result table and totals."""
        ...
