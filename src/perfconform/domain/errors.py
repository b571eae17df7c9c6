"""Failure taxonomy for conformance checks.

Every failure a check can report is one of the classes below. The scenario
runner turns them into failed ``CheckOutcome`` values; the assertion engine
absorbs ``ProbeError`` and ``MismatchFailure`` while polling.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from perfconform.domain.models import CheckOutcome


class ConformanceError(Exception):
    """Base class carrying the diagnostic context of a failed check."""

    def __init__(
        self,
        message: str,
        *,
        check: str = "",
        target: str = "",
        expected: str = "",
        observed: str = "",
    ) -> None:
        super().__init__(message)
        self.check = check
        self.target = target
        self.expected = expected
        self.observed = observed

    @property
    def kind(self) -> str:
        return type(self).__name__


class MalformedInputError(ConformanceError):
    """An input (CPU range expression, mask, quantity) could not be parsed."""


class ProbeError(ConformanceError):
    """A remote command could not be executed or exited non-zero."""


class MismatchFailure(ConformanceError):
    """A probe succeeded but the observed value differs from the expected one."""


class InvariantViolation(ConformanceError):
    """A structural precondition does not hold; retrying cannot fix it."""


class TimeoutFailure(ConformanceError):
    """The assertion engine ran out of time without observing a match."""

    def __init__(self, message: str, *, outcome: CheckOutcome | None = None, **context: str) -> None:
        if outcome is not None:
            context.setdefault("check", outcome.name)
            context.setdefault("target", outcome.target)
            context.setdefault("expected", outcome.expected)
            context.setdefault("observed", outcome.observed)
        super().__init__(message, **context)
        self.outcome = outcome
