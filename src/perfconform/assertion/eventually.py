"""Bounded-retry polling for state that converges asynchronously.

``await_condition`` is the only place in perfconform that retries. A poll
function performs one probe and one comparison; it must not change the target.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from perfconform.domain.errors import MismatchFailure, ProbeError, TimeoutFailure
from perfconform.domain.models import CheckOutcome, ComparisonResult

logger = logging.getLogger(__name__)

Poll = Callable[[], Awaitable[ComparisonResult]]
Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


async def await_condition(
    poll: Poll,
    *,
    interval: float,
    timeout: float,
    name: str = "",
    target: str = "",
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> CheckOutcome:
    """Call ``poll`` until it matches or ``timeout`` seconds have elapsed.

    Polls start no more often than every ``interval`` seconds. ``ProbeError``
    and ``MismatchFailure`` raised by ``poll`` count as "not converged yet";
    any other exception propagates immediately. A single call is cancelled
    once it outlives the time left before the deadline (at least ``interval``)
    and also counts as not converged.

    Returns:
        A passing CheckOutcome on the first match, otherwise a failing one
        with ``error_kind="TimeoutFailure"`` and the last observed mismatch.
    """
    if interval <= 0:
        msg = f"poll interval must be positive, got {interval}"
        raise ValueError(msg)

    start = clock()
    attempts = 0
    last = ComparisonResult(matched=False, expected="", observed="")

    while True:
        attempts += 1
        started_at = clock()
        budget = max(timeout - (started_at - start), interval)
        try:
            last = await asyncio.wait_for(poll(), budget)
        except TimeoutError:
            last = ComparisonResult(
                matched=False,
                expected=last.expected,
                observed=last.observed,
                detail=f"poll did not finish within {budget:.1f}s",
            )
        except (ProbeError, MismatchFailure) as exc:
            last = ComparisonResult(
                matched=False,
                expected=exc.expected,
                observed=exc.observed,
                detail=f"{exc.kind}: {exc}",
            )

        elapsed = clock() - start
        if last.matched:
            logger.debug("%s converged on %s after %d attempt(s)", name, target, attempts)
            return CheckOutcome(
                name=name,
                passed=True,
                target=target,
                expected=last.expected,
                observed=last.observed,
                detail=last.detail,
                attempts=attempts,
                elapsed_seconds=elapsed,
            )

        if elapsed >= timeout:
            logger.warning(
                "%s did not converge on %s within %.0fs (%d attempts): expected %r, observed %r",
                name,
                target,
                timeout,
                attempts,
                last.expected,
                last.observed,
            )
            return CheckOutcome(
                name=name,
                passed=False,
                target=target,
                expected=last.expected,
                observed=last.observed,
                detail=last.detail,
                attempts=attempts,
                elapsed_seconds=elapsed,
                error_kind=TimeoutFailure.__name__,
            )

        await sleep(max(0.0, started_at + interval - clock()))


async def eventually(
    poll: Poll,
    *,
    interval: float,
    timeout: float,
    name: str = "",
    target: str = "",
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> CheckOutcome:
    """Like ``await_condition`` but raise ``TimeoutFailure`` instead of returning a failure."""
    outcome = await await_condition(
        poll,
        interval=interval,
        timeout=timeout,
        name=name,
        target=target,
        clock=clock,
        sleep=sleep,
    )
    if not outcome.passed:
        msg = (
            f"{name or 'condition'} not met on {target or 'target'} after "
            f"{outcome.elapsed_seconds:.0f}s ({outcome.attempts} attempts)"
        )
        if outcome.detail:
            msg = f"{msg}: {outcome.detail}"
        raise TimeoutFailure(msg, outcome=outcome)
    return outcome
