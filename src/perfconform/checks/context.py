"""Shared plumbing for conformance checks."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from perfconform.assertion.eventually import Clock, Poll, Sleep, eventually
from perfconform.config import ConformanceConfig
from perfconform.domain.errors import ProbeError
from perfconform.domain.models import (
    CheckOutcome,
    NodeRef,
    PerformanceIntent,
    PodRef,
    ProbeResult,
)
from perfconform.domain.protocols import (
    NodeInventory,
    RemoteProbe,
    TuningDaemons,
    WorkloadLifecycle,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckContext:
    """Everything a check needs: the run config, the declared intent and the ports."""

    config: ConformanceConfig
    intent: PerformanceIntent
    probe: RemoteProbe
    inventory: NodeInventory
    tuning: TuningDaemons
    workloads: WorkloadLifecycle
    clock: Clock = time.monotonic
    sleep: Sleep = asyncio.sleep

    async def run(self, target: NodeRef | PodRef, command: Sequence[str], *, check: str = "") -> ProbeResult:
        """Execute ``command`` on ``target`` and trim trailing whitespace.

        ``ProbeError`` is re-raised with the check name and target filled in.
        """
        logger.debug("executing %r on %s", " ".join(command), target)
        try:
            output = await self.probe.execute(target, command)
        except ProbeError as exc:
            exc.check = exc.check or check
            exc.target = exc.target or str(target)
            raise
        return ProbeResult(target=str(target), command=tuple(command), output=output.rstrip())

    async def eventually(
        self,
        poll: Poll,
        *,
        name: str,
        target: str,
        interval: float | None = None,
        timeout: float | None = None,
    ) -> CheckOutcome:
        """Poll with the configured interval and timeout unless overridden."""
        return await eventually(
            poll,
            interval=self.config.poll_interval if interval is None else interval,
            timeout=self.config.timeout if timeout is None else timeout,
            name=name,
            target=target,
            clock=self.clock,
            sleep=self.sleep,
        )



def passed(name: str, target: NodeRef | PodRef | str, *, expected: str = "", observed: str = "") -> CheckOutcome:
    return CheckOutcome(name=name, passed=True, target=str(target), expected=expected, observed=observed)
