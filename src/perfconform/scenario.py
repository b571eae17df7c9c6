"""Run a catalog of conformance checks against every node of a role."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, replace

from perfconform.assertion.eventually import Clock, Sleep
from perfconform.checks import artifacts, cpu, tuning
from perfconform.checks.context import CheckContext
from perfconform.config import ConformanceConfig
from perfconform.console import ConsoleProtocol
from perfconform.domain.errors import ConformanceError, InvariantViolation, TimeoutFailure
from perfconform.domain.models import CheckOutcome, NodeResources, QoSClass, TuningCategory
from perfconform.domain.protocols import (
    IntentSource,
    NodeInventory,
    RemoteProbe,
    TuningDaemons,
    WorkloadLifecycle,
)
from perfconform.expectations import intent_from_profile, parse_cpu_quantity, validate_partitioning

logger = logging.getLogger(__name__)

CheckFn = Callable[[CheckContext, NodeResources], Awaitable[CheckOutcome]]


@dataclass(frozen=True)
class CatalogEntry:
    """A named entry of the check catalog.

    ``per_node`` checks run once for every target node; the others run once
    per scenario against cluster-level objects.
    """

    name: str
    group: str
    run: CheckFn
    per_node: bool = True
    description: str = ""


def _on_node(fn: Callable[..., Awaitable[CheckOutcome]], *args: object) -> CheckFn:
    async def _run(ctx: CheckContext, node: NodeResources) -> CheckOutcome:
        return await fn(ctx, node.node, *args)

    return _run


def _on_cluster(fn: Callable[..., Awaitable[CheckOutcome]], *args: object) -> CheckFn:
    async def _run(ctx: CheckContext, node: NodeResources) -> CheckOutcome:
        return await fn(ctx, *args)

    return _run


def default_catalog(config: ConformanceConfig) -> list[CatalogEntry]:
    """All checks, in the order they are run."""
    rt = TuningCategory.REAL_TIME_KERNEL
    net = TuningCategory.NETWORK_LATENCY
    return [
        CatalogEntry("reserved-capacity", "cpu", cpu.reserved_capacity,
                  description="capacity - allocatable equals the reserved CPU count"),
        CatalogEntry("isolated-cpus-sysfs", "cpu", _on_node(cpu.isolated_cpus_sysfs),
                  description="kernel isolated CPU list matches the isolation mode"),
        CatalogEntry("kubelet-reserved-cpus", "cpu", _on_node(cpu.kubelet_reserved_cpus),
                  description="kubelet config reserves the declared CPUs"),
        CatalogEntry("kernel-scheduler-affinity", "cpu", _on_node(cpu.kernel_scheduler_affinity),
                  description="rcu_sched is confined to reserved CPUs"),
        CatalogEntry("workload-cpu-affinity[burstable]", "cpu",
                  _on_node(cpu.workload_cpu_affinity, QoSClass.BURSTABLE),
                  description="non-guaranteed pod runs on its allowed CPUs"),
        CatalogEntry("workload-cpu-affinity[guaranteed]", "cpu",
                  _on_node(cpu.workload_cpu_affinity, QoSClass.GUARANTEED),
                  description="guaranteed pod runs on isolated CPUs"),
        CatalogEntry("workqueue-mask", "tuning", _on_node(tuning.workqueue_mask),
                  description="workqueue cpumasks follow tuned.non_isolcpus"),
        CatalogEntry("file-present[preboot]", "artifacts",
                  _on_node(artifacts.file_present, config.preboot_script),
                  description=f"{config.preboot_script} exists on the node"),
        CatalogEntry("initramfs-affinity", "artifacts", _on_node(artifacts.initramfs_affinity),
                  description="systemd setAffinity.conf is in the initramfs"),
        CatalogEntry("feature-set", "tuning", _on_cluster(tuning.latency_sensitive_feature_set), per_node=False,
                  description="FeatureGate selects LatencySensitive"),
        CatalogEntry(f"tuned-object[{rt.value}]", "tuning", _on_cluster(tuning.tuned_profile_exists, rt),
                  per_node=False, description="real-time kernel Tuned object exists"),
        CatalogEntry("active-tuned-profile", "tuning", _on_node(tuning.active_tuned_profile),
                  description="tuned daemon reports the rendered profile as active"),
        CatalogEntry(f"sysctl[{rt.value}]", "tuning", _on_node(tuning.sysctl_values, rt),
                  description="real-time kernel sysctl values"),
        CatalogEntry(f"tuned-object[{net.value}]", "tuning", _on_cluster(tuning.tuned_profile_exists, net),
                  per_node=False, description="network latency Tuned object exists"),
        CatalogEntry(f"sysctl[{net.value}]", "tuning", _on_node(tuning.sysctl_values, net),
                  description="network latency sysctl values"),
    ]


def select_checks(catalog: Sequence[CatalogEntry], names: Iterable[str]) -> list[CatalogEntry]:
    """Keep catalog entries whose name or group is listed, preserving order."""
    wanted = set(names)
    if not wanted:
        return list(catalog)
    known = {c.name for c in catalog} | {c.group for c in catalog}
    unknown = sorted(wanted - known)
    if unknown:
        msg = f"unknown checks: {', '.join(unknown)}"
        raise ValueError(msg)
    return [c for c in catalog if c.name in wanted or c.group in wanted]


def failed_outcome(name: str, target: str, exc: ConformanceError) -> CheckOutcome:
    """Turn a taxonomy error into a failed outcome, keeping polling statistics."""
    if isinstance(exc, TimeoutFailure) and exc.outcome is not None:
        polled = exc.outcome
        return CheckOutcome(
            name=name,
            passed=False,
            target=target,
            expected=polled.expected,
            observed=polled.observed,
            detail=str(exc),
            attempts=polled.attempts,
            elapsed_seconds=polled.elapsed_seconds,
            error_kind=exc.kind,
        )
    return CheckOutcome(
        name=name,
        passed=False,
        target=exc.target or target,
        expected=exc.expected,
        observed=exc.observed,
        detail=str(exc),
        error_kind=exc.kind,
    )


class Scenario:
    """Loads the declared intent once and runs checks against the role's nodes."""

    def __init__(
        self,
        config: ConformanceConfig,
        *,
        probe: RemoteProbe,
        intents: IntentSource,
        inventory: NodeInventory,
        tuning_daemons: TuningDaemons,
        workloads: WorkloadLifecycle,
        console: ConsoleProtocol,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._probe = probe
        self._intents = intents
        self._inventory = inventory
        self._tuning = tuning_daemons
        self._workloads = workloads
        self._console = console
        self._clock = clock
        self._sleep = sleep

    async def prepare(self) -> tuple[CheckContext, list[NodeResources]]:
        """Resolve target nodes and derive the intent from their profile."""
        nodes = await self._inventory.nodes_by_role(self._config.role)
        if not nodes:
            msg = f"no nodes with role {self._config.role}"
            raise InvariantViolation(msg, expected=f"at least one {self._config.role} node", observed="none")

        profile = await self._intents.get_profile(self._config.node_selector)
        intent = intent_from_profile(profile, self._config.tuning_targets)
        for n in nodes:
            try:
                validate_partitioning(intent, parse_cpu_quantity(n.capacity_cpu))
            except InvariantViolation as exc:
                exc.target = str(n.node)
                raise
        ctx = CheckContext(
            config=self._config,
            intent=intent,
            probe=self._probe,
            inventory=self._inventory,
            tuning=self._tuning,
            workloads=self._workloads,
            clock=self._clock,
            sleep=self._sleep,
        )
        self._console.kv(
            {
                "Profile": self._config.profile_name,
                "Nodes": ", ".join(n.node.name for n in nodes),
                "Reserved": intent.reserved_expr,
                "Isolated": intent.isolated_expr,
                "Balance isolated": str(intent.balance_isolated).lower(),
            },
            title="Performance intent",
        )
        return ctx, nodes

    async def run(
        self,
        checks: Sequence[CatalogEntry] | None = None,
        *,
        fail_fast: bool = False,
        parallel: bool = False,
    ) -> list[CheckOutcome]:
        """Run ``checks`` (the full catalog by default) in order.

        Failures never raise: each becomes a failed CheckOutcome. With
        ``fail_fast`` the run stops after the first check that failed on any
        node. With ``parallel`` the nodes of one check are probed concurrently.
        """
        start = self._clock()
        try:
            ctx, nodes = await self.prepare()
        except ConformanceError as exc:
            logger.error("Cannot load performance intent: %s", exc)
            self._console.error(f"Cannot load performance intent: {exc}")
            outcomes = [failed_outcome("performance-profile", self._config.role, exc)]
            self._console.summary(outcomes, self._clock() - start)
            return outcomes

        entries = list(checks) if checks is not None else default_catalog(self._config)
        outcomes: list[CheckOutcome] = []
        for index, entry in enumerate(entries, start=1):
            self._console.check_started(index, len(entries), entry.name)
            targets = nodes if entry.per_node else nodes[:1]
            if parallel and len(targets) > 1:
                results = list(await asyncio.gather(*(self._run_one(entry, ctx, n) for n in targets)))
            else:
                results = [await self._run_one(entry, ctx, n) for n in targets]
            outcomes.extend(results)

            if fail_fast and not all(r.passed for r in results):
                logger.warning("Stopping after failed check %s", entry.name)
                self._console.warning(f"Stopping after failed check {entry.name}")
                break

        self._console.summary(outcomes, self._clock() - start)
        return outcomes

    async def _run_one(self, entry: CatalogEntry, ctx: CheckContext, node: NodeResources) -> CheckOutcome:
        target = str(node.node) if entry.per_node else "cluster"
        logger.info("Running %s on %s", entry.name, target)
        started = self._clock()
        try:
            outcome = await entry.run(ctx, node)
        except ConformanceError as exc:
            logger.error("%s failed on %s: %s", entry.name, target, exc)
            outcome = failed_outcome(entry.name, target, exc)
            if not entry.per_node:
                outcome = replace(outcome, target=target)
            if not isinstance(exc, TimeoutFailure):
                outcome = _with_elapsed(outcome, self._clock() - started)
        else:
            outcome = replace(outcome, name=entry.name)
            if not entry.per_node:
                outcome = replace(outcome, target=target)
            if outcome.attempts == 1 and not outcome.elapsed_seconds:
                outcome = _with_elapsed(outcome, self._clock() - started)
        self._console.check_result(outcome)
        return outcome


def _with_elapsed(outcome: CheckOutcome, elapsed: float) -> CheckOutcome:
    return replace(outcome, elapsed_seconds=elapsed)

