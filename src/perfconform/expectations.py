"""Derive expected node and workload state from a performance intent.

Pure functions only: no probes, no sleeping. Every value a check compares
against is computed here.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from perfconform.domain.cpuset import CpuSet
from perfconform.domain.errors import InvariantViolation, MalformedInputError, MismatchFailure
from perfconform.domain.models import (
    NodeResources,
    PerformanceIntent,
    QoSClass,
    WorkloadExpectation,
)

logger = logging.getLogger(__name__)

_NON_ISOLCPUS_RE = re.compile(r"tuned\.non_isolcpus=\S+")
_QUANTITY_RE = re.compile(r"^(\d+)(m?)$")


def intent_from_profile(
    profile: Mapping[str, Any],
    tuning_targets: Mapping[str, Mapping[str, str]] | None = None,
) -> PerformanceIntent:
    """Build a PerformanceIntent from a raw performance profile object.

    ``spec.cpu.balanceIsolated`` defaults to True when absent.

    Raises:
        InvariantViolation: if reserved/isolated CPUs or hugepages are missing,
            or if the reserved and isolated sets overlap.
        MalformedInputError: if a CPU list cannot be parsed.
    """
    name = str(profile.get("metadata", {}).get("name", ""))
    spec: Mapping[str, Any] = profile.get("spec") or {}
    cpu: Mapping[str, Any] = spec.get("cpu") or {}

    if spec.get("hugePages") is None:
        msg = f"performance profile {name!r} does not declare hugePages"
        raise InvariantViolation(msg, target=name)

    reserved_expr = cpu.get("reserved")
    isolated_expr = cpu.get("isolated")
    if reserved_expr is None or isolated_expr is None:
        msg = f"performance profile {name!r} must declare both reserved and isolated CPUs"
        raise InvariantViolation(msg, target=name)

    balance = cpu.get("balanceIsolated")
    intent = PerformanceIntent(
        reserved_cpus=CpuSet.parse(str(reserved_expr)),
        isolated_cpus=CpuSet.parse(str(isolated_expr)),
        reserved_expr=str(reserved_expr),
        isolated_expr=str(isolated_expr),
        balance_isolated=True if balance is None else bool(balance),
        has_hugepages=True,
        tuning_targets=dict(tuning_targets or {}),
    )
    validate_partitioning(intent)
    logger.debug(
        "Loaded intent from %s: reserved=%s isolated=%s balanceIsolated=%s",
        name,
        intent.reserved_cpus,
        intent.isolated_cpus,
        intent.balance_isolated,
    )
    return intent


def validate_partitioning(intent: PerformanceIntent, total_cpus: int | None = None) -> None:
    """Reserved and isolated CPUs must be disjoint and fit the node."""
    if not intent.reserved_cpus.is_disjoint(intent.isolated_cpus):
        overlap = intent.reserved_cpus.intersection(intent.isolated_cpus)
        msg = f"reserved and isolated CPUs overlap on {overlap}"
        raise InvariantViolation(
            msg,
            expected="disjoint",
            observed=f"reserved={intent.reserved_expr} isolated={intent.isolated_expr}",
        )
    if total_cpus is not None:
        declared = len(intent.reserved_cpus) + len(intent.isolated_cpus)
        if declared > total_cpus:
            msg = f"{declared} CPUs declared but the node has only {total_cpus}"
            raise InvariantViolation(msg, expected=f"<= {total_cpus}", observed=str(declared))


def cpu_allowance(
    intent: PerformanceIntent,
    qos: QoSClass,
    online_cpus: CpuSet | None = None,
) -> CpuSet:
    """Return the CPUs a workload's primary process may run on.

    A guaranteed workload is pinned to isolated CPUs. Anything else floats over
    every online CPU when isolation is balanced, and is confined to the
    reserved CPUs when it is not.
    """
    if qos is QoSClass.GUARANTEED:
        return intent.isolated_cpus
    if intent.balance_isolated:
        if online_cpus is None:
            msg = "online CPUs are required to derive a balanced, non-guaranteed allowance"
            raise InvariantViolation(msg)
        return online_cpus
    return intent.reserved_cpus


def workload_expectation(
    intent: PerformanceIntent,
    qos: QoSClass,
    online_cpus: CpuSet | None = None,
) -> WorkloadExpectation:
    return WorkloadExpectation(qos=qos, allowed_cpus=cpu_allowance(intent, qos, online_cpus))


def parse_cpu_quantity(quantity: str) -> int:
    """Convert a Kubernetes CPU quantity (``"8"``, ``"7000m"``) to whole cores."""
    match = _QUANTITY_RE.match(quantity.strip())
    if match is None:
        msg = f"unsupported CPU quantity {quantity!r}"
        raise MalformedInputError(msg, observed=quantity)
    value, milli = int(match.group(1)), match.group(2)
    if not milli:
        return value
    if value % 1000:
        msg = f"CPU quantity {quantity!r} is not a whole number of cores"
        raise MalformedInputError(msg, observed=quantity)
    return value // 1000


def reserved_capacity_delta(node: NodeResources) -> int:
    """Cores withheld from pods: capacity minus allocatable."""
    return parse_cpu_quantity(node.capacity_cpu) - parse_cpu_quantity(node.allocatable_cpu)


def verify_reserved_capacity(node: NodeResources, intent: PerformanceIntent) -> int:
    """The capacity/allocatable delta must equal the reserved CPU count exactly."""
    delta = reserved_capacity_delta(node)
    if delta != len(intent.reserved_cpus):
        msg = (
            f"allocatable CPU on {node.node.name} should be less than capacity by "
            f"{len(intent.reserved_cpus)}, got {delta}"
        )
        raise InvariantViolation(
            msg,
            target=str(node.node),
            expected=str(len(intent.reserved_cpus)),
            observed=str(delta),
        )
    return delta


def kernel_affinity_mask(intent: PerformanceIntent) -> CpuSet:
    """CPUs that system-pinned kernel threads (rcu_sched) may run on."""
    return intent.reserved_cpus


def expected_isolated_sysfs(intent: PerformanceIntent) -> str:
    """Expected content of /sys/devices/system/cpu/isolated."""
    return "" if intent.balance_isolated else intent.isolated_expr


def kubelet_reserved_token(intent: PerformanceIntent) -> str:
    return f'"reservedSystemCPUs":"{intent.reserved_expr}"'


def normalize_mask(mask: str) -> str:
    """Drop whitespace, comma delimiters and leading zeros from a hex CPU mask."""
    return mask.strip().replace(",", "").lstrip("0")


def non_isolcpus_mask(cmdline: str) -> str:
    """Extract the ``tuned.non_isolcpus`` mask from a kernel command line."""
    match = _NON_ISOLCPUS_RE.search(cmdline)
    if match is None:
        msg = "tuned.non_isolcpus kernel argument is missing"
        raise MismatchFailure(msg, expected="tuned.non_isolcpus=<mask>", observed=cmdline.strip())
    return match.group(0).split("=", 1)[1]
