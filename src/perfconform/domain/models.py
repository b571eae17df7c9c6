"""Core data types for perfconform.

All types are frozen dataclasses; nothing here talks to a cluster.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from perfconform.domain.cpuset import CpuSet


class QoSClass(Enum):
    """Kubernetes QoS class of a workload, as far as CPU pinning cares."""

    GUARANTEED = "guaranteed"
    BURSTABLE = "burstable"


class TuningCategory(Enum):
    """Tuned profile families shipped with a performance profile."""

    REAL_TIME_KERNEL = "real-time-kernel"
    NETWORK_LATENCY = "network-latency"


@dataclass(frozen=True)
class NodeRef:
    """A cluster node addressed by name."""

    name: str

    def __str__(self) -> str:
        return f"node/{self.name}"


@dataclass(frozen=True)
class PodRef:
    """A pod addressed by namespace and name."""

    namespace: str
    name: str
    node_name: str = ""

    def __str__(self) -> str:
        return f"pod/{self.namespace}/{self.name}"


@dataclass(frozen=True)
class NodeResources:
    """Raw CPU capacity and allocatable quantities reported by a node."""

    node: NodeRef
    capacity_cpu: str
    allocatable_cpu: str


@dataclass(frozen=True)
class PerformanceIntent:
    """Declared CPU partitioning and tuning targets for a node role."""

    reserved_cpus: CpuSet
    isolated_cpus: CpuSet
    reserved_expr: str
    isolated_expr: str
    balance_isolated: bool = True
    has_hugepages: bool = False
    tuning_targets: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    def sysctls_for(self, category: TuningCategory) -> Mapping[str, str]:
        """Return the expected sysctl values for a tuning category."""
        return self.tuning_targets.get(category.value, {})


@dataclass(frozen=True)
class WorkloadExpectation:
    """The CPUs a workload of a given QoS class may be scheduled on."""

    qos: QoSClass
    allowed_cpus: CpuSet


@dataclass(frozen=True)
class ProbeResult:
    """Trimmed output of one remote command."""

    target: str
    command: tuple[str, ...]
    output: str


@dataclass(frozen=True)
class ComparisonResult:
    """One probe-and-compare step."""

    matched: bool
    expected: str
    observed: str
    detail: str = ""


@dataclass(frozen=True)
class CheckOutcome:
    """Final pass/fail of one check against one target."""

    name: str
    passed: bool
    target: str = ""
    expected: str = ""
    observed: str = ""
    detail: str = ""
    attempts: int = 1
    elapsed_seconds: float = 0.0
    error_kind: str = ""
