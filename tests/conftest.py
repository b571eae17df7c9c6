"""Shared pytest fixtures for perfconform tests.

Provides in-memory fakes for every port (probe, cluster, workloads), a
deterministic clock, and factories for intents and contexts. No test talks to
a real cluster or sleeps.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import pytest

from perfconform.checks.context import CheckContext
from perfconform.config import ConformanceConfig
from perfconform.console import PlainBackend
from perfconform.domain.cpuset import CpuSet
from perfconform.domain.errors import ProbeError
from perfconform.domain.models import NodeRef, NodeResources, PerformanceIntent, PodRef

# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is awaited."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# ---------------------------------------------------------------------------
# Port fakes
# ---------------------------------------------------------------------------


class FakeProbe:
    """RemoteProbe answering from a table keyed by command substring.

    A value may be a string (returned), an exception (raised), or a list of
    those consumed in order with the last one repeating.
    """

    def __init__(self, responses: Mapping[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[tuple[str, str]] = []

    async def execute(self, target: NodeRef | PodRef, command: Sequence[str]) -> str:
        line = " ".join(command)
        self.calls.append((str(target), line))
        for key, value in self.responses.items():
            if key in line:
                if isinstance(value, list):
                    value = value.pop(0) if len(value) > 1 else value[0]
                if isinstance(value, BaseException):
                    raise value
                return str(value)
        msg = f"command failed: {line}"
        raise ProbeError(msg, target=str(target))


class FakeCluster:
    """IntentSource, NodeInventory and TuningDaemons backed by plain data."""

    def __init__(
        self,
        *,
        profile: Mapping[str, Any] | None = None,
        nodes: list[NodeResources] | None = None,
        feature_set: str = "LatencySensitive",
        tuned_objects: set[str] | None = None,
    ) -> None:
        self.profile = profile
        self.nodes = nodes or []
        self.feature_set_value = feature_set
        self.tuned_objects = tuned_objects if tuned_objects is not None else set()
        self.selectors: list[Mapping[str, str]] = []

    async def get_profile(self, node_selector: Mapping[str, str]) -> Mapping[str, Any]:
        self.selectors.append(node_selector)
        if self.profile is None:
            msg = "no performance profile"
            raise ProbeError(msg)
        return self.profile

    async def nodes_by_role(self, role: str) -> list[NodeResources]:
        return list(self.nodes)

    async def feature_set(self, name: str) -> str:
        return self.feature_set_value

    async def tuned_pod(self, node: NodeRef) -> PodRef:
        return PodRef(namespace="openshift-cluster-node-tuning-operator", name=f"tuned-{node.name}", node_name=node.name)

    async def tuned_exists(self, name: str, namespace: str) -> bool:
        return f"{namespace}/{name}" in self.tuned_objects


class FakeWorkloads:
    """WorkloadLifecycle that becomes ready after ``ready_after`` polls.

    A deleted pod keeps existing for ``gone_after`` polls of ``exists`` (forever
    with ``never_gone``). ``delete_error`` is raised by ``delete`` after the
    request is recorded.
    """

    def __init__(
        self,
        *,
        ready_after: int = 0,
        never_ready: bool = False,
        gone_after: int = 0,
        never_gone: bool = False,
        delete_error: Exception | None = None,
    ) -> None:
        self.ready_after = ready_after
        self.never_ready = never_ready
        self.gone_after = gone_after
        self.never_gone = never_gone
        self.delete_error = delete_error
        self.exists_polls = 0
        self.created: list[Mapping[str, Any]] = []
        self.deleted: list[PodRef] = []
        self._polls = 0

    async def create(self, manifest: Mapping[str, Any]) -> PodRef:
        self.created.append(manifest)
        node = next(iter(manifest["spec"]["nodeSelector"].values()))
        return PodRef(namespace=manifest["metadata"]["namespace"], name=f"test-cpu-{len(self.created)}", node_name=node)

    async def delete(self, pod: PodRef) -> None:
        self.deleted.append(pod)
        if self.delete_error is not None:
            raise self.delete_error

    async def is_ready(self, pod: PodRef) -> bool:
        self._polls += 1
        return not self.never_ready and self._polls > self.ready_after

    async def exists(self, pod: PodRef) -> bool:
        if pod not in self.deleted:
            return True
        self.exists_polls += 1
        return self.never_gone or self.exists_polls <= self.gone_after


class RecordingConsole(PlainBackend):
    """PlainBackend that also keeps the outcomes it was shown."""

    def __init__(self) -> None:
        self.results: list[Any] = []
        self.summaries: list[list[Any]] = []

    def check_result(self, outcome: Any) -> None:
        self.results.append(outcome)

    def summary(self, outcomes: list[Any], elapsed: float) -> None:
        self.summaries.append(list(outcomes))


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_profile(
    *,
    reserved: str | None = "0-1",
    isolated: str | None = "2-7",
    balance_isolated: bool | None = None,
    hugepages: bool = True,
) -> dict[str, Any]:
    cpu: dict[str, Any] = {}
    if reserved is not None:
        cpu["reserved"] = reserved
    if isolated is not None:
        cpu["isolated"] = isolated
    if balance_isolated is not None:
        cpu["balanceIsolated"] = balance_isolated
    spec: dict[str, Any] = {
        "cpu": cpu,
        "nodeSelector": {"node-role.kubernetes.io/worker-rt": ""},
    }
    if hugepages:
        spec["hugePages"] = {"defaultHugepagesSize": "1G", "pages": [{"size": "1G", "count": 1}]}
    return {"metadata": {"name": "ci"}, "spec": spec}


def make_intent(
    reserved: str = "0-1",
    isolated: str = "2-7",
    *,
    balance_isolated: bool = True,
    tuning_targets: Mapping[str, Mapping[str, str]] | None = None,
) -> PerformanceIntent:
    return PerformanceIntent(
        reserved_cpus=CpuSet.parse(reserved),
        isolated_cpus=CpuSet.parse(isolated),
        reserved_expr=reserved,
        isolated_expr=isolated,
        balance_isolated=balance_isolated,
        has_hugepages=True,
        tuning_targets=dict(tuning_targets or {}),
    )


def make_node(name: str = "worker-0", capacity: str = "8", allocatable: str = "6") -> NodeResources:
    return NodeResources(node=NodeRef(name), capacity_cpu=capacity, allocatable_cpu=allocatable)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> ConformanceConfig:
    return ConformanceConfig(poll_interval=1.0, timeout=10.0, workload_timeout=5.0)


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster(profile=make_profile(), nodes=[make_node()])


@pytest.fixture
def workloads() -> FakeWorkloads:
    return FakeWorkloads()


@pytest.fixture
def node() -> NodeRef:
    return NodeRef("worker-0")


@pytest.fixture
def make_ctx(
    config: ConformanceConfig,
    probe: FakeProbe,
    cluster: FakeCluster,
    workloads: FakeWorkloads,
    clock: FakeClock,
) -> Any:
    """Factory for CheckContext wired to the shared fakes."""

    def _factory(intent: PerformanceIntent | None = None, **overrides: Any) -> CheckContext:
        fields: dict[str, Any] = {
            "config": config,
            "intent": intent or make_intent(tuning_targets=config.tuning_targets),
            "probe": probe,
            "inventory": cluster,
            "tuning": cluster,
            "workloads": workloads,
            "clock": clock,
            "sleep": clock.sleep,
        }
        fields.update(overrides)
        return CheckContext(**fields)

    return _factory
