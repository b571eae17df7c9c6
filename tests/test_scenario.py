"""Tests for the check catalog and scenario runner."""

from typing import Any

import pytest
from conftest import (
    FakeClock,
    FakeCluster,
    FakeProbe,
    FakeWorkloads,
    RecordingConsole,
    make_node,
    make_profile,
)

from perfconform.config import ConformanceConfig
from perfconform.domain.errors import MismatchFailure, TimeoutFailure
from perfconform.domain.models import CheckOutcome
from perfconform.scenario import CatalogEntry, Scenario, default_catalog, failed_outcome, select_checks


def healthy_probe() -> FakeProbe:
    """Answers for a node that conforms to the default test profile."""
    return FakeProbe(
        {
            "/sys/devices/system/cpu/isolated": "",
            "kubelet.conf": '{"reservedSystemCPUs":"0-1"}',
            "rcu_sched": "pid 12's current affinity list: 0,1",
            "lscpu": "0-7",
            "ps -o psr": "3",
            "/proc/cmdline": "tuned.non_isolcpus=00000003",
            "cpumask": "00000003",
            "ls /rootfs/usr/local/bin/pre-boot-tuning.sh": "",
            "find": "/rootfs/boot/ostree/rhcos/initramfs.img",
            "lsinitrd": "'/etc/systemd/system.conf /etc/systemd/system.conf.d/setAffinity.conf'",
            "active_profile": "openshift-node-real-time-kernel-ci",
            "hung_task_timeout_secs": "600",
            "nmi_watchdog": "0",
            "sched_rt_runtime_us": "-1",
            "vm.stat_interval": "10",
            "timer_migration": "0",
            "tcp_fastopen": "3",
            "sched_min_granularity_ns": "10000000",
            "vm.dirty_ratio": "10",
            "vm.dirty_background_ratio": "3",
            "vm.swappiness": "10",
            "sched_migration_cost_ns": "5000000",
        }
    )


def healthy_cluster(nodes: int = 1) -> FakeCluster:
    return FakeCluster(
        profile=make_profile(),
        nodes=[make_node(f"worker-{i}") for i in range(nodes)],
        tuned_objects={
            "openshift-cluster-node-tuning-operator/openshift-node-real-time-kernel-ci",
            "openshift-cluster-node-tuning-operator/openshift-node-network-latency",
        },
    )


@pytest.fixture
def console() -> RecordingConsole:
    return RecordingConsole()


@pytest.fixture
def build(config: ConformanceConfig, clock: FakeClock, console: RecordingConsole) -> Any:
    def _factory(*, probe: FakeProbe | None = None, cluster: FakeCluster | None = None) -> Scenario:
        cluster = cluster or healthy_cluster()
        return Scenario(
            config,
            probe=probe or healthy_probe(),
            intents=cluster,
            inventory=cluster,
            tuning_daemons=cluster,
            workloads=FakeWorkloads(),
            console=console,
            clock=clock,
            sleep=clock.sleep,
        )

    return _factory


class TestCatalog:
    def test_names_are_unique(self, config: ConformanceConfig) -> None:
        names = [c.name for c in default_catalog(config)]
        assert len(names) == len(set(names))

    def test_groups(self, config: ConformanceConfig) -> None:
        assert {c.group for c in default_catalog(config)} == {"cpu", "tuning", "artifacts"}

    def test_select_by_name_and_group(self, config: ConformanceConfig) -> None:
        catalog = default_catalog(config)
        picked = select_checks(catalog, ["artifacts", "reserved-capacity"])
        assert [c.name for c in picked] == ["reserved-capacity", "file-present[preboot]", "initramfs-affinity"]

    def test_select_nothing_means_everything(self, config: ConformanceConfig) -> None:
        catalog = default_catalog(config)
        assert select_checks(catalog, []) == catalog

    def test_select_unknown(self, config: ConformanceConfig) -> None:
        with pytest.raises(ValueError, match="bogus"):
            select_checks(default_catalog(config), ["bogus"])


class TestFailedOutcome:
    def test_mismatch(self) -> None:
        exc = MismatchFailure("bad", target="node/a", expected="1", observed="2")
        outcome = failed_outcome("x", "node/b", exc)
        assert not outcome.passed
        assert outcome.target == "node/a"
        assert outcome.error_kind == "MismatchFailure"

    def test_timeout_keeps_polling_statistics(self) -> None:
        polled = CheckOutcome(name="x", passed=False, target="node/a", attempts=7, elapsed_seconds=6.0)
        outcome = failed_outcome("x", "node/a", TimeoutFailure("late", outcome=polled))
        assert outcome.attempts == 7
        assert outcome.elapsed_seconds == 6.0
        assert outcome.error_kind == "TimeoutFailure"


class TestScenarioRun:
    async def test_healthy_node_passes_everything(self, build: Any, console: RecordingConsole) -> None:
        outcomes = await build().run()
        failed = [o for o in outcomes if not o.passed]
        assert failed == []
        assert len(outcomes) == 15
        assert console.summaries == [outcomes]

    async def test_profile_selected_by_role(self, build: Any) -> None:
        cluster = healthy_cluster()
        await build(cluster=cluster).run([])
        assert cluster.selectors == [{"node-role.kubernetes.io/worker-rt": ""}]

    async def test_per_node_checks_run_on_every_node(self, build: Any, config: ConformanceConfig) -> None:
        checks = select_checks(default_catalog(config), ["kernel-scheduler-affinity", "feature-set"])
        outcomes = await build(cluster=healthy_cluster(nodes=3)).run(checks)
        assert [o.target for o in outcomes] == ["node/worker-0", "node/worker-1", "node/worker-2", "cluster"]

    async def test_failure_is_reported_not_raised(self, build: Any, config: ConformanceConfig) -> None:
        probe = healthy_probe()
        probe.responses["rcu_sched"] = "pid 12's current affinity list: 0-7"
        checks = select_checks(default_catalog(config), ["cpu"])
        outcomes = await build(probe=probe).run(checks)
        bad = [o for o in outcomes if not o.passed]
        assert [o.name for o in bad] == ["kernel-scheduler-affinity"]
        assert bad[0].error_kind == "MismatchFailure"
        assert bad[0].observed == "0-7"

    async def test_fail_fast_stops(self, build: Any, config: ConformanceConfig) -> None:
        cluster = healthy_cluster()
        cluster.nodes = [make_node(capacity="8", allocatable="8")]
        outcomes = await build(cluster=cluster).run(default_catalog(config), fail_fast=True)
        assert len(outcomes) == 1
        assert outcomes[0].error_kind == "InvariantViolation"

    async def test_parallel_preserves_node_order(self, build: Any, config: ConformanceConfig) -> None:
        checks = select_checks(default_catalog(config), ["workqueue-mask"])
        outcomes = await build(cluster=healthy_cluster(nodes=4)).run(checks, parallel=True)
        assert [o.target for o in outcomes] == [f"node/worker-{i}" for i in range(4)]
        assert all(o.passed for o in outcomes)

    async def test_missing_profile(self, build: Any) -> None:
        cluster = healthy_cluster()
        cluster.profile = None
        outcomes = await build(cluster=cluster).run()
        assert len(outcomes) == 1
        assert outcomes[0].name == "performance-profile"
        assert outcomes[0].error_kind == "ProbeError"

    async def test_no_nodes(self, build: Any) -> None:
        cluster = healthy_cluster()
        cluster.nodes = []
        outcomes = await build(cluster=cluster).run()
        assert outcomes[0].error_kind == "InvariantViolation"

    async def test_outcome_renamed_to_catalog_entry(self, build: Any) -> None:
        async def _check(ctx: Any, node: Any) -> CheckOutcome:
            return CheckOutcome(name="inner", passed=True, target=str(node.node))

        outcomes = await build().run([CatalogEntry("custom", "cpu", _check)])
        assert outcomes[0].name == "custom"

    async def test_failing_cluster_check_reports_cluster_target(self, build: Any, config: ConformanceConfig) -> None:
        cluster = healthy_cluster(nodes=2)
        cluster.feature_set_value = "Default"
        checks = select_checks(default_catalog(config), ["feature-set"])
        outcomes = await build(cluster=cluster).run(checks)
        assert [(o.target, o.passed) for o in outcomes] == [("cluster", False)]

    async def test_intent_larger_than_node_is_rejected(self, build: Any, config: ConformanceConfig) -> None:
        cluster = healthy_cluster(nodes=2)
        cluster.nodes[1] = make_node("worker-1", capacity="4", allocatable="2")
        outcomes = await build(cluster=cluster).run(select_checks(default_catalog(config), ["reserved-capacity"]))
        assert len(outcomes) == 1
        assert outcomes[0].name == "performance-profile"
        assert outcomes[0].error_kind == "InvariantViolation"
        assert outcomes[0].target == "node/worker-1"
        assert outcomes[0].observed == "8"
