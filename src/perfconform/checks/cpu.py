"""CPU partitioning checks: reservation, isolation, and process affinity."""

from __future__ import annotations

import logging
import re

from perfconform.checks.context import CheckContext, passed
from perfconform.domain.cpuset import CpuSet
from perfconform.domain.errors import MalformedInputError, MismatchFailure, ProbeError
from perfconform.domain.models import (
    CheckOutcome,
    ComparisonResult,
    NodeRef,
    NodeResources,
    PerformanceIntent,
    QoSClass,
)
from perfconform.expectations import (
    cpu_allowance,
    expected_isolated_sysfs,
    kernel_affinity_mask,
    kubelet_reserved_token,
    verify_reserved_capacity,
)
from perfconform.workloads import STRESS_PROCESS, disposable_workload, stress_pod_manifest

logger = logging.getLogger(__name__)

ISOLATED_SYSFS = "/sys/devices/system/cpu/isolated"
KUBELET_CONFIG = "/rootfs/etc/kubernetes/kubelet.conf"

_AFFINITY_RE = re.compile(r"current affinity list:\s*(\S+)")


async def reserved_capacity(ctx: CheckContext, node: NodeResources) -> CheckOutcome:
    """Allocatable CPU must be lower than capacity by exactly the reserved count."""
    delta = verify_reserved_capacity(node, ctx.intent)
    return passed("reserved-capacity", node.node, expected=str(len(ctx.intent.reserved_cpus)), observed=str(delta))


def compare_isolated_sysfs(intent: PerformanceIntent, observed: str) -> ComparisonResult:
    """Balanced isolation leaves the sysfs file empty, strict isolation lists the CPUs verbatim."""
    expected = expected_isolated_sysfs(intent)
    return ComparisonResult(matched=observed == expected, expected=expected, observed=observed)


async def isolated_cpus_sysfs(ctx: CheckContext, node: NodeRef) -> CheckOutcome:
    name = "isolated-cpus-sysfs"
    result = await ctx.run(node, ["cat", ISOLATED_SYSFS], check=name)
    cmp = compare_isolated_sysfs(ctx.intent, result.output)
    if not cmp.matched:
        msg = f"{ISOLATED_SYSFS} on {node.name} is {cmp.observed!r}, expected {cmp.expected!r}"
        raise MismatchFailure(msg, check=name, target=str(node), expected=cmp.expected, observed=cmp.observed)
    return passed(name, node, expected=cmp.expected, observed=cmp.observed)


async def kubelet_reserved_cpus(ctx: CheckContext, node: NodeRef) -> CheckOutcome:
    """The rendered kubelet config must carry the reserved CPU list."""
    name = "kubelet-reserved-cpus"
    token = kubelet_reserved_token(ctx.intent)
    result = await ctx.run(node, ["cat", KUBELET_CONFIG], check=name)
    if token not in result.output:
        msg = f"{KUBELET_CONFIG} on {node.name} does not contain {token}"
        raise MismatchFailure(msg, check=name, target=str(node), expected=token, observed=result.output[:300])
    return passed(name, node, expected=token, observed=token)


def parse_affinity_list(taskset_output: str) -> CpuSet:
    """Extract the CPU list from ``taskset -pc`` output."""
    match = _AFFINITY_RE.search(taskset_output)
    if match is None:
        msg = "no 'current affinity list' in taskset output"
        raise MalformedInputError(msg, observed=taskset_output)
    return CpuSet.parse(match.group(1))


async def kernel_scheduler_affinity(ctx: CheckContext, node: NodeRef) -> CheckOutcome:
    """rcu_sched must be confined to the reserved CPUs."""
    name = "kernel-scheduler-affinity"
    result = await ctx.run(node, ["/bin/bash", "-c", "taskset -pc $(pgrep rcu_sched)"], check=name)
    expected = kernel_affinity_mask(ctx.intent)
    observed = parse_affinity_list(result.output)
    if observed != expected:
        msg = f"rcu_sched affinity on {node.name} is {observed}, expected {expected}"
        raise MismatchFailure(msg, check=name, target=str(node), expected=str(expected), observed=str(observed))
    return passed(name, node, expected=str(expected), observed=str(observed))


async def online_cpus(ctx: CheckContext, node: NodeRef) -> CpuSet:
    """Query the node's online CPU list once."""
    result = await ctx.run(
        node,
        ["/bin/bash", "-c", "lscpu | grep On-line | awk '{print $4}'"],
        check="online-cpus",
    )
    return CpuSet.parse(result.output)


def verify_process_cpu(allowance: CpuSet, psr_output: str, *, check: str = "", target: str = "") -> int:
    """The sampled ``psr`` of a process must be one of the allowed CPUs.

    Raises:
        MalformedInputError: if the sample is not an integer.
        MismatchFailure: naming the offending CPU when it is not allowed.
    """
    sample = psr_output.strip()
    try:
        cpu = int(sample)
    except ValueError:
        msg = f"unexpected psr sample {sample!r}"
        raise MalformedInputError(msg, check=check, target=target, observed=sample) from None
    if cpu not in allowance:
        msg = f"process ran on CPU {cpu}, which is outside the allowed set {allowance}"
        raise MismatchFailure(msg, check=check, target=target, expected=str(allowance), observed=str(cpu))
    return cpu


async def workload_cpu_affinity(ctx: CheckContext, node: NodeRef, qos: QoSClass) -> CheckOutcome:
    """Run a stress pod of class ``qos`` and check which CPU its process lands on."""
    name = f"workload-cpu-affinity[{qos.value}]"
    online = None
    if qos is not QoSClass.GUARANTEED and ctx.intent.balance_isolated:
        online = await online_cpus(ctx, node)
    allowance = cpu_allowance(ctx.intent, qos, online)
    logger.info("%s on %s may run on CPUs %s", qos.value, node.name, allowance)

    manifest = stress_pod_manifest(
        node,
        qos,
        namespace=ctx.config.testing_namespace,
        image=ctx.config.stress_image,
    )
    async with disposable_workload(ctx.workloads, manifest, ctx.config, clock=ctx.clock, sleep=ctx.sleep) as pod:
        samples: list[str] = []

        async def _sample() -> ComparisonResult:
            result = await ctx.run(
                node,
                ["/bin/bash", "-c", f"ps -o psr $(pgrep -n {STRESS_PROCESS}) | tail -1"],
                check=name,
            )
            if not result.output.strip().isdigit():
                msg = f"no {STRESS_PROCESS} process sample yet"
                raise ProbeError(msg, observed=result.output)
            samples.append(result.output)
            return ComparisonResult(matched=True, expected=str(allowance), observed=result.output.strip())

        await ctx.eventually(_sample, name=name, target=str(pod), timeout=ctx.config.workload_timeout)
        cpu = verify_process_cpu(allowance, samples[-1], check=name, target=str(node))

    return passed(name, node, expected=str(allowance), observed=str(cpu))
