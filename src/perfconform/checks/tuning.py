"""Kernel tuning checks: workqueue masks, tuned profiles, sysctl values."""

from __future__ import annotations

import logging

from perfconform.checks.context import CheckContext, passed
from perfconform.config import FEATURE_GATE_NAME, LATENCY_SENSITIVE
from perfconform.domain.cpuset import CpuSet
from perfconform.domain.errors import InvariantViolation, MismatchFailure
from perfconform.domain.models import (
    CheckOutcome,
    ComparisonResult,
    NodeRef,
    TuningCategory,
)
from perfconform.expectations import non_isolcpus_mask, normalize_mask

logger = logging.getLogger(__name__)

WORKQUEUE_MASKS = (
    "/sys/devices/virtual/workqueue/cpumask",
    "/sys/bus/workqueue/devices/writeback/cpumask",
)
ACTIVE_PROFILE_FILE = "/etc/tuned/active_profile"


def compare_masks(expected: str, observed: str) -> ComparisonResult:
    """Compare hex CPU masks ignoring comma delimiters and zero padding."""
    want, got = normalize_mask(expected), normalize_mask(observed)
    return ComparisonResult(matched=want == got, expected=want, observed=got)


async def workqueue_mask(ctx: CheckContext, node: NodeRef) -> CheckOutcome:
    """Unbound and writeback workqueues must follow ``tuned.non_isolcpus``."""
    name = "workqueue-mask"
    cmdline = await ctx.run(node, ["cat", "/proc/cmdline"], check=name)
    expected = non_isolcpus_mask(cmdline.output)

    for path in WORKQUEUE_MASKS:
        result = await ctx.run(node, ["cat", path], check=name)
        cmp = compare_masks(expected, result.output)
        if not cmp.matched:
            msg = (
                f"{path} on {node.name} is {result.output.strip()} (CPUs {CpuSet.from_mask(cmp.observed)}), "
                f"expected {expected} (CPUs {CpuSet.from_mask(cmp.expected)})"
            )
            raise MismatchFailure(msg, check=name, target=str(node), expected=cmp.expected, observed=cmp.observed)
    return passed(name, node, expected=normalize_mask(expected), observed=normalize_mask(expected))


async def tuned_profile_exists(ctx: CheckContext, category: TuningCategory) -> CheckOutcome:
    """The Tuned object rendered for ``category`` must exist."""
    name = f"tuned-object[{category.value}]"
    tuned_name = ctx.config.tuned_object_name(category)
    key = f"{ctx.config.tuning_namespace}/{tuned_name}"
    if not await ctx.tuning.tuned_exists(tuned_name, ctx.config.tuning_namespace):
        msg = f"cannot find the Cluster Node Tuning Operator object {key}"
        raise InvariantViolation(msg, check=name, target=key, expected="present", observed="absent")
    return passed(name, key, expected="present", observed="present")


async def active_tuned_profile(ctx: CheckContext, node: NodeRef) -> CheckOutcome:
    """The node's tuned daemon must eventually report the rendered profile as active."""
    name = "active-tuned-profile"
    expected = ctx.config.active_profile_name

    async def _poll() -> ComparisonResult:
        pod = await ctx.tuning.tuned_pod(node)
        result = await ctx.run(pod, ["cat", ACTIVE_PROFILE_FILE], check=name)
        observed = result.output.strip()
        return ComparisonResult(
            matched=observed == expected,
            expected=expected,
            observed=observed,
            detail=f"active_profile in {pod}",
        )

    return await ctx.eventually(_poll, name=name, target=str(node))


async def sysctl_values(ctx: CheckContext, node: NodeRef, category: TuningCategory) -> CheckOutcome:
    """Every sysctl configured for ``category`` must hold its expected value."""
    name = f"sysctl[{category.value}]"
    expected = ctx.intent.sysctls_for(category)
    if not expected:
        logger.warning("No sysctl targets configured for %s", category.value)

    for param, value in expected.items():
        result = await ctx.run(node, ["sysctl", "-n", param], check=name)
        observed = result.output.strip()
        if observed != value:
            msg = f"parameter {param} value is not {value}"
            raise MismatchFailure(
                msg,
                check=name,
                target=str(node),
                expected=f"{param}={value}",
                observed=f"{param}={observed}",
            )
    summary = ", ".join(f"{k}={v}" for k, v in expected.items())
    return passed(name, node, expected=summary, observed=summary)


async def latency_sensitive_feature_set(ctx: CheckContext) -> CheckOutcome:
    """The cluster FeatureGate must select the LatencySensitive feature set."""
    name = "feature-set"
    observed = await ctx.inventory.feature_set(FEATURE_GATE_NAME)
    if observed != LATENCY_SENSITIVE:
        msg = f"FeatureSet is not set to {LATENCY_SENSITIVE}"
        raise MismatchFailure(
            msg,
            check=name,
            target=f"featuregate/{FEATURE_GATE_NAME}",
            expected=LATENCY_SENSITIVE,
            observed=observed,
        )
    return passed(name, f"featuregate/{FEATURE_GATE_NAME}", expected=LATENCY_SENSITIVE, observed=observed)
