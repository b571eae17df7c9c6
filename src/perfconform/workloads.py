"""Disposable stress workloads used to observe CPU pinning."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from perfconform.assertion.eventually import Clock, Sleep, eventually
from perfconform.config import HOSTNAME_LABEL, ConformanceConfig
from perfconform.domain.errors import ConformanceError, ProbeError
from perfconform.domain.models import ComparisonResult, NodeRef, PodRef, QoSClass
from perfconform.domain.protocols import WorkloadLifecycle

logger = logging.getLogger(__name__)

STRESS_PROCESS = "stress"


def stress_pod_manifest(
    node: NodeRef,
    qos: QoSClass,
    *,
    namespace: str,
    image: str = "vish/stress",
) -> dict[str, Any]:
    """Build a one-container stress pod pinned to ``node``.

    Requests alone make the pod burstable; matching limits make it guaranteed.
    """
    resources: dict[str, dict[str, str]] = {"requests": {"cpu": "1", "memory": "1Gi"}}
    if qos is QoSClass.GUARANTEED:
        resources["limits"] = {"cpu": "1", "memory": "1Gi"}

    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "generateName": "test-cpu-",
            "namespace": namespace,
            "labels": {"test": ""},
        },
        "spec": {
            "containers": [
                {
                    "name": "stress-test",
                    "image": image,
                    "resources": resources,
                    "args": ["-cpus", "1"],
                },
            ],
            "nodeSelector": {HOSTNAME_LABEL: node.name},
        },
    }


@asynccontextmanager
async def disposable_workload(
    lifecycle: WorkloadLifecycle,
    manifest: dict[str, Any],
    config: ConformanceConfig,
    *,
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> AsyncIterator[PodRef]:
    """Create a pod, wait until it is Ready, and always remove it afterwards.

    Deletion is awaited until the pod is gone so that the next scenario never
    shares a node with a leftover workload.
    """
    pod = await lifecycle.create(manifest)
    logger.info("Created workload %s", pod)
    body_failed = True
    try:

        async def _ready() -> ComparisonResult:
            ready = await lifecycle.is_ready(pod)
            return ComparisonResult(matched=ready, expected="Ready", observed="Ready" if ready else "NotReady")

        await eventually(
            _ready,
            interval=config.poll_interval,
            timeout=config.workload_timeout,
            name="workload-ready",
            target=str(pod),
            clock=clock,
            sleep=sleep,
        )
        yield pod
        body_failed = False
    finally:
        try:
            await _dispose(lifecycle, pod, config, clock=clock, sleep=sleep)
        except ConformanceError as exc:
            if not body_failed:
                raise
            logger.error("Cleanup of %s failed: %s", pod, exc)


async def _dispose(
    lifecycle: WorkloadLifecycle,
    pod: PodRef,
    config: ConformanceConfig,
    *,
    clock: Clock,
    sleep: Sleep,
) -> None:
    try:
        await lifecycle.delete(pod)
    except ProbeError as exc:
        # the pod may already be terminating; the wait below decides
        logger.warning("Delete request for %s failed: %s", pod, exc)

    async def _gone() -> ComparisonResult:
        present = await lifecycle.exists(pod)
        return ComparisonResult(matched=not present, expected="deleted", observed="present" if present else "deleted")

    await eventually(
        _gone,
        interval=config.poll_interval,
        timeout=config.workload_timeout,
        name="workload-deleted",
        target=str(pod),
        clock=clock,
        sleep=sleep,
    )
    logger.info("Deleted workload %s", pod)
