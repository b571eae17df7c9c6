"""Collaborators backed by the ``oc`` command-line client."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from perfconform.config import NAMESPACE_MACHINE_CONFIG, NODE_ROLE_LABEL, ConformanceConfig
from perfconform.domain.errors import ProbeError
from perfconform.domain.models import NodeRef, NodeResources, PodRef

logger = logging.getLogger(__name__)

MCD_LABEL = "k8s-app=machine-config-daemon"
MCD_CONTAINER = "machine-config-daemon"
OC_TIMEOUT = 60.0


async def _run_oc(*args: str, stdin: str | None = None, timeout: float = OC_TIMEOUT) -> str:
    """Run an oc command and return stdout; the child is killed after ``timeout`` seconds."""
    proc = await asyncio.create_subprocess_exec(
        "oc",
        *args,
        stdin=asyncio.subprocess.PIPE if stdin is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        data = stdin.encode() if stdin is not None else None
        stdout, stderr = await asyncio.wait_for(proc.communicate(data), timeout)
    except TimeoutError as exc:
        proc.kill()
        await proc.wait()
        msg = f"oc {' '.join(args)} timed out after {timeout}s"
        raise ProbeError(msg, observed="timeout") from exc
    if proc.returncode != 0:
        msg = f"oc {' '.join(args)} failed: {stderr.decode().strip()}"
        raise ProbeError(msg, observed=stderr.decode().strip())
    return stdout.decode()


async def _get_json(*args: str) -> dict[str, Any]:
    out = await _run_oc("get", *args, "-o", "json")
    try:
        data: dict[str, Any] = json.loads(out)
    except json.JSONDecodeError as exc:
        msg = f"oc get {' '.join(args)} returned invalid JSON"
        raise ProbeError(msg, observed=out[:200]) from exc
    return data


def _selector(labels: Mapping[str, str]) -> str:
    return ",".join(f"{k}={v}" for k, v in labels.items())


class OcRemoteProbe:
    """RemoteProbe running node commands through the machine-config daemon pod.

    The daemon mounts the host filesystem under ``/rootfs``; pod targets are
    reached with ``oc exec`` directly.
    """

    def __init__(self) -> None:
        self._daemons: dict[str, str] = {}

    async def execute(self, target: NodeRef | PodRef, command: Sequence[str]) -> str:
        if isinstance(target, PodRef):
            return await _run_oc("exec", "-n", target.namespace, target.name, "--", *command)

        daemon = await self._daemon_for(target)
        return await _run_oc(
            "exec", "-n", NAMESPACE_MACHINE_CONFIG, daemon, "-c", MCD_CONTAINER, "--", *command
        )

    async def _daemon_for(self, node: NodeRef) -> str:
        if node.name not in self._daemons:
            name = await _run_oc(
                "get", "pods",
                "-n", NAMESPACE_MACHINE_CONFIG,
                "-l", MCD_LABEL,
                "--field-selector", f"spec.nodeName={node.name}",
                "-o", "jsonpath={.items[0].metadata.name}",
            )
            if not name.strip():
                msg = f"no machine-config daemon on {node.name}"
                raise ProbeError(msg, target=str(node))
            self._daemons[node.name] = name.strip()
        return self._daemons[node.name]


class OcCluster:
    """IntentSource, NodeInventory and TuningDaemons over ``oc get``."""

    def __init__(self, config: ConformanceConfig) -> None:
        self._config = config

    async def get_profile(self, node_selector: Mapping[str, str]) -> Mapping[str, Any]:
        data = await _get_json("performanceprofiles")
        for item in data.get("items", []):
            selector: Mapping[str, str] = item.get("spec", {}).get("nodeSelector") or {}
            if all(selector.get(k) == v for k, v in node_selector.items()):
                return item
        msg = f"no performance profile selects {_selector(node_selector)}"
        raise ProbeError(msg, expected=_selector(node_selector), observed="none")

    async def nodes_by_role(self, role: str) -> list[NodeResources]:
        data = await _get_json("nodes", "-l", _selector({f"{NODE_ROLE_LABEL}/{role}": ""}))
        nodes: list[NodeResources] = []
        for item in data.get("items", []):
            status = item.get("status", {})
            nodes.append(
                NodeResources(
                    node=NodeRef(item["metadata"]["name"]),
                    capacity_cpu=str(status.get("capacity", {}).get("cpu", "0")),
                    allocatable_cpu=str(status.get("allocatable", {}).get("cpu", "0")),
                )
            )
        logger.debug("Found %d node(s) with role %s", len(nodes), role)
        return nodes

    async def feature_set(self, name: str) -> str:
        out = await _run_oc("get", "featuregate", name, "-o", "jsonpath={.spec.featureSet}")
        return out.strip()

    async def tuned_pod(self, node: NodeRef) -> PodRef:
        namespace = self._config.tuning_namespace
        data = await _get_json(
            "pods",
            "-n", namespace,
            "-l", _selector(self._config.tuned_label),
            "--field-selector", f"spec.nodeName={node.name}",
        )
        items = data.get("items", [])
        if not items:
            msg = f"there should be one tuned daemon on {node.name}"
            raise ProbeError(msg, target=str(node), expected="1 pod", observed="0 pods")
        pod = items[0]
        statuses = pod.get("status", {}).get("containerStatuses") or []
        if not statuses or not all(s.get("ready") for s in statuses):
            msg = f"tuned daemon {pod['metadata']['name']} is not ready"
            raise ProbeError(msg, target=str(node), expected="ready", observed="not ready")
        return PodRef(namespace=namespace, name=pod["metadata"]["name"], node_name=node.name)

    async def tuned_exists(self, name: str, namespace: str) -> bool:
        out = await _run_oc("get", "tuned", name, "-n", namespace, "--ignore-not-found", "-o", "name")
        return bool(out.strip())


class OcWorkloads:
    """WorkloadLifecycle creating and deleting pods with ``oc``."""

    async def create(self, manifest: Mapping[str, Any]) -> PodRef:
        namespace = str(manifest.get("metadata", {}).get("namespace", "default"))
        name = await _run_oc(
            "create", "-n", namespace, "-f", "-", "-o", "jsonpath={.metadata.name}",
            stdin=json.dumps(manifest),
        )
        node = manifest.get("spec", {}).get("nodeSelector", {})
        return PodRef(namespace=namespace, name=name.strip(), node_name=next(iter(node.values()), ""))

    async def delete(self, pod: PodRef) -> None:
        await _run_oc("delete", "pod", pod.name, "-n", pod.namespace, "--wait=false")

    async def is_ready(self, pod: PodRef) -> bool:
        out = await _run_oc(
            "get", "pod", pod.name, "-n", pod.namespace,
            "-o", 'jsonpath={.status.conditions[?(@.type=="Ready")].status}',
        )
        return out.strip() == "True"

    async def exists(self, pod: PodRef) -> bool:
        out = await _run_oc("get", "pod", pod.name, "-n", pod.namespace, "--ignore-not-found", "-o", "name")
        return bool(out.strip())
