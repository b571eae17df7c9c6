"""Protocol interfaces for the collaborators perfconform depends on.

The checks only ever see these Protocols. Concrete implementations live in
``perfconform.adapters``; tests supply in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from perfconform.domain.models import NodeRef, NodeResources, PodRef


class RemoteProbe(Protocol):
    """Runs a command on a node (through its host filesystem) or inside a pod."""

    async def execute(self, target: NodeRef | PodRef, command: Sequence[str]) -> str:
        """Run ``command`` on ``target`` and return its raw output.

        Raises ``ProbeError`` when the command cannot run or exits non-zero.
        """
        ...


class IntentSource(Protocol):
    """Read-only access to declarative performance profiles."""

    async def get_profile(self, node_selector: Mapping[str, str]) -> Mapping[str, Any]:
        """Return the raw profile object whose node selector matches."""
        ...


class NodeInventory(Protocol):
    """Read-only access to node and cluster-level objects."""

    async def nodes_by_role(self, role: str) -> list[NodeResources]:
        """List nodes carrying the given role label."""
        ...

    async def feature_set(self, name: str) -> str:
        """Return ``spec.featureSet`` of the named FeatureGate."""
        ...


class TuningDaemons(Protocol):
    """Locates per-node tuning daemons and their profile objects."""

    async def tuned_pod(self, node: NodeRef) -> PodRef:
        """Return the ready tuned daemon pod on ``node``.

        Raises ``ProbeError`` if no pod is found or a container is not ready.
        """
        ...

    async def tuned_exists(self, name: str, namespace: str) -> bool:
        """Return True if the Tuned object exists."""
        ...


class WorkloadLifecycle(Protocol):
    """Creates and removes disposable probe workloads."""

    async def create(self, manifest: Mapping[str, Any]) -> PodRef:
        """Create a pod from ``manifest`` and return its identity."""
        ...

    async def delete(self, pod: PodRef) -> None:
        """Request deletion of ``pod``."""
        ...

    async def is_ready(self, pod: PodRef) -> bool:
        """Return True once the pod reports the Ready condition."""
        ...

    async def exists(self, pod: PodRef) -> bool:
        """Return True while the pod object still exists."""
        ...
