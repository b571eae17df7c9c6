"""Checks for files the node must carry after boot-time tuning."""

from __future__ import annotations

from perfconform.checks.context import CheckContext, passed
from perfconform.domain.errors import MismatchFailure, ProbeError
from perfconform.domain.models import CheckOutcome, NodeRef

OSTREE_BOOT_DIR = "/rootfs/boot/ostree/"
SET_AFFINITY_ENTRY = "'/etc/systemd/system.conf /etc/systemd/system.conf.d/setAffinity.conf'"
# Only the newest deployments are relevant.
MAX_IMAGES = 2


async def file_present(ctx: CheckContext, node: NodeRef, path: str) -> CheckOutcome:
    """``path`` must exist in the node's root filesystem."""
    name = f"file-present[{path}]"
    host_path = f"/rootfs/{path.lstrip('/')}"
    try:
        await ctx.run(node, ["ls", host_path], check=name)
    except ProbeError as exc:
        msg = f"cannot find the file {path} on {node.name}"
        raise MismatchFailure(msg, check=name, target=str(node), expected=host_path, observed=str(exc)) from exc
    return passed(name, node, expected=host_path, observed=host_path)


async def initramfs_affinity(ctx: CheckContext, node: NodeRef) -> CheckOutcome:
    """The systemd CPU affinity drop-in must be injected into the initramfs."""
    name = "initramfs-affinity"
    found = await ctx.run(node, ["find", OSTREE_BOOT_DIR, "-name", "*.img"], check=name)
    images = [line.strip() for line in found.output.splitlines() if line.strip()][:MAX_IMAGES]

    for image in images:
        listing = await ctx.run(node, ["lsinitrd", image], check=name)
        if SET_AFFINITY_ENTRY in listing.output:
            return passed(name, node, expected=SET_AFFINITY_ENTRY, observed=image)

    msg = f"setAffinity.conf is not part of any initramfs image on {node.name}"
    raise MismatchFailure(
        msg,
        check=name,
        target=str(node),
        expected=SET_AFFINITY_ENTRY,
        observed=", ".join(images) or "no images",
    )
