"""
Replacement and membership steps.

- ReplacementProvisioner (AddNode): suspend rebalancing while the group
  replaces the detached node
- ConvergenceWaiter (ClusterSizeCheck): one poll of the cluster size
- MembershipReconciler (ReattachTargetInstance): undo the preflight detach
"""

from __future__ import annotations

from loguru import logger

from ..clients.types import ClusterClient, FleetClient
from ..errors import NotConverged, UnexpectedState
from ..models import RotationContext
from .common import refresh_group, require_group, require_target


class ReplacementProvisioner:
    def __init__(self, fleet: FleetClient, cluster: ClusterClient):
        self._fleet = fleet
        self._cluster = cluster

    async def run(self, ctx: RotationContext) -> None:
        group = require_group(ctx)
        if ctx.expected_node_count is None:
            raise UnexpectedState("cluster size baseline was never recorded")

        logger.info("Disabling shard rebalancing")
        await self._cluster.set_rebalancing(False)

        refreshed = await refresh_group(self._fleet, ctx)
        logger.info(
            f"Replacement for the detached node launching in {group.group_id} "
            f"(desired {refreshed.desired_size}, in service {refreshed.current_size}); "
            f"expecting {ctx.expected_node_count} cluster nodes"
        )


class ConvergenceWaiter:
    def __init__(self, cluster: ClusterClient):
        self._cluster = cluster

    async def poll(self, ctx: RotationContext) -> None:
        if ctx.expected_node_count is None:
            raise UnexpectedState("expected node count was never recorded")
        ctx.observed_node_count = await self._cluster.node_count()
        if ctx.observed_node_count != ctx.expected_node_count:
            raise NotConverged(
                f"cluster has {ctx.observed_node_count} nodes, "
                f"expected {ctx.expected_node_count}"
            )
        logger.info(f"Cluster reached expected size {ctx.expected_node_count}")


class MembershipReconciler:
    def __init__(self, fleet: FleetClient):
        self._fleet = fleet

    async def run(self, ctx: RotationContext) -> None:
        group = require_group(ctx)
        target = require_target(ctx)
        logger.info(f"Reattaching {target.instance_id} to {group.group_id}")
        await self._fleet.attach_to_scaling(group.group_id, target.instance_id)
        refreshed = await refresh_group(self._fleet, ctx)
        if not refreshed.contains(target.instance_id):
            raise UnexpectedState(
                f"{target.instance_id} missing from {group.group_id} after attach"
            )
