"""
Gates that must pass before anything is mutated.

PreflightGate (AutoScalingGroupCheck) validates group shape, records the
cluster size baseline and detaches the target from scaling bookkeeping
without lowering desired capacity, so the group launches the replacement.
ClusterHealthGate (CheckClusterStatus) records cluster health for the
StatusIsGreen choice.
"""

from __future__ import annotations

from loguru import logger

from ..clients.types import ClusterClient, FleetClient
from ..errors import PreconditionFailed, UnexpectedState, UnhealthyCluster
from ..models import ClusterHealth, RotationContext
from .common import describe_group, refresh_group, require_target


class PreflightGate:
    def __init__(self, fleet: FleetClient, cluster: ClusterClient):
        self._fleet = fleet
        self._cluster = cluster

    async def run(self, ctx: RotationContext) -> None:
        group = await describe_group(self._fleet, ctx.request.discovery_tag_key)
        if ctx.group is not None and ctx.group.group_id != group.group_id:
            raise UnexpectedState(f"group changed from {ctx.group.group_id} to {group.group_id}")
        ctx.group = group

        if not group.has_headroom:
            raise PreconditionFailed(
                f"group {group.group_id} has no headroom "
                f"(max {group.max_size}, desired {group.desired_size})"
            )

        target = require_target(ctx)
        if not group.contains(target.instance_id):
            raise UnexpectedState(f"{target.instance_id} is no longer a member of {group.group_id}")

        # baseline before the group starts launching the replacement
        ctx.expected_node_count = await self._cluster.node_count() + 1

        logger.info(
            f"Group {group.group_id} ok (desired {group.desired_size}, max {group.max_size}); "
            f"detaching {target.instance_id} from scaling"
        )
        await self._fleet.detach_from_scaling(group.group_id, target.instance_id)
        await refresh_group(self._fleet, ctx)


class ClusterHealthGate:
    def __init__(self, cluster: ClusterClient):
        self._cluster = cluster

    async def run(self, ctx: RotationContext) -> None:
        ctx.cluster_status = await self._cluster.get_health()
        logger.info(f"Cluster status is {ctx.cluster_status.value}")

    @staticmethod
    def is_green(ctx: RotationContext) -> bool:
        return ctx.cluster_status is ClusterHealth.GREEN

    @staticmethod
    def rejection(ctx: RotationContext) -> UnhealthyCluster:
        status = ctx.cluster_status.value if ctx.cluster_status else "unknown"
        return UnhealthyCluster(f"Unhealthy Cluster! status={status}")
