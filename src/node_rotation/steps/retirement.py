from __future__ import annotations

from loguru import logger

from ..clients.types import ClusterClient, FleetClient
from ..models import RotationContext
from .common import refresh_group, require_group, require_target


class NodeRetirement:
    """RemoveNode: terminate through the group, then restore allocation settings."""

    def __init__(self, fleet: FleetClient, cluster: ClusterClient):
        self._fleet = fleet
        self._cluster = cluster

    async def run(self, ctx: RotationContext) -> None:
        group = require_group(ctx)
        target = require_target(ctx)

        logger.info(f"Terminating {target.instance_id} in {group.group_id}")
        await self._fleet.terminate_in_group(group.group_id, target.instance_id)

        await self._cluster.clear_evacuation(ctx.cluster_node_id)
        logger.info("Re-enabling shard rebalancing")
        await self._cluster.set_rebalancing(True)
        await refresh_group(self._fleet, ctx)
