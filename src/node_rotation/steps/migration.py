"""
ShardMigrationCoordinator: MigrateShards and ShardMigrationCheck.

Completion needs zero shards on the target *and* a green cluster observed
on the same poll, so a green blip mid-recovery never counts.
"""

from __future__ import annotations

from typing import Any, Optional

from loguru import logger

from ..clients.types import ClusterClient
from ..errors import MigrationIncomplete
from ..models import ClusterHealth, RotationContext
from ..sinks.output import OutputSink
from .common import require_target


class ShardMigrationCoordinator:
    def __init__(self, cluster: ClusterClient, *, output: Optional[OutputSink] = None):
        self._cluster = cluster
        self._output = output

    async def migrate(self, ctx: RotationContext) -> None:
        require_target(ctx)
        node_id = ctx.cluster_node_id
        logger.info(f"Migrating shards off {node_id}")
        await self._cluster.evacuate(node_id)
        await self._record(ctx, "MigrateShards", {"command": "evacuate", "node": node_id})

    async def check(self, ctx: RotationContext) -> None:
        require_target(ctx)
        node_id = ctx.cluster_node_id
        ctx.migration_complete = False

        remaining = await self._cluster.get_allocation(node_id)
        health = await self._cluster.get_health()
        ctx.cluster_status = health
        await self._record(
            ctx,
            "ShardMigrationCheck",
            {"node": node_id, "shards_remaining": remaining, "health": health.value},
        )

        if remaining != 0 or health is not ClusterHealth.GREEN:
            raise MigrationIncomplete(
                f"{remaining} shard(s) left on {node_id}, cluster {health.value}"
            )

        ctx.migration_complete = True
        logger.info(f"All shards migrated off {node_id} and cluster is green")

    async def _record(self, ctx: RotationContext, step: str, payload: dict[str, Any]) -> None:
        if self._output is None:
            return
        try:
            await self._output.write(ctx.execution_id, step, payload)
        except Exception as exc:
            logger.warning(f"Output sink write failed ({step}): {exc}")
