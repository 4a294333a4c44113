"""
TargetSelector: pick the node to retire (GetTargetNode).

Read-only. Decides whether this run should skip rotation altogether.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from loguru import logger

from ..clients.types import ClusterClient, FleetClient
from ..models import NodeCandidate, RotationContext
from ..sinks.ledger import RunLedger


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def select_oldest(candidates: Iterable[NodeCandidate]) -> Optional[NodeCandidate]:
    """Earliest launch time wins; equal launch times resolve by instance id."""
    ordered = sorted(candidates, key=lambda c: c.sort_key)
    return ordered[0] if ordered else None


class TargetSelector:
    def __init__(
        self,
        fleet: FleetClient,
        cluster: ClusterClient,
        *,
        ledger: Optional[RunLedger] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._fleet = fleet
        self._cluster = cluster
        self._ledger = ledger
        self._clock = clock

    async def run(self, ctx: RotationContext) -> None:
        req = ctx.request
        logger.info(f"Searching for a node to rotate in groups tagged {req.discovery_tag_key}")

        groups = await self._fleet.describe_groups(req.discovery_tag_key)
        if len(groups) != 1:
            # shape is rejected by the preflight gate so the run fails loudly
            logger.warning(f"{len(groups)} groups tagged {req.discovery_tag_key}; expected 1")
            return
        group = ctx.group = groups[0]

        if self._ledger is not None:
            running = await self._ledger.in_flight(
                group.group_id, exclude=ctx.execution_id, now=self._clock()
            )
            if running:
                ctx.skip(f"rotation already in progress for {group.group_id}: {running}")
                logger.warning(ctx.skip_reason)
                return

        candidates = await self._fleet.describe_instances(group.group_id)

        if req.target_instance_id:
            target = next((c for c in candidates if c.instance_id == req.target_instance_id), None)
            if target is None:
                ctx.skip(
                    f"requested instance {req.target_instance_id} not found in {group.group_id}"
                )
                logger.warning(ctx.skip_reason)
                return
            logger.info(f"Using requested target {target.instance_id}")
        else:
            target = select_oldest(candidates)
            if target is None:
                ctx.skip(f"no candidate nodes in {group.group_id}")
                logger.warning(ctx.skip_reason)
                return
            age = target.age(self._clock())
            logger.info(
                f"Oldest instance {target.instance_id} was launched at {target.launch_time}"
            )
            if age < timedelta(days=req.age_threshold_days):
                ctx.skip(
                    f"oldest instance {target.instance_id} is {age.total_seconds() / 86400:.1f} "
                    f"days old, below the {req.age_threshold_days:g} day threshold"
                )
                logger.info(ctx.skip_reason)
                return

        ctx.target = target
        ctx.cluster_node_id = self._cluster.node_id_for(target)
