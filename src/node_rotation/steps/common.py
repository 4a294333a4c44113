from __future__ import annotations

from ..clients.types import FleetClient
from ..errors import PreconditionFailed, UnexpectedState
from ..models import GroupSnapshot, NodeCandidate, RotationContext


async def describe_group(fleet: FleetClient, tag_key: str) -> GroupSnapshot:
    """The single group carrying ``tag_key``; any other count is a precondition failure."""
    groups = await fleet.describe_groups(tag_key)
    if len(groups) != 1:
        ids = [g.group_id for g in groups]
        raise PreconditionFailed(f"expected exactly one group tagged {tag_key}, found {ids}")
    return groups[0]


async def refresh_group(fleet: FleetClient, ctx: RotationContext) -> GroupSnapshot:
    """Re-read the run's group; it disappearing mid-run is an invariant violation."""
    group_id = require_group(ctx).group_id
    for g in await fleet.describe_groups(ctx.request.discovery_tag_key):
        if g.group_id == group_id:
            ctx.group = g
            return g
    raise UnexpectedState(f"group {group_id} disappeared mid-run")


def require_group(ctx: RotationContext) -> GroupSnapshot:
    if ctx.group is None:
        raise UnexpectedState("no group recorded for this run")
    return ctx.group


def require_target(ctx: RotationContext) -> NodeCandidate:
    if ctx.target is None or ctx.cluster_node_id is None:
        raise UnexpectedState("no target node recorded for this run")
    return ctx.target
