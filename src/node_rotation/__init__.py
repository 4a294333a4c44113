"""
Node Rotation

Online, one-node-at-a-time replacement of members of a shard-replicated
data cluster. Each run selects the oldest node, gates on group shape and
cluster health, adds a replacement, waits for it to join, migrates shards
off the old node and retires it.

Usage:
    from node_rotation import RotationOrchestrator, RotationRequest
    from node_rotation.clients import InMemoryFleet, InMemoryCluster

    result = await RotationOrchestrator(fleet, cluster).run(
        RotationRequest(age_threshold_days=7)
    )
"""

from .errors import (
    ClientError,
    ConvergenceTimeout,
    MigrationIncomplete,
    NotConverged,
    PreconditionFailed,
    RotationError,
    TransientOperationalError,
    UnexpectedState,
    UnhealthyCluster,
)
from .models import (
    Alert,
    ClusterHealth,
    GroupSnapshot,
    NodeCandidate,
    Outcome,
    RotationContext,
    RotationRequest,
    RotationResult,
    RunRecord,
)
from .orchestrator import RotationOrchestrator, State, next_state
from .policy import CLUSTER_SIZE_POLICY, SHARD_MIGRATION_POLICY, RetryPolicy, retry_fixed_interval

__version__ = "1.0.0"
__all__ = [
    # models
    "Alert",
    "ClusterHealth",
    "GroupSnapshot",
    "NodeCandidate",
    "Outcome",
    "RotationContext",
    "RotationRequest",
    "RotationResult",
    "RunRecord",
    # errors
    "RotationError",
    "TransientOperationalError",
    "NotConverged",
    "MigrationIncomplete",
    "PreconditionFailed",
    "UnhealthyCluster",
    "ConvergenceTimeout",
    "UnexpectedState",
    "ClientError",
    # runtime
    "RotationOrchestrator",
    "State",
    "next_state",
    "RetryPolicy",
    "retry_fixed_interval",
    "CLUSTER_SIZE_POLICY",
    "SHARD_MIGRATION_POLICY",
]
