"""The rotation pipeline's task states."""

from .gates import ClusterHealthGate, PreflightGate
from .migration import ShardMigrationCoordinator
from .provisioning import ConvergenceWaiter, MembershipReconciler, ReplacementProvisioner
from .retirement import NodeRetirement
from .selector import TargetSelector, select_oldest

__all__ = [
    "TargetSelector",
    "select_oldest",
    "PreflightGate",
    "ClusterHealthGate",
    "ReplacementProvisioner",
    "ConvergenceWaiter",
    "MembershipReconciler",
    "ShardMigrationCoordinator",
    "NodeRetirement",
]
