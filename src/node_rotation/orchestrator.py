"""
Rotation Orchestrator.

A finite-state interpreter over one fixed pipeline:

    GetTargetNode -> CheckSkipRotation -> {StopAsSkippingRotation | AutoScalingGroupCheck}
    -> CheckClusterStatus -> StatusIsGreen -> {FailState | AddNode}
    -> ClusterSizeCheck (retry) -> ReattachTargetInstance -> MigrateShards
    -> ShardMigrationCheck (retry) -> RemoveNode -> Succeed

Task states call one step; choice states only read the context. Any task
error not absorbed by that state's retry policy moves the run to
FailState, which fires exactly one alert. Nothing is rolled back.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from loguru import logger

from .clients.types import ClusterClient, FleetClient
from .metrics import metrics_registry
from .models import (
    Alert,
    ClusterHealth,
    Outcome,
    RotationContext,
    RotationRequest,
    RotationResult,
    RunRecord,
)
from .policy import CLUSTER_SIZE_POLICY, SHARD_MIGRATION_POLICY, RetryPolicy, Sleep
from .sinks.alerts import AlertSink
from .sinks.ledger import RunLedger
from .sinks.output import OutputSink
from .steps import (
    ClusterHealthGate,
    ConvergenceWaiter,
    MembershipReconciler,
    NodeRetirement,
    PreflightGate,
    ReplacementProvisioner,
    ShardMigrationCoordinator,
    TargetSelector,
)
from .steps.selector import utc_now


class State(str, Enum):
    GET_TARGET_NODE = "GetTargetNode"
    CHECK_SKIP_ROTATION = "CheckSkipRotation"
    STOP_AS_SKIPPING_ROTATION = "StopAsSkippingRotation"
    AUTO_SCALING_GROUP_CHECK = "AutoScalingGroupCheck"
    CHECK_CLUSTER_STATUS = "CheckClusterStatus"
    STATUS_IS_GREEN = "StatusIsGreen"
    FAIL_STATE = "FailState"
    ADD_NODE = "AddNode"
    CLUSTER_SIZE_CHECK = "ClusterSizeCheck"
    REATTACH_TARGET_INSTANCE = "ReattachTargetInstance"
    MIGRATE_SHARDS = "MigrateShards"
    SHARD_MIGRATION_CHECK = "ShardMigrationCheck"
    REMOVE_NODE = "RemoveNode"
    SUCCEED = "Succeed"


INITIAL_STATE = State.GET_TARGET_NODE
TERMINAL_STATES = frozenset({State.STOP_AS_SKIPPING_ROTATION, State.SUCCEED, State.FAIL_STATE})
CHOICE_STATES = frozenset({State.CHECK_SKIP_ROTATION, State.STATUS_IS_GREEN})

_NEXT: dict[State, State] = {
    State.GET_TARGET_NODE: State.CHECK_SKIP_ROTATION,
    State.AUTO_SCALING_GROUP_CHECK: State.CHECK_CLUSTER_STATUS,
    State.CHECK_CLUSTER_STATUS: State.STATUS_IS_GREEN,
    State.ADD_NODE: State.CLUSTER_SIZE_CHECK,
    State.CLUSTER_SIZE_CHECK: State.REATTACH_TARGET_INSTANCE,
    State.REATTACH_TARGET_INSTANCE: State.MIGRATE_SHARDS,
    State.MIGRATE_SHARDS: State.SHARD_MIGRATION_CHECK,
    State.SHARD_MIGRATION_CHECK: State.REMOVE_NODE,
    State.REMOVE_NODE: State.SUCCEED,
}


def next_state(state: State, ctx: RotationContext) -> State:
    """Transition function; depends only on the current state and the context."""
    if state in TERMINAL_STATES:
        raise ValueError(f"{state.value} is terminal")
    if ctx.last_error is not None:
        return State.FAIL_STATE
    if state is State.CHECK_SKIP_ROTATION:
        if ctx.skip_rotation:
            return State.STOP_AS_SKIPPING_ROTATION
        return State.AUTO_SCALING_GROUP_CHECK
    if state is State.STATUS_IS_GREEN:
        return State.ADD_NODE if ctx.cluster_status is ClusterHealth.GREEN else State.FAIL_STATE
    return _NEXT[state]


Task = Callable[[RotationContext], Awaitable[None]]


class RotationOrchestrator:
    """Runs one rotation attempt per call to :meth:`run`.

    Example:
        orchestrator = RotationOrchestrator(fleet, cluster, alerts=InMemoryAlertSink())
        result = await orchestrator.run(RotationRequest(age_threshold_days=7))
        if not result.ok:
            ...
    """

    def __init__(
        self,
        fleet: FleetClient,
        cluster: ClusterClient,
        *,
        alerts: Optional[AlertSink] = None,
        output: Optional[OutputSink] = None,
        ledger: Optional[RunLedger] = None,
        cluster_size_policy: RetryPolicy = CLUSTER_SIZE_POLICY,
        shard_migration_policy: RetryPolicy = SHARD_MIGRATION_POLICY,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._alerts = alerts
        self._ledger = ledger
        self._sleep = sleep
        self._clock = clock

        health = ClusterHealthGate(cluster)
        migration = ShardMigrationCoordinator(cluster, output=output)
        self._health_gate = health
        self._tasks: dict[State, Task] = {
            State.GET_TARGET_NODE: TargetSelector(fleet, cluster, ledger=ledger, clock=clock).run,
            State.AUTO_SCALING_GROUP_CHECK: PreflightGate(fleet, cluster).run,
            State.CHECK_CLUSTER_STATUS: health.run,
            State.ADD_NODE: ReplacementProvisioner(fleet, cluster).run,
            State.CLUSTER_SIZE_CHECK: ConvergenceWaiter(cluster).poll,
            State.REATTACH_TARGET_INSTANCE: MembershipReconciler(fleet).run,
            State.MIGRATE_SHARDS: migration.migrate,
            State.SHARD_MIGRATION_CHECK: migration.check,
            State.REMOVE_NODE: NodeRetirement(fleet, cluster).run,
        }
        self._policies: dict[State, RetryPolicy] = {
            State.CLUSTER_SIZE_CHECK: cluster_size_policy,
            State.SHARD_MIGRATION_CHECK: shard_migration_policy,
        }

    async def run(self, request: RotationRequest) -> RotationResult:
        ctx = RotationContext(request=request)
        logger.info(f"Starting node rotation {ctx.execution_id}")

        state = INITIAL_STATE
        while state not in TERMINAL_STATES:
            ctx.history.append(state.value)
            if state not in CHOICE_STATES:
                await self._execute(state, ctx)

            nxt = next_state(state, ctx)
            if nxt is State.FAIL_STATE and ctx.last_error is None:
                ctx.last_error = self._health_gate.rejection(ctx)
                ctx.failed_state = state.value
            if nxt is State.AUTO_SCALING_GROUP_CHECK:
                await self._record(ctx, "started")
            state = nxt

        ctx.history.append(state.value)
        return await self._finish(state, ctx)

    # --------------- internals

    async def _execute(self, state: State, ctx: RotationContext) -> None:
        task = self._tasks[state]
        policy = self._policies.get(state)
        started = time.monotonic()
        try:
            if policy is None:
                await task(ctx)
            else:
                await policy.run(
                    lambda: task(ctx),
                    label=state.value,
                    sleep=self._sleep,
                    on_retry=lambda attempt, exc: self._on_poll_failure(state, attempt, exc),
                )
        except Exception as exc:
            ctx.last_error = exc
            ctx.failed_state = state.value
            logger.error(f"{state.value} failed: {type(exc).__name__}: {exc}")
        finally:
            metrics_registry.state_duration.labels(state=state.value).observe(
                time.monotonic() - started
            )

    def _on_poll_failure(self, state: State, attempt: int, exc: BaseException) -> None:
        metrics_registry.poll_failures_total.labels(state=state.value).inc()
        logger.info(f"{state.value} poll {attempt}: {exc}")

    async def _finish(self, state: State, ctx: RotationContext) -> RotationResult:
        if state is State.FAIL_STATE:
            outcome = Outcome.FAILED
            await self._record(ctx, "failed", str(ctx.last_error))
            await self._fire(ctx)
            logger.error(
                f"Node rotation {ctx.execution_id} failed in {ctx.failed_state}: {ctx.last_error}"
            )
        elif state is State.STOP_AS_SKIPPING_ROTATION:
            outcome = Outcome.SKIPPED
            await self._record(ctx, "skipped", ctx.skip_reason)
            logger.info(f"Node rotation {ctx.execution_id} skipped: {ctx.skip_reason}")
        else:
            outcome = Outcome.SUCCEEDED
            await self._resolve_previous_failure(ctx)
            await self._record(ctx, "succeeded")
            logger.success(
                f"Node rotation {ctx.execution_id} retired {ctx.target_id} from {ctx.group_id}"
            )

        metrics_registry.runs_total.labels(outcome=outcome.value).inc()
        return RotationResult(
            execution_id=ctx.execution_id,
            outcome=outcome,
            final_state=state.value,
            states=tuple(ctx.history),
            group_id=ctx.group_id,
            target_instance_id=ctx.target_id,
            failed_state=ctx.failed_state,
            error=str(ctx.last_error) if ctx.last_error is not None else None,
            skip_reason=ctx.skip_reason,
        )

    def _alert(self, ctx: RotationContext, *, resolved: bool = False) -> Alert:
        err = ctx.last_error
        return Alert(
            execution_id=ctx.execution_id,
            group_id=ctx.group_id,
            target_instance_id=ctx.target_id,
            failed_state=None if resolved else ctx.failed_state,
            cause=None if resolved or err is None else f"{type(err).__name__}: {err}",
            resolved=resolved,
        )

    async def _fire(self, ctx: RotationContext) -> None:
        if self._alerts is None:
            logger.warning(f"No alert sink configured; failure of {ctx.execution_id} not delivered")
            return
        try:
            await self._alerts.fire(self._alert(ctx))
            metrics_registry.alerts_total.labels(kind="fired").inc()
        except Exception as exc:
            logger.error(f"Alert delivery failed for {ctx.execution_id}: {exc}")

    async def _resolve_previous_failure(self, ctx: RotationContext) -> None:
        if self._alerts is None or self._ledger is None or ctx.group_id is None:
            return
        try:
            previous = await self._ledger.last(ctx.group_id, exclude=ctx.execution_id)
            if previous is None or previous.status != "failed":
                return
            await self._alerts.resolve(self._alert(ctx, resolved=True))
            metrics_registry.alerts_total.labels(kind="resolved").inc()
        except Exception as exc:
            logger.warning(f"Could not send resolve signal for {ctx.group_id}: {exc}")

    async def _record(
        self, ctx: RotationContext, status: str, detail: Optional[str] = None
    ) -> None:
        if self._ledger is None:
            return
        try:
            await self._ledger.record(
                RunRecord(
                    execution_id=ctx.execution_id,
                    group_id=ctx.group_id,
                    status=status,
                    detail=detail,
                    at=self._clock(),
                )
            )
        except Exception as exc:
            logger.warning(f"Run ledger write failed ({status}): {exc}")
