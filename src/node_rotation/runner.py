"""
Wiring from settings to a ready orchestrator, plus the scheduled-trigger entry point.
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from loguru import logger
from prometheus_client import REGISTRY, write_to_textfile

from .clients.aws import Boto3FleetClient
from .clients.elasticsearch import HttpClusterClient
from .models import RotationContext, RotationRequest, RotationResult
from .orchestrator import RotationOrchestrator
from .policy import RetryPolicy
from .settings import RotationSettings, get_settings
from .sinks.alerts import AlertSink, SnsAlertSink, WebhookAlertSink
from .sinks.ledger import NdjsonRunLedger
from .sinks.output import NdjsonOutputSink
from .steps.selector import TargetSelector


def build_request(payload: Optional[dict[str, Any]], settings: RotationSettings) -> RotationRequest:
    """Trigger payload, with settings filling the fields it leaves out."""
    given = {k: v for k, v in (payload or {}).items() if v is not None}
    request = RotationRequest.model_validate(given)

    defaults: dict[str, Any] = {}
    if "discovery_tag_key" not in request.model_fields_set:
        defaults["discovery_tag_key"] = settings.discovery_tag_key
    if "age_threshold_days" not in request.model_fields_set:
        defaults["age_threshold_days"] = settings.age_threshold_days
    return request.model_copy(update=defaults) if defaults else request


def build_alert_sink(settings: RotationSettings, stack: AsyncExitStack) -> Optional[AlertSink]:
    if settings.alert_topic_arn:
        return SnsAlertSink(settings.alert_topic_arn, region_name=settings.aws_region)
    if settings.alert_webhook_url:
        sink = WebhookAlertSink(settings.alert_webhook_url)
        stack.push_async_callback(sink.stop)
        return sink
    logger.warning("No alert destination configured (set NODE_ROTATION_ALERT_TOPIC_ARN)")
    return None


@asynccontextmanager
async def open_clients(
    settings: RotationSettings,
) -> AsyncIterator[tuple[Boto3FleetClient, HttpClusterClient]]:
    fleet = Boto3FleetClient(settings.aws_region)
    async with HttpClusterClient(
        settings.elasticsearch_url,
        node_match=settings.node_match,
        timeout=settings.elasticsearch_timeout_sec,
    ) as cluster:
        yield fleet, cluster


async def run_rotation(
    payload: Optional[dict[str, Any]] = None,
    settings: Optional[RotationSettings] = None,
) -> RotationResult:
    """One rotation attempt against the configured fleet and cluster."""
    settings = settings or get_settings()
    request = build_request(payload, settings)

    async with AsyncExitStack() as stack:
        fleet, cluster = await stack.enter_async_context(open_clients(settings))
        orchestrator = RotationOrchestrator(
            fleet,
            cluster,
            alerts=build_alert_sink(settings, stack),
            output=NdjsonOutputSink(settings.output_path),
            ledger=NdjsonRunLedger(settings.ledger_path),
            cluster_size_policy=RetryPolicy(
                settings.cluster_size_interval_sec, settings.cluster_size_max_attempts
            ),
            shard_migration_policy=RetryPolicy(
                settings.shard_migration_interval_sec, settings.shard_migration_max_attempts
            ),
        )
        result = await orchestrator.run(request)

    if settings.metrics_textfile:
        export_metrics(settings.metrics_textfile)
    return result


def export_metrics(path: Path) -> None:
    """Write the current registry in Prometheus text format (atomic rename)."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        write_to_textfile(str(path), REGISTRY)
    except OSError as e:
        logger.warning(f"Could not write metrics to {path}: {e}")


async def preview_target(
    payload: Optional[dict[str, Any]] = None,
    settings: Optional[RotationSettings] = None,
) -> RotationContext:
    """Run only the (read-only) target selection."""
    settings = settings or get_settings()
    ctx = RotationContext(request=build_request(payload, settings))
    async with open_clients(settings) as (fleet, cluster):
        await TargetSelector(fleet, cluster, ledger=NdjsonRunLedger(settings.ledger_path)).run(ctx)
    return ctx


def handler(event: Optional[dict[str, Any]], context: Any = None) -> dict[str, Any]:
    """Scheduled-trigger entry point: payload in, result summary out."""
    result = asyncio.run(run_rotation(event or {}))
    return {
        "executionId": result.execution_id,
        "outcome": result.outcome.value,
        "finalState": result.final_state,
        "groupId": result.group_id,
        "targetInstanceId": result.target_instance_id,
        "failedState": result.failed_state,
        "error": result.error,
        "skipReason": result.skip_reason,
    }
