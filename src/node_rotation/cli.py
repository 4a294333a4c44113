from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger

from .settings import get_settings
from .sinks.ledger import NdjsonRunLedger
from .sinks.output import NdjsonOutputSink

app = typer.Typer(help="Rolling node rotation for a shard-replicated data cluster")


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def _payload(
    payload: Optional[str],
    tag_key: Optional[str],
    age_threshold_days: Optional[float],
    target_instance_id: Optional[str],
) -> dict:
    data: dict = {}
    if payload:
        text = Path(payload[1:]).read_text() if payload.startswith("@") else payload
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise typer.BadParameter(f"payload is not valid JSON: {e}") from e
    if tag_key is not None:
        data["discovery_tag_key"] = tag_key
    if age_threshold_days is not None:
        data["age_threshold_days"] = age_threshold_days
    if target_instance_id is not None:
        data["target_instance_id"] = target_instance_id
    return data


def payload_opt() -> Optional[str]:
    return typer.Option(None, "--payload", help="Trigger payload as JSON, or @path to a JSON file")


def tag_key_opt() -> Optional[str]:
    return typer.Option(None, "--tag-key", help="Tag key identifying the group to rotate")


def age_opt() -> Optional[float]:
    return typer.Option(None, "--age-threshold-days", help="Minimum age of the node to rotate")


def target_opt() -> Optional[str]:
    return typer.Option(None, "--target-instance-id", help="Rotate this instance instead")


def log_level_opt() -> Optional[str]:
    return typer.Option(None, "--log-level", envvar="NODE_ROTATION_LOG_LEVEL")


@app.command("run")
def run(
    payload: Optional[str] = payload_opt(),
    tag_key: Optional[str] = tag_key_opt(),
    age_threshold_days: Optional[float] = age_opt(),
    target_instance_id: Optional[str] = target_opt(),
    log_level: Optional[str] = log_level_opt(),
):
    """Run one rotation attempt. Exits 1 when the run fails."""
    from .runner import run_rotation

    settings = get_settings()
    _configure_logging(log_level or settings.log_level)
    data = _payload(payload, tag_key, age_threshold_days, target_instance_id)

    result = asyncio.run(run_rotation(data, settings))
    typer.echo(
        json.dumps(
            {
                "execution_id": result.execution_id,
                "outcome": result.outcome.value,
                "final_state": result.final_state,
                "states": list(result.states),
                "group_id": result.group_id,
                "target_instance_id": result.target_instance_id,
                "failed_state": result.failed_state,
                "error": result.error,
                "skip_reason": result.skip_reason,
            },
            indent=2,
        )
    )
    if not result.ok:
        raise typer.Exit(code=1)


@app.command("select-target")
def select_target(
    payload: Optional[str] = payload_opt(),
    tag_key: Optional[str] = tag_key_opt(),
    age_threshold_days: Optional[float] = age_opt(),
    target_instance_id: Optional[str] = target_opt(),
    log_level: Optional[str] = log_level_opt(),
):
    """Show which node the next run would rotate, without changing anything."""
    from .runner import preview_target

    settings = get_settings()
    _configure_logging(log_level or settings.log_level)
    data = _payload(payload, tag_key, age_threshold_days, target_instance_id)

    ctx = asyncio.run(preview_target(data, settings))
    typer.echo(
        json.dumps(
            {
                "group_id": ctx.group_id,
                "target_instance_id": ctx.target_id,
                "launch_time": ctx.target.launch_time.isoformat() if ctx.target else None,
                "cluster_node_id": ctx.cluster_node_id,
                "skip_rotation": ctx.skip_rotation,
                "skip_reason": ctx.skip_reason,
            },
            indent=2,
        )
    )


@app.command("history")
def history(
    limit: int = typer.Option(20, "--limit", help="Number of ledger rows to show"),
    execution_id: Optional[str] = typer.Option(
        None, "--execution-id", help="Show recorded command output for this execution"
    ),
):
    """Show recent runs, or the command output of one execution."""
    settings = get_settings()
    if execution_id:
        sink = NdjsonOutputSink(settings.output_path, mkdirs=False)
        for rec in asyncio.run(sink.read(execution_id, limit=limit)):
            typer.echo(rec.to_json())
        return

    ledger = NdjsonRunLedger(settings.ledger_path, mkdirs=False)
    for rec in asyncio.run(ledger.recent(limit)):
        typer.echo(rec.model_dump_json())


if __name__ == "__main__":
    app()
