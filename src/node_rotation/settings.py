from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import DEFAULT_DISCOVERY_TAG_KEY


class RotationSettings(BaseSettings):
    """Environment-driven settings (prefix ``NODE_ROTATION_``)."""

    model_config = SettingsConfigDict(
        env_prefix="NODE_ROTATION_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    # trigger defaults
    discovery_tag_key: str = DEFAULT_DISCOVERY_TAG_KEY
    age_threshold_days: float = 7

    # polling budgets
    cluster_size_interval_sec: float = 30.0
    cluster_size_max_attempts: int = 20
    shard_migration_interval_sec: float = 120.0
    shard_migration_max_attempts: int = 195

    # data cluster
    elasticsearch_url: str = "http://localhost:9200"
    elasticsearch_timeout_sec: float = 30.0
    node_match: Literal["name", "ip"] = "name"

    # fleet
    aws_region: Optional[str] = None

    # sinks
    alert_topic_arn: Optional[str] = None
    alert_webhook_url: Optional[str] = None
    output_path: Path = Path("var/rotation-output.ndjson")
    ledger_path: Path = Path("var/rotation-runs.ndjson")
    metrics_textfile: Optional[Path] = None

    log_level: str = "INFO"


@lru_cache()
def get_settings() -> RotationSettings:
    return RotationSettings()
