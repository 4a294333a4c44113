"""
Alert delivery for failed rotations.

A failed run fires exactly one alert; a later successful run for the same
group may send a resolving signal. Delivery backends: SNS topic (boto3),
HTTP webhook (httpx), and an in-memory sink for tests.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional, Protocol

import boto3
import httpx
from loguru import logger

from ..errors import map_client_error
from ..models import Alert


class AlertSink(Protocol):
    async def fire(self, alert: Alert) -> None: ...

    async def resolve(self, alert: Alert) -> None: ...


class InMemoryAlertSink:
    def __init__(self) -> None:
        self.fired: list[Alert] = []
        self.resolved: list[Alert] = []

    async def fire(self, alert: Alert) -> None:
        self.fired.append(alert)

    async def resolve(self, alert: Alert) -> None:
        self.resolved.append(alert)


class SnsAlertSink:
    """Publishes alerts to an SNS topic."""

    def __init__(self, topic_arn: str, *, region_name: Optional[str] = None, client: Any = None):
        self.topic_arn = topic_arn
        self._sns = client or boto3.Session(region_name=region_name).client("sns")

    async def fire(self, alert: Alert) -> None:
        await self._publish(alert)

    async def resolve(self, alert: Alert) -> None:
        await self._publish(alert)

    async def _publish(self, alert: Alert) -> None:
        try:
            await asyncio.to_thread(
                self._sns.publish,
                TopicArn=self.topic_arn,
                Subject=alert.subject[:100],
                Message=json.dumps(
                    {"description": alert.describe(), **alert.model_dump(mode="json")}
                ),
            )
        except Exception as e:
            raise map_client_error(e) from e
        logger.info(f"Published '{alert.subject}' for {alert.execution_id} to {self.topic_arn}")


class WebhookAlertSink:
    """POSTs alerts as JSON to an HTTP endpoint, retrying with linear backoff.

    Args:
        endpoint: Full URL receiving the alert body
        timeout: Per-request timeout in seconds
        max_retries: Attempts per alert (including the first)
        backoff_base: Seconds multiplied by the attempt number between tries
    """

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 5.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self._client = client

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fire(self, alert: Alert) -> None:
        await self._post({"event": "rotation_failed", **self._body(alert)})

    async def resolve(self, alert: Alert) -> None:
        await self._post({"event": "rotation_recovered", **self._body(alert)})

    @staticmethod
    def _body(alert: Alert) -> dict[str, Any]:
        return {"description": alert.describe(), **alert.model_dump(mode="json")}

    async def _post(self, body: dict[str, Any]) -> None:
        if self._client is None:
            await self.start()

        last: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = await self._client.post(self.endpoint, json=body)
                if resp.status_code < 400:
                    logger.debug(f"Alert delivered to {self.endpoint} ({resp.status_code})")
                    return
                last = httpx.HTTPStatusError(
                    f"webhook returned {resp.status_code}", request=resp.request, response=resp
                )
            except httpx.HTTPError as exc:
                last = exc
            logger.warning(
                f"Alert delivery attempt {attempt}/{self.max_retries} failed: {last}"
            )
            if attempt < self.max_retries:
                await asyncio.sleep(self.backoff_base * attempt)

        raise map_client_error(last)
