"""
ClusterClient for Elasticsearch over its REST API (httpx).

Node identity on the cluster side is either the node name (expected to be
the instance id) or the node's private IP, chosen by ``node_match``.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

import httpx
from loguru import logger

from ..errors import UnexpectedState, map_client_error
from ..models import ClusterHealth, NodeCandidate

NodeMatch = Literal["name", "ip"]

REBALANCE_SETTING = "cluster.routing.rebalance.enable"
EXCLUDE_SETTING = {
    "name": "cluster.routing.allocation.exclude._name",
    "ip": "cluster.routing.allocation.exclude._ip",
}


class HttpClusterClient:
    """
    Async Elasticsearch client covering the calls node rotation needs.

    Usage:

        async with HttpClusterClient("http://es.internal:9200") as cluster:
            status = await cluster.get_health()
    """

    def __init__(
        self,
        base_url: str,
        *,
        node_match: NodeMatch = "name",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if node_match not in EXCLUDE_SETTING:
            raise ValueError(f"node_match must be one of {sorted(EXCLUDE_SETTING)}")
        self.base_url = base_url.rstrip("/")
        self.node_match = node_match
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)

    async def stop(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpClusterClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # ---------- internal helpers ----------

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        if self._client is None:
            await self.start()
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except Exception as e:
            raise map_client_error(e) from e

    async def _put_settings(self, settings: dict[str, Any]) -> None:
        await self._request("PUT", "/_cluster/settings", json={"persistent": settings})

    # ---------- ClusterClient ----------

    async def get_health(self) -> ClusterHealth:
        body = await self._request("GET", "/_cluster/health")
        try:
            return ClusterHealth(body["status"])
        except (KeyError, ValueError):
            raise UnexpectedState(f"unrecognised cluster health payload: {body}") from None

    async def node_count(self) -> int:
        body = await self._request("GET", "/_cluster/health")
        try:
            return int(body["number_of_nodes"])
        except (KeyError, TypeError, ValueError):
            raise UnexpectedState(f"cluster health payload has no node count: {body}") from None

    async def set_rebalancing(self, enabled: bool) -> None:
        value = "all" if enabled else "none"
        logger.info(f"Setting {REBALANCE_SETTING}={value}")
        await self._put_settings({REBALANCE_SETTING: value})

    async def evacuate(self, node_id: str) -> None:
        setting = EXCLUDE_SETTING[self.node_match]
        logger.info(f"Excluding {node_id} from allocation ({setting})")
        await self._put_settings({setting: node_id})

    async def clear_evacuation(self, node_id: str) -> None:
        setting = EXCLUDE_SETTING[self.node_match]
        logger.info(f"Clearing allocation exclusion of {node_id} ({setting})")
        await self._put_settings({setting: None})

    async def get_allocation(self, node_id: str) -> int:
        rows = await self._request(
            "GET",
            "/_cat/shards",
            params={"format": "json", "h": "index,shard,prirep,state,node,ip"},
        )
        return sum(1 for row in rows if self._row_on_node(row, node_id))

    def node_id_for(self, candidate: NodeCandidate) -> str:
        if self.node_match == "ip":
            if not candidate.private_ip:
                raise UnexpectedState(f"{candidate.instance_id} has no private IP to match on")
            return candidate.private_ip
        return candidate.instance_id

    def _row_on_node(self, row: dict, node_id: str) -> bool:
        if self.node_match == "ip":
            return row.get("ip") == node_id
        # relocating shards read "source -> ip id target"; the source still holds it
        node = (row.get("node") or "").split(" -> ")[0].strip()
        return node == node_id
