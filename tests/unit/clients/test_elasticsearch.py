"""
Unit tests for HttpClusterClient against a mocked Elasticsearch REST API.
"""

import json

import httpx
import pytest

from node_rotation.clients.elasticsearch import HttpClusterClient
from node_rotation.errors import ClientError, TransientOperationalError, UnexpectedState
from node_rotation.models import ClusterHealth, NodeCandidate


def _row(shard, prirep, state, node, ip):
    return {
        "index": "logs",
        "shard": shard,
        "prirep": prirep,
        "state": state,
        "node": node,
        "ip": ip,
    }


SHARDS = [
    _row("0", "p", "STARTED", "i-aaa", "10.0.0.1"),
    _row("0", "r", "STARTED", "i-bbb", "10.0.0.2"),
    _row("1", "p", "RELOCATING", "i-aaa -> 10.0.0.3 Xyz i-ccc", "10.0.0.1"),
    _row("2", "r", "UNASSIGNED", None, None),
]


class FakeEs:
    """Records requests and serves canned responses."""

    def __init__(self, health=None, shards=None, status_code=200):
        self.health = health or {"status": "green", "number_of_nodes": 5}
        self.shards = shards if shards is not None else SHARDS
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "nope"})
        if request.url.path == "/_cluster/health":
            return httpx.Response(200, json=self.health)
        if request.url.path == "/_cat/shards":
            return httpx.Response(200, json=self.shards)
        if request.url.path == "/_cluster/settings":
            return httpx.Response(200, json={"acknowledged": True})
        return httpx.Response(404)


def _client(fake: FakeEs, **kw) -> HttpClusterClient:
    http = httpx.AsyncClient(base_url="http://es:9200", transport=httpx.MockTransport(fake))
    return HttpClusterClient("http://es:9200", client=http, **kw)


@pytest.mark.asyncio
async def test_health_and_node_count():
    fake = FakeEs(health={"status": "yellow", "number_of_nodes": 6})
    es = _client(fake)

    assert await es.get_health() is ClusterHealth.YELLOW
    assert await es.node_count() == 6


@pytest.mark.asyncio
async def test_unrecognised_health_is_unexpected():
    es = _client(FakeEs(health={"status": "purple"}))
    with pytest.raises(UnexpectedState):
        await es.get_health()
    with pytest.raises(UnexpectedState):
        await es.node_count()


@pytest.mark.asyncio
async def test_rebalancing_uses_persistent_settings():
    fake = FakeEs()
    es = _client(fake)

    await es.set_rebalancing(False)
    await es.set_rebalancing(True)

    bodies = [json.loads(r.content) for r in fake.requests]
    assert all(r.method == "PUT" for r in fake.requests)
    assert bodies == [
        {"persistent": {"cluster.routing.rebalance.enable": "none"}},
        {"persistent": {"cluster.routing.rebalance.enable": "all"}},
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "node_match, node_id, setting",
    [
        ("name", "i-aaa", "cluster.routing.allocation.exclude._name"),
        ("ip", "10.0.0.1", "cluster.routing.allocation.exclude._ip"),
    ],
)
async def test_evacuate_sets_allocation_exclusion(node_match, node_id, setting):
    fake = FakeEs()
    es = _client(fake, node_match=node_match)

    await es.evacuate(node_id)

    assert json.loads(fake.requests[0].content) == {"persistent": {setting: node_id}}


@pytest.mark.asyncio
async def test_retirement_settings_clear_ip_exclusion():
    fake = FakeEs()
    es = _client(fake, node_match="ip")

    await es.set_rebalancing(False)
    await es.evacuate("10.0.0.5")
    await es.clear_evacuation("10.0.0.5")
    await es.set_rebalancing(True)

    bodies = [json.loads(r.content)["persistent"] for r in fake.requests]
    assert bodies == [
        {"cluster.routing.rebalance.enable": "none"},
        {"cluster.routing.allocation.exclude._ip": "10.0.0.5"},
        {"cluster.routing.allocation.exclude._ip": None},
        {"cluster.routing.rebalance.enable": "all"},
    ]


@pytest.mark.asyncio
async def test_allocation_counts_shards_on_node_including_relocating_source():
    fake = FakeEs()
    es = _client(fake)

    assert await es.get_allocation("i-aaa") == 2
    assert await es.get_allocation("i-bbb") == 1
    assert await es.get_allocation("i-ccc") == 0
    assert fake.requests[0].url.params["format"] == "json"


@pytest.mark.asyncio
async def test_allocation_by_ip():
    es = _client(FakeEs(), node_match="ip")
    assert await es.get_allocation("10.0.0.1") == 2


@pytest.mark.asyncio
async def test_server_errors_are_transient_client_errors_are_not():
    with pytest.raises(TransientOperationalError):
        await _client(FakeEs(status_code=503)).get_health()
    with pytest.raises(ClientError):
        await _client(FakeEs(status_code=403)).set_rebalancing(False)


def test_node_id_mapping(now):
    node = NodeCandidate(instance_id="i-aaa", launch_time=now, private_ip="10.0.0.1")
    assert HttpClusterClient("http://es:9200").node_id_for(node) == "i-aaa"
    assert HttpClusterClient("http://es:9200", node_match="ip").node_id_for(node) == "10.0.0.1"

    no_ip = NodeCandidate(instance_id="i-bbb", launch_time=now)
    with pytest.raises(UnexpectedState):
        HttpClusterClient("http://es:9200", node_match="ip").node_id_for(no_ip)


def test_rejects_unknown_node_match():
    with pytest.raises(ValueError):
        HttpClusterClient("http://es:9200", node_match="hostname")


@pytest.mark.asyncio
async def test_owned_client_lifecycle():
    es = HttpClusterClient("http://es:9200/")
    assert es.base_url == "http://es:9200"
    async with es:
        assert es._client is not None
    assert es._client is None
