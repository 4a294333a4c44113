"""
Unit tests for the command-output store.
"""

import pytest

from node_rotation.sinks.output import InMemoryOutputSink, NdjsonOutputSink, OutputRecord


@pytest.mark.asyncio
async def test_ndjson_output_append_and_read(tmp_path):
    sink = NdjsonOutputSink(tmp_path / "out" / "output.ndjson")

    await sink.write("e1", "MigrateShards", {"command": "evacuate", "node": "i-1"})
    await sink.write("e2", "MigrateShards", {"command": "evacuate", "node": "i-9"})
    await sink.write("e1", "ShardMigrationCheck", {"node": "i-1", "shards_remaining": 4})

    recs = await sink.read("e1")
    assert [r.step for r in recs] == ["MigrateShards", "ShardMigrationCheck"]
    assert recs[1].payload["shards_remaining"] == 4
    assert len(await sink.read()) == 3
    assert len(await sink.read(limit=1)) == 1


@pytest.mark.asyncio
async def test_read_before_any_write(tmp_path):
    assert await NdjsonOutputSink(tmp_path / "x.ndjson").read() == []


def test_record_json_is_lossless():
    rec = OutputRecord("e1", "MigrateShards", {"node": "i-1"})
    back = OutputRecord.from_json(rec.to_json())
    assert back == rec


@pytest.mark.asyncio
async def test_in_memory_sink_copies_payload():
    sink = InMemoryOutputSink()
    payload = {"node": "i-1"}
    await sink.write("e1", "MigrateShards", payload)
    payload["node"] = "changed"

    assert (await sink.read("e1"))[0].payload == {"node": "i-1"}
    assert await sink.read("other") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("make_sink", ["ndjson", "memory"])
async def test_limit_keeps_latest_records(tmp_path, make_sink):
    if make_sink == "ndjson":
        sink = NdjsonOutputSink(tmp_path / "output.ndjson")
    else:
        sink = InMemoryOutputSink()
    for n in range(5):
        await sink.write("e1", "ShardMigrationCheck", {"shards_remaining": 4 - n})
    await sink.write("e2", "MigrateShards", {"node": "i-9"})

    recs = await sink.read("e1", limit=2)

    assert [r.payload["shards_remaining"] for r in recs] == [1, 0]
