"""
Append-only store for long-running command output.

Steps write observations (evacuation commands, migration polls) keyed by
execution id; operators read them back for audit. The orchestrator never
reads this store.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class OutputRecord:
    execution_id: str
    step: str
    payload: dict[str, Any]
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        return json.dumps(
            {
                "execution_id": self.execution_id,
                "step": self.step,
                "payload": self.payload,
                "at": self.at.isoformat(),
            },
            default=str,
        )

    @classmethod
    def from_json(cls, line: str) -> "OutputRecord":
        d = json.loads(line)
        return cls(
            execution_id=d["execution_id"],
            step=d["step"],
            payload=d.get("payload") or {},
            at=datetime.fromisoformat(d["at"]),
        )


class OutputSink(Protocol):
    async def write(self, execution_id: str, step: str, payload: dict[str, Any]) -> None: ...

    async def read(
        self, execution_id: Optional[str] = None, limit: int = 100
    ) -> list[OutputRecord]: ...


class InMemoryOutputSink:
    def __init__(self) -> None:
        self.records: list[OutputRecord] = []

    async def write(self, execution_id: str, step: str, payload: dict[str, Any]) -> None:
        self.records.append(OutputRecord(execution_id, step, dict(payload)))

    async def read(
        self, execution_id: Optional[str] = None, limit: int = 100
    ) -> list[OutputRecord]:
        recs = [r for r in self.records if execution_id is None or r.execution_id == execution_id]
        return recs[-limit:]


class NdjsonOutputSink:
    """File-backed output store, one JSON object per line."""

    def __init__(self, path: str | Path, *, mkdirs: bool = True):
        self.path = Path(path)
        if mkdirs:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    async def write(self, execution_id: str, step: str, payload: dict[str, Any]) -> None:
        line = OutputRecord(execution_id, step, dict(payload)).to_json() + "\n"
        async with self._lock:
            await asyncio.to_thread(self._append, line)

    async def read(
        self, execution_id: Optional[str] = None, limit: int = 100
    ) -> list[OutputRecord]:
        if not self.path.exists():
            return []
        lines = await asyncio.to_thread(self._read_lines)
        out: list[OutputRecord] = []
        for line in lines:
            if not line.strip():
                continue
            rec = OutputRecord.from_json(line)
            if execution_id is None or rec.execution_id == execution_id:
                out.append(rec)
        return out[-limit:]

    def _append(self, line: str) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line)

    def _read_lines(self) -> list[str]:
        with self.path.open("r", encoding="utf-8") as f:
            return f.readlines()
