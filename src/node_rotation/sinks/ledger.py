"""
Append-only history of rotation runs.

Used for two things the fleet and cluster cannot answer on their own:
whether another run for the same group looks unfinished, and whether the
previous run for a group failed (so a success can resolve its alert).
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from ..models import RunRecord

TERMINAL = {"succeeded", "skipped", "failed"}

# longer than the worst-case run (sum of both polling budgets)
DEFAULT_STALE_AFTER = timedelta(hours=12)


class RunLedger:
    """In-memory ledger; subclasses persist records elsewhere."""

    def __init__(self, *, stale_after: timedelta = DEFAULT_STALE_AFTER):
        self.stale_after = stale_after
        self._records: list[RunRecord] = []

    async def record(self, rec: RunRecord) -> None:
        self._records.append(rec)

    async def records(self) -> list[RunRecord]:
        return list(self._records)

    async def recent(self, limit: int = 20) -> list[RunRecord]:
        recs = await self.records()
        return recs[-limit:]

    async def last(self, group_id: str, *, exclude: Optional[str] = None) -> Optional[RunRecord]:
        """Latest terminal record for ``group_id``, ignoring execution ``exclude``."""
        for rec in reversed(await self.records()):
            if rec.group_id == group_id and rec.execution_id != exclude and rec.status in TERMINAL:
                return rec
        return None

    async def in_flight(
        self,
        group_id: str,
        *,
        exclude: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[str]:
        """Executions for ``group_id`` that started recently and never finished."""
        now = now or datetime.now(timezone.utc)
        latest: dict[str, RunRecord] = {}
        for rec in await self.records():
            if rec.group_id == group_id or rec.execution_id in latest:
                latest[rec.execution_id] = rec
        return [
            eid
            for eid, rec in latest.items()
            if eid != exclude and rec.status == "started" and now - rec.at < self.stale_after
        ]


class NdjsonRunLedger(RunLedger):
    """File-backed ledger (one RunRecord per line)."""

    def __init__(
        self,
        path: str | Path,
        *,
        mkdirs: bool = True,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
    ):
        super().__init__(stale_after=stale_after)
        self.path = Path(path)
        if mkdirs:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    async def record(self, rec: RunRecord) -> None:
        line = rec.model_dump_json() + "\n"
        async with self._lock:
            await asyncio.to_thread(self._append, line)

    async def records(self) -> list[RunRecord]:
        if not self.path.exists():
            return []
        lines = await asyncio.to_thread(self.path.read_text, "utf-8")
        return [RunRecord.model_validate_json(line) for line in lines.splitlines() if line.strip()]

    def _append(self, line: str) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line)
