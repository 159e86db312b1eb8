from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from salesboard.exceptions import BoardStoreError


@dataclass
class MemoryStore:
    """In-memory unit store with scriptable failures.

    ``fail_once`` holds operation names that fail on their next call only;
    ``fail_always`` names operations that always fail.  ``delays`` maps an
    operation name to a list of per-call sleeps (consumed in order).
    """

    units: dict[str, bool] = field(default_factory=dict)
    fail_once: set[str] = field(default_factory=set)
    fail_always: set[str] = field(default_factory=set)
    delays: dict[str, list[float]] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)
    timestamps: list[datetime] = field(default_factory=list)
    closed: bool = False

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        pending = self.delays.get(operation)
        if pending:
            await asyncio.sleep(pending.pop(0))
        if operation in self.fail_once:
            self.fail_once.discard(operation)
            raise BoardStoreError(f"{operation} failed (scripted)", endpoint=operation)
        if operation in self.fail_always:
            raise BoardStoreError(f"{operation} failed (scripted)", endpoint=operation)

    async def load_all(self) -> dict[str, bool]:
        await self._enter("load_all")
        return dict(self.units)

    async def upsert(self, unit_id: str, sold: bool, timestamp: datetime) -> None:
        await self._enter("upsert")
        self.timestamps.append(timestamp)
        self.units[unit_id] = sold

    async def upsert_many(self, unit_ids: Sequence[str], sold: bool, timestamp: datetime) -> None:
        await self._enter("upsert_many")
        for unit_id in unit_ids:
            self.units[unit_id] = sold

    async def bulk_replace(self, items: Iterable[tuple[str, bool]]) -> None:
        await self._enter("bulk_replace")
        self.units = dict(items)

    async def reset_all(self) -> None:
        await self._enter("reset_all")
        self.units = dict.fromkeys(self.units, False)

    async def close(self) -> None:
        self.closed = True


@dataclass(eq=False)
class FakeConnection:
    """Connection double recording decoded outbound frames."""

    closed: bool = False
    fail_send: bool = False
    sent: list[dict[str, Any]] = field(default_factory=list)

    async def send_str(self, data: str) -> None:
        if self.fail_send:
            raise ConnectionResetError("peer went away")
        self.sent.append(json.loads(data))

    async def close(self) -> bool:
        self.closed = True
        return True

    def types(self) -> list[str]:
        return [frame["type"] for frame in self.sent]

    def last(self) -> dict[str, Any]:
        return self.sent[-1]


@dataclass(eq=False)
class StalledConnection(FakeConnection):
    """Peer that stopped reading: every send blocks until cancelled."""

    async def send_str(self, data: str) -> None:
        await asyncio.sleep(3600)


def frame(**payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False)
