"""Primary/secondary store pair ("both" persistence)."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Iterable, Sequence
from datetime import datetime

from salesboard.exceptions import BoardStoreError
from salesboard.store.base import UnitStore

_logger = logging.getLogger(__name__)


class MirroredUnitStore:
    """Write-through pair of stores.

    The primary is authoritative: reads come from it and its failures fail
    the operation.  The secondary (typically the local JSON file) receives
    every write afterwards as a warm copy; its failures are only logged.
    Every successful :meth:`load_all` also refreshes the secondary, so it
    converges back to the primary after a missed write.
    """

    def __init__(self, primary: UnitStore, secondary: UnitStore) -> None:
        self._primary = primary
        self._secondary = secondary

    async def _mirror(self, operation: str, call: Awaitable[None]) -> None:
        try:
            await call
        except BoardStoreError as exc:
            _logger.warning("Secondary store %s failed: %s", operation, exc)

    async def load_all(self) -> dict[str, bool]:
        units = await self._primary.load_all()
        if units:
            await self._mirror("refresh", self._secondary.bulk_replace(units.items()))
        return units

    async def upsert(self, unit_id: str, sold: bool, timestamp: datetime) -> None:
        await self._primary.upsert(unit_id, sold, timestamp)
        await self._mirror("upsert", self._secondary.upsert(unit_id, sold, timestamp))

    async def upsert_many(self, unit_ids: Sequence[str], sold: bool, timestamp: datetime) -> None:
        await self._primary.upsert_many(unit_ids, sold, timestamp)
        await self._mirror("upsert_many", self._secondary.upsert_many(unit_ids, sold, timestamp))

    async def bulk_replace(self, items: Iterable[tuple[str, bool]]) -> None:
        materialized = list(items)
        await self._primary.bulk_replace(materialized)
        await self._mirror("bulk_replace", self._secondary.bulk_replace(materialized))

    async def reset_all(self) -> None:
        await self._primary.reset_all()
        await self._mirror("reset_all", self._secondary.reset_all())

    async def close(self) -> None:
        try:
            await self._primary.close()
        finally:
            await self._secondary.close()
