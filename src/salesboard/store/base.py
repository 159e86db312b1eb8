"""Structural interface shared by every durable store."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from datetime import datetime
from typing import Protocol, TypeVar

T = TypeVar("T")


class UnitStore(Protocol):
    """Durable unit status storage used by the protocol handler.

    Having a protocol here keeps the handler independent of the backend and
    makes it easy to pass test doubles.  Every method raises
    :class:`salesboard.exceptions.BoardStoreError` on failure; none of them
    retries.
    """

    async def load_all(self) -> dict[str, bool]:
        """Full snapshot; an empty or absent store yields ``{}``."""
        ...

    async def upsert(self, unit_id: str, sold: bool, timestamp: datetime) -> None:
        ...

    async def upsert_many(self, unit_ids: Sequence[str], sold: bool, timestamp: datetime) -> None:
        """Write the same flag for every id in *unit_ids*."""
        ...

    async def bulk_replace(self, items: Iterable[tuple[str, bool]]) -> None:
        """Replace the whole unit set with *items*."""
        ...

    async def reset_all(self) -> None:
        """Mark every currently stored unit unsold."""
        ...

    async def close(self) -> None:
        ...


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most *size* items."""
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start : start + size]
