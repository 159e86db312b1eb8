"""Authoritative in-memory unit status map."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType


class StatusCache:
    """Unit id → sold flag, consulted on every read.

    Keys are opaque strings.  The cache does not check membership in the
    default inventory; the protocol handler decides which ids it accepts.
    """

    def __init__(self, initial: Mapping[str, bool] | None = None) -> None:
        self._units: dict[str, bool] = dict(initial or {})
        self._view: Mapping[str, bool] = MappingProxyType(self._units)

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._units

    def __len__(self) -> int:
        return len(self._units)

    def get_all(self) -> Mapping[str, bool]:
        """Read-only live view of the current state."""
        return self._view

    def snapshot(self) -> dict[str, bool]:
        """Independent copy of the current state."""
        return dict(self._units)

    def get(self, unit_id: str) -> bool | None:
        return self._units.get(unit_id)

    def set(self, unit_id: str, sold: bool) -> None:
        self._units[unit_id] = sold

    def replace_all(self, snapshot: Mapping[str, bool] | Iterable[tuple[str, bool]]) -> None:
        """Swap in a complete snapshot; ids missing from it are dropped."""
        self._units.clear()
        self._units.update(snapshot)
