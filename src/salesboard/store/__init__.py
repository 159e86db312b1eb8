"""Durable store adapters.

Every adapter implements :class:`salesboard.store.base.UnitStore` and
raises :class:`salesboard.exceptions.BoardStoreError` on failure.
"""

from salesboard.store.base import UnitStore
from salesboard.store.factory import build_store
from salesboard.store.file import JsonFileUnitStore
from salesboard.store.mirror import MirroredUnitStore
from salesboard.store.rest import RestUnitStore

__all__ = [
    "JsonFileUnitStore",
    "MirroredUnitStore",
    "RestUnitStore",
    "UnitStore",
    "build_store",
]
