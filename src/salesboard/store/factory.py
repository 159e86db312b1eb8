"""Store factory."""

from __future__ import annotations

import aiohttp

from salesboard._constants import STORE_FILE, STORE_REST
from salesboard.config import BoardConfig
from salesboard.store.base import UnitStore
from salesboard.store.file import JsonFileUnitStore
from salesboard.store.mirror import MirroredUnitStore
from salesboard.store.rest import RestUnitStore


def build_store(config: BoardConfig, *, http_session: aiohttp.ClientSession | None = None) -> UnitStore:
    """Create the durable store named by ``config.store_backend``."""
    config.validate()
    if config.store_backend == STORE_FILE:
        return JsonFileUnitStore(config.data_file)

    rest = RestUnitStore(config, http_session=http_session)
    if config.store_backend == STORE_REST:
        return rest
    return MirroredUnitStore(rest, JsonFileUnitStore(config.data_file))
