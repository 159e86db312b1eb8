"""salesboard - real-time sale status board for a fixed unit inventory."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("salesboard")
except PackageNotFoundError:
    __version__ = "0+local"
from salesboard.config import BoardConfig
from salesboard.exceptions import (
    BoardConfigError,
    BoardError,
    BoardProtocolError,
    BoardStoreError,
)
from salesboard.inventory import generate_default_inventory
from salesboard.models import ClientRole, MessageType, RejectReason
from salesboard.server import build_app
from salesboard.state.cache import StatusCache
from salesboard.state.connections import ConnectionRegistry
from salesboard.store import (
    JsonFileUnitStore,
    MirroredUnitStore,
    RestUnitStore,
    UnitStore,
    build_store,
)
from salesboard.sync import HandleResult, SyncHandler

__all__ = [
    "__version__",
    "BoardConfig",
    "BoardConfigError",
    "BoardError",
    "BoardProtocolError",
    "BoardStoreError",
    "ClientRole",
    "ConnectionRegistry",
    "HandleResult",
    "JsonFileUnitStore",
    "MessageType",
    "MirroredUnitStore",
    "RejectReason",
    "RestUnitStore",
    "StatusCache",
    "SyncHandler",
    "UnitStore",
    "build_app",
    "build_store",
    "generate_default_inventory",
]
