"""Message-driven synchronization between admins, displays and the store.

:class:`SyncHandler` is the only component allowed to mutate the
:class:`~salesboard.state.cache.StatusCache`.  Every accepted mutation is
applied to the cache, written to the durable store and then fanned out to
the display connections.  Mutations are serialized through a single lock,
so they reach the store in the order they were submitted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from salesboard._constants import DEFAULT_SEND_TIMEOUT
from salesboard.exceptions import BoardProtocolError, BoardStoreError
from salesboard.inventory import generate_default_inventory
from salesboard.models._base import BoardBaseModel
from salesboard.models.messages import (
    ADMIN_ONLY,
    BatchImportMessage,
    ClientRole,
    FullUpdateMessage,
    ImportSuccessMessage,
    InitMessage,
    MessageType,
    RegisterMessage,
    RejectReason,
    ResetAllMessage,
    ResetSuccessMessage,
    StatusUpdateMessage,
    UpdateFailedMessage,
    UpdateStatusMessage,
    UpdateSuccessMessage,
    parse_inbound,
)
from salesboard.state.cache import StatusCache
from salesboard.state.connections import Connection, ConnectionRegistry
from salesboard.store.base import UnitStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class HandleResult:
    """Outcome of one inbound frame.

    Rejected frames get no reply on the wire (except ``update-failed``);
    the result is what callers and tests inspect instead.
    """

    kind: MessageType | None
    accepted: bool
    reason: RejectReason | None = None

    @classmethod
    def ok(cls, kind: MessageType) -> HandleResult:
        return cls(kind=kind, accepted=True)

    @classmethod
    def rejected(cls, kind: MessageType | None, reason: RejectReason) -> HandleResult:
        return cls(kind=kind, accepted=False, reason=reason)


class SyncHandler:
    """Validate, authorize, apply, persist and broadcast client messages.

    Usage::

        handler = SyncHandler(store)
        await handler.initialize()
        result = await handler.handle_message(ws, frame_text)
    """

    def __init__(
        self,
        store: UnitStore,
        *,
        cache: StatusCache | None = None,
        registry: ConnectionRegistry | None = None,
        inventory: Callable[[], list[tuple[str, bool]]] = generate_default_inventory,
        clock: Callable[[], datetime] = _utcnow,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
    ) -> None:
        self._store = store
        self._cache = cache if cache is not None else StatusCache()
        self._registry = registry if registry is not None else ConnectionRegistry()
        self._inventory = inventory
        self._clock = clock
        self._send_timeout = send_timeout
        self._write_lock = asyncio.Lock()
        self._closing: set[asyncio.Task[None]] = set()

    @property
    def cache(self) -> StatusCache:
        return self._cache

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def store(self) -> UnitStore:
        return self._store

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """Populate the cache from the store, seeding an empty store first.

        A store that cannot be read is left untouched (it may hold data we
        merely failed to fetch) and the cache stays empty until a reload.
        """
        async with self._write_lock:
            try:
                units = await self._store.load_all()
            except BoardStoreError as exc:
                _logger.error("Initial load failed, starting with an empty cache: %s", exc)
                return False

            if units:
                self._cache.replace_all(units)
                _logger.info("Loaded %d unit(s) from store", len(units))
                return True

            _logger.info("Store is empty, seeding default inventory")
            inventory = self._inventory()
            seeded = await self._persist("bulk_replace", self._store.bulk_replace(inventory))
            self._cache.replace_all(inventory)
            if not seeded:
                _logger.warning("Serving %d default unit(s) that are not persisted", len(inventory))
            return seeded

    def disconnect(self, connection: Connection) -> None:
        role = self._registry.unregister(connection)
        if role is not None:
            _logger.info("%s connection closed (%d remaining)", role, self._registry.count(role))

    async def shutdown(self) -> None:
        """Cancel closes still pending for dropped connections."""
        pending = list(self._closing)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Inbound dispatch
    # ------------------------------------------------------------------

    async def handle_message(self, connection: Connection, raw: str | bytes) -> HandleResult:
        """Process one inbound text frame from *connection*."""
        try:
            message = parse_inbound(raw)
        except BoardProtocolError as exc:
            _logger.warning("Dropping frame: %s", exc)
            return HandleResult.rejected(None, RejectReason(exc.reason))

        kind = MessageType(message.type)
        role = self._registry.role_of(connection) or ClientRole.DISPLAY
        if kind in ADMIN_ONLY and role != ClientRole.ADMIN:
            _logger.warning("Dropping %s from %s connection", kind, role)
            return HandleResult.rejected(kind, RejectReason.UNAUTHORIZED)

        if isinstance(message, RegisterMessage):
            return await self._register(connection, message)
        if isinstance(message, UpdateStatusMessage):
            return await self._update_status(connection, message)
        if isinstance(message, BatchImportMessage):
            return await self._batch_import(connection, message)
        if isinstance(message, ResetAllMessage):
            return await self._reset_all(connection)
        return HandleResult.rejected(kind, RejectReason.UNKNOWN_TYPE)

    async def _register(self, connection: Connection, message: RegisterMessage) -> HandleResult:
        role = message.client_type
        if not self._registry.register(connection, role):
            return HandleResult.rejected(MessageType.REGISTER, RejectReason.ROLE_CONFLICT)
        _logger.info("%s connection registered (%d total)", role, self._registry.count(role))
        await self._send(connection, InitMessage(data=self._cache.snapshot()))
        return HandleResult.ok(MessageType.REGISTER)

    async def _update_status(self, connection: Connection, message: UpdateStatusMessage) -> HandleResult:
        room_id, is_sold = message.room_id, message.is_sold
        async with self._write_lock:
            if room_id not in self._cache:
                _logger.warning("Ignoring update for unknown unit %r", room_id)
                return HandleResult.rejected(MessageType.UPDATE_STATUS, RejectReason.UNKNOWN_UNIT)

            _logger.info("Update %s -> %s", room_id, is_sold)
            # The cache keeps this value even if the write fails; a reload reconciles.
            self._cache.set(room_id, is_sold)
            persisted = await self._persist("upsert", self._store.upsert(room_id, is_sold, self._clock()))
            if persisted:
                await self.broadcast_to_displays(StatusUpdateMessage(room_id=room_id, is_sold=is_sold))

        if not persisted:
            await self._send(
                connection,
                UpdateFailedMessage(room_id=room_id, is_sold=is_sold, reason=RejectReason.PERSISTENCE_FAILED),
            )
            return HandleResult.rejected(MessageType.UPDATE_STATUS, RejectReason.PERSISTENCE_FAILED)

        await self._send(connection, UpdateSuccessMessage(room_id=room_id, is_sold=is_sold))
        return HandleResult.ok(MessageType.UPDATE_STATUS)

    async def _batch_import(self, connection: Connection, message: BatchImportMessage) -> HandleResult:
        requested = message.sold_ids()
        async with self._write_lock:
            sold = [unit_id for unit_id in requested if unit_id in self._cache]
            unknown = len(requested) - len(sold)
            if unknown:
                _logger.warning("Batch import skips %d unknown unit id(s)", unknown)
            _logger.info("Batch import: %d sold of %d unit(s)", len(sold), len(self._cache))

            expected = dict.fromkeys(self._cache.snapshot(), False)
            expected.update(dict.fromkeys(sold, True))

            persisted = await self._persist("reset_all", self._store.reset_all())
            if persisted and sold:
                persisted = await self._persist("upsert_many", self._store.upsert_many(sold, True, self._clock()))
            if not persisted:
                await self._reconcile_locked()
                return HandleResult.rejected(MessageType.BATCH_IMPORT, RejectReason.PERSISTENCE_FAILED)

            if not await self._reload_locked():
                self._cache.replace_all(expected)
            await self.broadcast_to_displays(FullUpdateMessage(data=self._cache.snapshot()))

        await self._send(connection, ImportSuccessMessage())
        return HandleResult.ok(MessageType.BATCH_IMPORT)

    async def _reset_all(self, connection: Connection) -> HandleResult:
        _logger.info("Reset requested by admin")
        if not await self.reinitialize():
            return HandleResult.rejected(MessageType.RESET_ALL, RejectReason.PERSISTENCE_FAILED)
        await self._send(connection, ResetSuccessMessage())
        return HandleResult.ok(MessageType.RESET_ALL)

    # ------------------------------------------------------------------
    # Maintenance operations (also used by the HTTP surface)
    # ------------------------------------------------------------------

    async def reinitialize(self) -> bool:
        """Replace the store with the default inventory and broadcast it."""
        async with self._write_lock:
            inventory = self._inventory()
            if not await self._persist("bulk_replace", self._store.bulk_replace(inventory)):
                await self._reconcile_locked()
                return False
            if not await self._reload_locked():
                self._cache.replace_all(inventory)
            _logger.info("Store reinitialized with %d unit(s)", len(self._cache))
            await self.broadcast_to_displays(FullUpdateMessage(data=self._cache.snapshot()))
        return True

    async def restore(self, snapshot: Mapping[str, bool]) -> bool:
        """Replace the whole unit set with *snapshot* and broadcast it."""
        async with self._write_lock:
            if not await self._persist("bulk_replace", self._store.bulk_replace(snapshot.items())):
                await self._reconcile_locked()
                return False
            self._cache.replace_all(snapshot)
            _logger.info("Restored snapshot of %d unit(s)", len(snapshot))
            await self.broadcast_to_displays(FullUpdateMessage(data=self._cache.snapshot()))
        return True

    async def reload(self, *, notify_displays: bool = False) -> bool:
        """Re-read the store into the cache; the only recovery after a failure."""
        async with self._write_lock:
            if not await self._reload_locked():
                return False
            if notify_displays:
                await self.broadcast_to_displays(FullUpdateMessage(data=self._cache.snapshot()))
        return True

    async def _reload_locked(self) -> bool:
        try:
            units = await self._store.load_all()
        except BoardStoreError as exc:
            _logger.error("Reload from store failed: %s", exc)
            return False
        self._cache.replace_all(units)
        return True

    async def _reconcile_locked(self) -> None:
        """Reload after a partial write; displays get the result if it changed."""
        before = self._cache.snapshot()
        if not await self._reload_locked():
            return
        current = self._cache.snapshot()
        if current != before:
            _logger.warning("Store diverged after failed write, pushing reloaded snapshot to displays")
            await self.broadcast_to_displays(FullUpdateMessage(data=current))

    async def _persist(self, operation: str, call: Awaitable[None]) -> bool:
        try:
            await call
        except BoardStoreError as exc:
            _logger.error("Store %s failed: %s", operation, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def broadcast_to_displays(self, message: BoardBaseModel) -> int:
        """Send *message* to every open display connection.

        Fire-and-forget: recipients are a snapshot of the display set taken
        now, closed connections are skipped and failed sends are logged, not
        retried.  Each send is bounded by the send timeout; a display that
        does not accept the frame in time is dropped, so a stalled peer
        cannot hold up the caller.  Returns the number of successful sends.
        """
        payload = message.to_wire()
        recipients = [conn for conn in self._registry.members(ClientRole.DISPLAY) if not conn.closed]
        if not recipients:
            return 0

        results = await asyncio.gather(
            *(self._deliver(conn, payload) for conn in recipients),
            return_exceptions=True,
        )
        delivered = 0
        for result in results:
            if isinstance(result, BaseException):
                _logger.warning("Broadcast to display failed: %r", result)
            elif result:
                delivered += 1
        _logger.debug("Broadcast %s to %d display(s)", getattr(message, "type", "?"), delivered)
        return delivered

    async def _send(self, connection: Connection, message: BoardBaseModel) -> None:
        if connection.closed:
            _logger.debug("Skipping %s to closed connection", getattr(message, "type", "?"))
            return
        await self._deliver(connection, message.to_wire())

    async def _deliver(self, connection: Connection, payload: str) -> bool:
        try:
            await asyncio.wait_for(connection.send_str(payload), timeout=self._send_timeout)
        except TimeoutError:
            _logger.warning("Connection did not accept a frame within %.1fs, dropping it", self._send_timeout)
            self._drop(connection)
            return False
        except (ConnectionError, RuntimeError) as exc:
            _logger.warning("Send to connection failed: %s", exc)
            return False
        return True

    def _drop(self, connection: Connection) -> None:
        self.disconnect(connection)
        task = asyncio.create_task(self._close_quietly(connection))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close_quietly(self, connection: Connection) -> None:
        try:
            await asyncio.wait_for(connection.close(), timeout=self._send_timeout)
        except (TimeoutError, ConnectionError, RuntimeError) as exc:
            _logger.debug("Closing dropped connection failed: %r", exc)
