from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest
from conftest import FakeConnection, MemoryStore, StalledConnection, frame

from salesboard.models.messages import ClientRole, MessageType, RejectReason
from salesboard.sync import SyncHandler


def _clock() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def _small_inventory() -> list[tuple[str, bool]]:
    return [("4-1-101", False), ("4-1-102", False), ("车位-A1", False)]


async def _handler(units: dict[str, bool] | None = None, **store_kwargs: object) -> tuple[SyncHandler, MemoryStore]:
    store = MemoryStore(units=dict(units or {}), **store_kwargs)  # type: ignore[arg-type]
    handler = SyncHandler(store, inventory=_small_inventory, clock=_clock)
    await handler.initialize()
    store.calls.clear()
    return handler, store


async def _register(handler: SyncHandler, role: str) -> FakeConnection:
    conn = FakeConnection()
    result = await handler.handle_message(conn, frame(type="register", clientType=role))
    assert result.accepted
    return conn


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_initialize_seeds_empty_store_with_inventory() -> None:
    store = MemoryStore()
    handler = SyncHandler(store, inventory=_small_inventory)

    assert await handler.initialize()

    assert store.units == dict(_small_inventory())
    assert handler.cache.snapshot() == dict(_small_inventory())
    assert store.calls == ["load_all", "bulk_replace"]


@pytest.mark.asyncio
async def test_initialize_loads_existing_store_without_reseeding() -> None:
    store = MemoryStore(units={"A": True, "B": False})
    handler = SyncHandler(store, inventory=_small_inventory)

    assert await handler.initialize()

    assert handler.cache.snapshot() == {"A": True, "B": False}
    assert "bulk_replace" not in store.calls


@pytest.mark.asyncio
async def test_initialize_does_not_touch_store_when_load_fails() -> None:
    store = MemoryStore(units={"A": True}, fail_once={"load_all"})
    handler = SyncHandler(store, inventory=_small_inventory)

    assert not await handler.initialize()

    assert len(handler.cache) == 0
    assert store.units == {"A": True}
    assert store.calls == ["load_all"]

    # An explicit reload is the recovery path.
    assert await handler.reload()
    assert handler.cache.snapshot() == {"A": True}


# ---------------------------------------------------------------------------
# register
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_register_sends_init_snapshot_to_requester_only() -> None:
    handler, _ = await _handler({"A": True, "B": False})
    display = await _register(handler, "display")
    admin = await _register(handler, "admin")

    assert display.sent == [{"type": "init", "data": {"A": True, "B": False}}]
    assert admin.sent == [{"type": "init", "data": {"A": True, "B": False}}]
    assert handler.registry.role_of(admin) == ClientRole.ADMIN
    assert handler.registry.count(ClientRole.DISPLAY) == 1


@pytest.mark.asyncio
async def test_reregister_with_other_role_is_rejected_and_role_kept() -> None:
    handler, _ = await _handler({"A": False})
    display = await _register(handler, "display")

    result = await handler.handle_message(display, frame(type="register", clientType="admin"))

    assert not result.accepted
    assert result.reason == RejectReason.ROLE_CONFLICT
    assert handler.registry.role_of(display) == ClientRole.DISPLAY
    assert handler.registry.count(ClientRole.ADMIN) == 0

    update = await handler.handle_message(display, frame(type="update-status", roomId="A", isSold=True))
    assert update.reason == RejectReason.UNAUTHORIZED


@pytest.mark.asyncio
async def test_reregister_with_same_role_resends_init() -> None:
    handler, _ = await _handler({"A": False})
    admin = await _register(handler, "admin")

    result = await handler.handle_message(admin, frame(type="register", clientType="admin"))

    assert result.accepted
    assert admin.types() == ["init", "init"]
    assert handler.registry.count(ClientRole.ADMIN) == 1


# ---------------------------------------------------------------------------
# update-status
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_status_persists_broadcasts_and_acks() -> None:
    handler, store = await _handler({"A": False, "B": False, "C": True})
    display = await _register(handler, "display")
    admin = await _register(handler, "admin")

    result = await handler.handle_message(admin, frame(type="update-status", roomId="A", isSold=True))

    assert result.accepted
    assert result.kind == MessageType.UPDATE_STATUS
    assert store.units == {"A": True, "B": False, "C": True}
    assert handler.cache.snapshot() == {"A": True, "B": False, "C": True}
    assert store.timestamps == [_clock()]
    assert display.last() == {"type": "status-update", "roomId": "A", "isSold": True}
    assert admin.last() == {"type": "update-success", "roomId": "A", "isSold": True}
    # Admins are not display subscribers.
    assert "status-update" not in admin.types()


@pytest.mark.asyncio
async def test_display_update_status_has_no_effect() -> None:
    handler, store = await _handler({"A": False})
    display = await _register(handler, "display")

    result = await handler.handle_message(display, frame(type="update-status", roomId="A", isSold=True))

    assert not result.accepted
    assert result.reason == RejectReason.UNAUTHORIZED
    assert handler.cache.get("A") is False
    assert store.calls == []
    assert display.types() == ["init"]


@pytest.mark.asyncio
async def test_unregistered_connection_defaults_to_display_role() -> None:
    handler, store = await _handler({"A": False})
    anonymous = FakeConnection()

    for payload in (
        frame(type="update-status", roomId="A", isSold=True),
        frame(type="batch-import", soldRooms=["A"]),
        frame(type="reset-all"),
    ):
        result = await handler.handle_message(anonymous, payload)
        assert result.reason == RejectReason.UNAUTHORIZED

    assert store.calls == []
    assert anonymous.sent == []


@pytest.mark.asyncio
async def test_sequential_updates_on_same_unit_keep_submission_order() -> None:
    handler, store = await _handler({"X": False, "Y": False})
    admin = await _register(handler, "admin")

    await handler.handle_message(admin, frame(type="update-status", roomId="X", isSold=True))
    await handler.handle_message(admin, frame(type="update-status", roomId="X", isSold=False))

    assert store.units["X"] is False
    assert handler.cache.get("X") is False


@pytest.mark.asyncio
async def test_concurrent_updates_are_serialized_in_submission_order() -> None:
    # The first write is slow; without serialization the second would land first
    # and then be overwritten.
    handler, store = await _handler({"X": False}, delays={"upsert": [0.05, 0.0]})
    admin_1 = await _register(handler, "admin")
    admin_2 = await _register(handler, "admin")
    display = await _register(handler, "display")

    await asyncio.gather(
        handler.handle_message(admin_1, frame(type="update-status", roomId="X", isSold=True)),
        handler.handle_message(admin_2, frame(type="update-status", roomId="X", isSold=False)),
    )

    assert store.units["X"] is False
    assert handler.cache.get("X") is False
    assert [f["isSold"] for f in display.sent if f["type"] == "status-update"] == [True, False]


@pytest.mark.asyncio
async def test_failed_persistence_sends_no_broadcast_and_no_success_ack() -> None:
    handler, store = await _handler({"A": False, "B": False}, fail_once={"upsert"})
    display = await _register(handler, "display")
    admin = await _register(handler, "admin")

    result = await handler.handle_message(admin, frame(type="update-status", roomId="A", isSold=True))

    assert not result.accepted
    assert result.reason == RejectReason.PERSISTENCE_FAILED
    assert display.types() == ["init"]
    assert "update-success" not in admin.types()
    assert admin.last() == {
        "type": "update-failed",
        "roomId": "A",
        "isSold": True,
        "reason": "persistence-failed",
    }
    # Optimistic cache write survives; the store does not have it.
    assert handler.cache.get("A") is True
    assert store.units["A"] is False

    assert await handler.reload()
    assert handler.cache.get("A") is False


@pytest.mark.asyncio
async def test_update_for_unknown_unit_is_rejected() -> None:
    handler, store = await _handler({"A": False})
    admin = await _register(handler, "admin")

    result = await handler.handle_message(admin, frame(type="update-status", roomId="Z-999", isSold=True))

    assert result.reason == RejectReason.UNKNOWN_UNIT
    assert "Z-999" not in handler.cache
    assert store.calls == []
    assert admin.types() == ["init"]


# ---------------------------------------------------------------------------
# batch-import
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_batch_import_broadcasts_full_update() -> None:
    handler, store = await _handler({"A": False, "B": False, "C": False})
    display = await _register(handler, "display")
    admin = await _register(handler, "admin")

    result = await handler.handle_message(admin, frame(type="batch-import", soldRooms=["A"]))

    assert result.accepted
    assert display.last() == {"type": "full-update", "data": {"A": True, "B": False, "C": False}}
    assert admin.last() == {"type": "import-success"}
    assert store.units == {"A": True, "B": False, "C": False}


@pytest.mark.asyncio
async def test_batch_import_resets_previous_sales_and_merges_both_lists() -> None:
    handler, store = await _handler({"4-1-101": True, "4-1-102": False, "车位-A1": False, "仓房-Z33": True})
    admin = await _register(handler, "admin")

    await handler.handle_message(
        admin,
        frame(type="batch-import", soldRooms=["4-1-102", "no-such-unit"], soldPw=["车位-A1"]),
    )

    assert store.units == {"4-1-101": False, "4-1-102": True, "车位-A1": True, "仓房-Z33": False}
    assert handler.cache.snapshot() == store.units
    assert store.calls == ["reset_all", "upsert_many", "load_all"]


@pytest.mark.asyncio
async def test_batch_import_without_lists_clears_everything() -> None:
    handler, store = await _handler({"A": True, "B": True})
    admin = await _register(handler, "admin")

    result = await handler.handle_message(admin, frame(type="batch-import"))

    assert result.accepted
    assert store.units == {"A": False, "B": False}
    assert "upsert_many" not in store.calls


@pytest.mark.asyncio
async def test_batch_import_failure_pushes_reconciled_snapshot_to_displays() -> None:
    handler, store = await _handler({"A": True, "B": False}, fail_once={"upsert_many"})
    display = await _register(handler, "display")
    admin = await _register(handler, "admin")

    result = await handler.handle_message(admin, frame(type="batch-import", soldRooms=["B"]))

    assert result.reason == RejectReason.PERSISTENCE_FAILED
    # The reset went through before the failure; cache and displays follow the store.
    assert handler.cache.snapshot() == store.units == {"A": False, "B": False}
    assert display.last() == {"type": "full-update", "data": {"A": False, "B": False}}
    assert admin.types() == ["init"]


@pytest.mark.asyncio
async def test_failed_write_that_changed_nothing_sends_nothing() -> None:
    handler, _ = await _handler({"A": True}, fail_once={"reset_all"})
    display = await _register(handler, "display")
    admin = await _register(handler, "admin")

    result = await handler.handle_message(admin, frame(type="batch-import", soldRooms=["A"]))

    assert result.reason == RejectReason.PERSISTENCE_FAILED
    assert display.types() == ["init"]
    assert admin.types() == ["init"]


# ---------------------------------------------------------------------------
# reset-all / maintenance
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reset_all_reinitializes_store_and_broadcasts() -> None:
    handler, store = await _handler({"old-unit": True})
    display = await _register(handler, "display")
    admin = await _register(handler, "admin")

    result = await handler.handle_message(admin, frame(type="reset-all"))

    assert result.accepted
    assert store.units == dict(_small_inventory())
    assert handler.cache.snapshot() == dict(_small_inventory())
    assert display.last() == {"type": "full-update", "data": dict(_small_inventory())}
    assert admin.last() == {"type": "reset-success"}


@pytest.mark.asyncio
async def test_reset_all_failure_sends_nothing() -> None:
    handler, _ = await _handler({"A": True}, fail_once={"bulk_replace"})
    display = await _register(handler, "display")
    admin = await _register(handler, "admin")

    result = await handler.handle_message(admin, frame(type="reset-all"))

    assert result.reason == RejectReason.PERSISTENCE_FAILED
    assert display.types() == ["init"]
    assert admin.types() == ["init"]
    assert handler.cache.snapshot() == {"A": True}


@pytest.mark.asyncio
async def test_restore_replaces_unit_set_wholesale() -> None:
    handler, store = await _handler({"A": False, "B": False})
    display = await _register(handler, "display")

    assert await handler.restore({"B": True, "NEW": False})

    assert store.units == {"B": True, "NEW": False}
    assert handler.cache.snapshot() == {"B": True, "NEW": False}
    assert display.last() == {"type": "full-update", "data": {"B": True, "NEW": False}}


# ---------------------------------------------------------------------------
# Rejections and broadcast
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "reason"),
    [
        ("not json", RejectReason.MALFORMED),
        ('["register"]', RejectReason.MALFORMED),
        ('{"type": "teleport"}', RejectReason.UNKNOWN_TYPE),
        ('{"clientType": "admin"}', RejectReason.UNKNOWN_TYPE),
        ('{"type": "register", "clientType": "root"}', RejectReason.MALFORMED),
        ('{"type": "update-status", "roomId": "A", "isSold": "yes"}', RejectReason.MALFORMED),
        ('{"type": "update-status", "roomId": "  ", "isSold": true}', RejectReason.MALFORMED),
        ('{"type": "batch-import", "soldRooms": "A"}', RejectReason.MALFORMED),
    ],
)
@pytest.mark.asyncio
async def test_invalid_frames_are_rejected_without_reply(raw: str, reason: RejectReason) -> None:
    handler, store = await _handler({"A": False})
    admin = await _register(handler, "admin")

    result = await handler.handle_message(admin, raw)

    assert not result.accepted
    assert result.reason == reason
    assert admin.types() == ["init"]
    assert store.calls == []


@pytest.mark.asyncio
async def test_broadcast_skips_closed_and_survives_failing_displays() -> None:
    handler, _ = await _handler({"A": False})
    healthy = await _register(handler, "display")
    closed = await _register(handler, "display")
    broken = await _register(handler, "display")
    admin = await _register(handler, "admin")
    closed.closed = True
    broken.fail_send = True

    result = await handler.handle_message(admin, frame(type="update-status", roomId="A", isSold=True))

    assert result.accepted
    assert healthy.last()["type"] == "status-update"
    assert closed.types() == ["init"]
    assert admin.last()["type"] == "update-success"


@pytest.mark.asyncio
async def test_disconnected_display_no_longer_receives_broadcasts() -> None:
    handler, _ = await _handler({"A": False})
    display = await _register(handler, "display")
    admin = await _register(handler, "admin")

    handler.disconnect(display)
    await handler.handle_message(admin, frame(type="update-status", roomId="A", isSold=True))

    assert display.types() == ["init"]
    assert handler.registry.role_of(display) is None
    assert handler.registry.count(ClientRole.DISPLAY) == 0


@pytest.mark.asyncio
async def test_stalled_display_is_dropped_without_blocking_admin_updates() -> None:
    store = MemoryStore(units={"A": False, "B": False})
    handler = SyncHandler(store, inventory=_small_inventory, clock=_clock, send_timeout=0.05)
    await handler.initialize()
    stalled = StalledConnection()
    handler.registry.register(stalled, ClientRole.DISPLAY)
    healthy = await _register(handler, "display")
    admin = await _register(handler, "admin")

    first, second = await asyncio.wait_for(
        asyncio.gather(
            handler.handle_message(admin, frame(type="update-status", roomId="A", isSold=True)),
            handler.handle_message(admin, frame(type="update-status", roomId="B", isSold=True)),
        ),
        timeout=2.0,
    )

    assert first.accepted and second.accepted
    assert store.units == {"A": True, "B": True}
    assert admin.types() == ["init", "update-success", "update-success"]
    assert [f["roomId"] for f in healthy.sent if f["type"] == "status-update"] == ["A", "B"]
    assert handler.registry.role_of(stalled) is None

    for _ in range(20):
        if stalled.closed:
            break
        await asyncio.sleep(0.01)
    assert stalled.closed
    await handler.shutdown()
