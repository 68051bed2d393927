from __future__ import annotations

import asyncio

import pytest

from fuel_dispatch.adapters.memory_store import MemoryDataStore
from fuel_dispatch.domain.models import DriverProfile
from fuel_dispatch.services.push_binding import (
    FALLBACK_TARGET,
    PushBindingSync,
    SyncState,
    resolve_notification_target,
)

ALI = DriverProfile(name="Ali", phone="0500000001")


def test_unchanged_signature_does_not_write_again() -> None:
    store = MemoryDataStore()
    sync = PushBindingSync(store)

    assert asyncio.run(sync.on_registration("tok-1", "android", ALI)) is True
    assert asyncio.run(sync.bind_profile(ALI)) is False
    assert asyncio.run(sync.sync()) is False

    assert store.calls["upsert_push_token"] == 1
    record = store.push_tokens["tok-1"]
    assert (record.driver_name, record.driver_phone, record.platform) == ("Ali", "0500000001", "android")


def test_profile_change_writes_exactly_once() -> None:
    store = MemoryDataStore()
    sync = PushBindingSync(store)
    asyncio.run(sync.on_registration("tok-1", "android", ALI))

    changed = DriverProfile(name="Ali", phone="0500000002")
    asyncio.run(sync.bind_profile(changed))
    asyncio.run(sync.bind_profile(changed))

    assert store.calls["upsert_push_token"] == 2
    assert store.push_tokens["tok-1"].driver_phone == "0500000002"


def test_no_write_without_a_token() -> None:
    store = MemoryDataStore()
    sync = PushBindingSync(store)
    assert asyncio.run(sync.bind_profile(ALI)) is False
    assert store.calls["upsert_push_token"] == 0


def test_concurrent_syncs_collapse_into_one_write() -> None:
    store = MemoryDataStore(latency_seconds=0.01)
    sync = PushBindingSync(store)
    sync.binding.token = "tok-1"
    sync.binding.platform = "ios"
    sync.binding.profile = ALI

    async def _run() -> list[bool]:
        return await asyncio.gather(sync.sync(), sync.sync(), sync.sync())

    results = asyncio.run(_run())

    assert results.count(True) == 1
    assert store.calls["upsert_push_token"] == 1
    assert sync.binding.state is SyncState.IDLE


def test_failed_sync_is_retried_on_next_trigger() -> None:
    store = MemoryDataStore(fail_on={"upsert_push_token"})
    sync = PushBindingSync(store)

    assert asyncio.run(sync.on_registration("tok-1", "android", ALI)) is False
    assert sync.binding.last_synced_signature is None
    assert sync.binding.state is SyncState.IDLE

    store.fail_on = set()
    assert asyncio.run(sync.sync()) is True
    assert sync.to_read().last_synced_signature == "tok-1|Ali|0500000001|android"


def test_unbind_clears_driver_on_token() -> None:
    store = MemoryDataStore()
    sync = PushBindingSync(store)
    asyncio.run(sync.on_registration("tok-1", "android", ALI))

    assert asyncio.run(sync.unbind()) is True

    record = store.push_tokens["tok-1"]
    assert record.driver_name is None
    assert record.driver_phone is None
    assert sync.to_read().token == "tok-1"


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        ({"path": "/driver/tasks/42"}, "/driver/tasks/42"),
        ({"url": "#/driver/notifications"}, "/driver/notifications"),
        ({"path": "", "url": "/driver"}, "/driver"),
        ({"url": "https://example.com/x"}, FALLBACK_TARGET),
        ({"path": 42}, FALLBACK_TARGET),
        ({}, FALLBACK_TARGET),
        (None, FALLBACK_TARGET),
        ("not-a-mapping", FALLBACK_TARGET),
    ],
)
def test_notification_tap_routing(data: object, expected: str) -> None:
    assert resolve_notification_target(data) == expected
