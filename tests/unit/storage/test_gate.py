"""StorageGate state transitions and overlays."""

import asyncio

import pytest

from capture_control.camera.hardware import StorageChange
from capture_control.camera.state import Size, StorageState
from capture_control.core.events import Topic
from capture_control.storage.gate import StorageGate, overlay_for
from tests.infrastructure.mocks import MockDeviceStorage


@pytest.fixture
def gate_parts(event_log):
    bus, events = event_log
    storage = MockDeviceStorage("pictures")
    gate = StorageGate(storage, bus)
    gate.set_picture_size(Size(1000, 1000))
    return gate, storage, events


def test_overlay_is_pure_function_of_state():
    assert overlay_for(StorageState.UNINITIALIZED) is None
    assert overlay_for(StorageState.AVAILABLE) is None
    assert overlay_for(StorageState.NO_CARD) == "nocard"
    assert overlay_for(StorageState.UNMOUNTED) == "pluggedin"
    assert overlay_for(StorageState.LOW_CAPACITY) == "nospace"


@pytest.mark.asyncio
async def test_uninitialized_to_no_card(gate_parts):
    gate, storage, events = gate_parts
    storage.availability = "unavailable"

    assert await gate.check() is StorageState.NO_CARD
    assert gate.overlay == "nocard"
    assert ("free_space",) not in storage.calls
    status = [e.payload for e in events if e.topic is Topic.STORAGE_STATE][-1]
    assert status.overlay == "nocard"


@pytest.mark.asyncio
async def test_shared_storage_is_unmounted(gate_parts):
    gate, storage, _ = gate_parts
    storage.availability = "shared"
    assert await gate.check() is StorageState.UNMOUNTED
    assert gate.overlay == "pluggedin"


@pytest.mark.asyncio
async def test_low_capacity_threshold(gate_parts):
    gate, storage, _ = gate_parts
    threshold = 1000 * 1000 * 4 + 4096

    storage.free = threshold
    assert await gate.check() is StorageState.AVAILABLE

    storage.free = threshold - 1
    assert await gate.check() is StorageState.LOW_CAPACITY
    assert not gate.admits_capture()


@pytest.mark.asyncio
async def test_low_capacity_recovers_when_space_freed(gate_parts):
    gate, storage, _ = gate_parts
    storage.free = 10
    assert await gate.check() is StorageState.LOW_CAPACITY

    storage.free = 50 * 1024 * 1024
    assert await gate.check() is StorageState.AVAILABLE
    assert gate.admits_capture()


@pytest.mark.asyncio
async def test_change_events_drive_availability(gate_parts):
    gate, storage, events = gate_parts
    await gate.check()

    assert await gate.handle_change(_change("shared")) is StorageState.UNMOUNTED
    # Availability is not re-queried while unmounted
    storage.availability = "available"
    assert await gate.check() is StorageState.UNMOUNTED
    assert await gate.handle_change(_change("available")) is StorageState.AVAILABLE
    assert await gate.handle_change(_change("unavailable")) is StorageState.NO_CARD


@pytest.mark.asyncio
async def test_deleted_announces_item_without_state_change(gate_parts):
    gate, _, events = gate_parts
    await gate.check()

    await gate.handle_change(_change("deleted", "/sdcard/pictures/DCIM/100CAMRA/IMG_0001.jpg"))

    assert gate.state is StorageState.AVAILABLE
    deleted = [e.payload for e in events if e.topic is Topic.ITEM_DELETED]
    assert deleted == ["/sdcard/pictures/DCIM/100CAMRA/IMG_0001.jpg"]


@pytest.mark.asyncio
async def test_attach_follows_storage_notifications(gate_parts):
    gate, storage, _ = gate_parts
    await gate.check()
    detach = gate.attach()

    storage.emit("unavailable")
    await asyncio.sleep(0)
    await gate.drain()
    assert gate.state is StorageState.NO_CARD

    detach()
    storage.emit("available")
    await asyncio.sleep(0)
    await gate.drain()
    assert gate.state is StorageState.NO_CARD
    await gate.close()


@pytest.mark.asyncio
async def test_unreadable_availability_counts_as_no_card(gate_parts):
    gate, storage, _ = gate_parts

    async def _unreadable():
        raise OSError("EIO")

    storage.available = _unreadable

    assert await gate.check() is StorageState.NO_CARD
    assert await gate.handle_change(_change("available")) is StorageState.AVAILABLE


@pytest.mark.asyncio
async def test_free_space_error_keeps_previous_state(gate_parts):
    gate, storage, _ = gate_parts
    storage.free = 10
    assert await gate.check() is StorageState.LOW_CAPACITY

    async def _unreadable():
        raise OSError("EIO")

    storage.free_space = _unreadable

    assert await gate.check() is StorageState.LOW_CAPACITY
    assert not gate.admits_capture()


def _change(reason, path=""):
    return StorageChange(reason, path)
