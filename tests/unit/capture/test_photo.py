"""CaptureController tests against the mock camera."""

import asyncio

import pytest
import pytest_asyncio

from capture_control.camera.state import FocusState, ImageAsset, Position, Size, UserAlert
from capture_control.capture.photo import PhotoState
from capture_control.capture.pick import PendingPickRequest
from capture_control.core.errors import InvalidStateError
from capture_control.core.events import Topic

AUTO_FOCUS_ONLY = {
    "picture_sizes": [{"width": 1600, "height": 1200}],
    "preview_sizes": [{"width": 640, "height": 480}],
    "flash_modes": ["off", "auto", "on"],
    "focus_modes": ["auto"],
}


@pytest_asyncio.fixture
async def auto_focus_app(camera_app, hardware):
    hardware.capabilities[0] = AUTO_FOCUS_ONLY
    assert await camera_app.start()
    yield camera_app
    await camera_app.close()


@pytest.mark.asyncio
async def test_capture_saves_picture_and_resumes_preview(started_app, hardware, picture_storage, event_log, payloads_of):
    _, events = event_log
    handle = hardware.current

    blob = await started_app.photo.capture()
    await started_app.photo.wait_saves()

    assert blob == handle.picture_blob
    assert handle.calls.count("take_picture") == 1
    assert "resume_preview" in handle.calls
    assert "auto_focus" not in handle.calls
    images = payloads_of(events, Topic.NEW_IMAGE)
    assert images == [ImageAsset(path="/sdcard/pictures/DCIM/100CAMRA/IMG_0001.jpg", blob=blob)]
    assert picture_storage.files["/sdcard/pictures/DCIM/100CAMRA/IMG_0001.jpg"] == blob
    assert started_app.photo.state is PhotoState.IDLE


@pytest.mark.asyncio
async def test_capture_brackets_input_with_busy_and_ready(started_app, event_log, topics_of):
    _, events = event_log
    events.clear()

    await started_app.photo.capture()
    await started_app.photo.wait_saves()
    await asyncio.sleep(0)

    topics = topics_of(events)
    assert topics[0] is Topic.BUSY
    assert topics.index(Topic.BUSY) < topics.index(Topic.READY)
    assert Topic.SHUTTER in topics


@pytest.mark.asyncio
async def test_request_carries_orientation_and_position(started_app, hardware):
    started_app.set_orientation(450)
    started_app.update_position(Position(latitude=45.5, longitude=-122.6, altitude=30.0, timestamp=1700000000.0))

    await started_app.photo.capture()

    config = hardware.current.picture_configs[-1]
    assert config["orientation"] == 90
    assert config["file_format"] == "jpeg"
    assert config["position"]["latitude"] == 45.5
    assert isinstance(config["date_time"], int)


@pytest.mark.asyncio
async def test_auto_focus_runs_before_take_picture(auto_focus_app, hardware, event_log, payloads_of):
    _, events = event_log
    handle = hardware.current

    await auto_focus_app.photo.capture()

    assert handle.calls.index("auto_focus") < handle.calls.index("take_picture")
    assert payloads_of(events, Topic.FOCUS_STATE) == [FocusState.FOCUSING, FocusState.FOCUSED]


@pytest.mark.asyncio
async def test_focus_failure_skips_capture_then_resets(auto_focus_app, hardware, event_log, payloads_of):
    _, events = event_log
    handle = hardware.current
    handle.auto_focus_result = False

    assert await auto_focus_app.photo.capture() is None
    assert "take_picture" not in handle.calls
    assert payloads_of(events, Topic.FOCUS_STATE)[-1] is FocusState.FAIL

    await asyncio.sleep(0.05)
    assert payloads_of(events, Topic.FOCUS_STATE)[-1] is FocusState.NONE
    assert auto_focus_app.photo.state is PhotoState.IDLE


@pytest.mark.asyncio
async def test_take_picture_failure_alerts(started_app, hardware, event_log, payloads_of):
    _, events = event_log
    hardware.current.take_picture_error = RuntimeError("sensor timeout")

    assert await started_app.photo.capture() is None

    assert payloads_of(events, Topic.ALERT) == [UserAlert("error-saving-title", "error-saving")]
    assert hardware.current.calls[-1] == "resume_preview"
    assert started_app.photo.state is PhotoState.IDLE


@pytest.mark.asyncio
async def test_save_failure_alerts_without_new_image(started_app, picture_storage, event_log, payloads_of):
    _, events = event_log
    picture_storage.fail_add = True

    assert await started_app.photo.capture() is not None
    await started_app.photo.wait_saves()

    assert payloads_of(events, Topic.NEW_IMAGE) == []
    assert payloads_of(events, Topic.ALERT) == [UserAlert("error-saving-title", "error-saving")]


@pytest.mark.asyncio
async def test_low_storage_blocks_capture(started_app, hardware, picture_storage):
    picture_storage.free = 1024

    assert await started_app.photo.capture() is None
    assert "take_picture" not in hardware.current.calls
    assert started_app.gate.overlay == "nospace"


@pytest.mark.asyncio
async def test_pick_holds_photo_and_omits_position(started_app, hardware, event_log, payloads_of):
    _, events = event_log
    started_app.update_position(Position(latitude=1.0, longitude=2.0))
    await started_app.begin_pick(PendingPickRequest(post_result=lambda r: None, post_error=lambda e: None))
    handle = hardware.current

    blob = await started_app.photo.capture()

    assert "position" not in handle.picture_configs[-1]
    assert "resume_preview" not in handle.calls
    assert payloads_of(events, Topic.PICK_CONFIRM) == [{"kind": "image", "blob": blob}]
    assert started_app.pick.awaiting_confirmation


@pytest.mark.asyncio
async def test_capture_without_camera_is_rejected(camera_app):
    with pytest.raises(InvalidStateError):
        await camera_app.photo.capture()


@pytest.mark.asyncio
async def test_reentrant_capture_is_rejected(started_app):
    started_app.photo.state = PhotoState.CAPTURING
    with pytest.raises(InvalidStateError):
        await started_app.photo.capture()
    started_app.photo.state = PhotoState.IDLE


@pytest.mark.asyncio
async def test_manual_focus_camera_end_to_end(camera_app, hardware, camera_config):
    camera_config.selection.max_image_pixels = 5_000_000
    camera_config.selection.max_snapshot_pixels = 5_000_000
    hardware.capabilities[0] = {
        "picture_sizes": [{"width": 1600, "height": 1200}],
        "thumbnail_sizes": [{"width": 320, "height": 240}],
        "focus_modes": ["auto"],
    }

    assert await camera_app.start()
    handle = hardware.current
    assert camera_app.session.picture_size == Size(1600, 1200)
    assert camera_app.session.requires_auto_focus

    await camera_app.capture()
    await camera_app.photo.wait_saves()

    assert handle.calls.index("auto_focus") < handle.calls.index("take_picture")
    await camera_app.close()
