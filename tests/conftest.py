"""Shared pytest configuration and fixtures for the capture-control test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from capture_control.app import CameraApp  # noqa: E402
from capture_control.camera.config import load_config  # noqa: E402
from capture_control.core.events import EventBus  # noqa: E402
from tests.infrastructure.mocks import (  # noqa: E402
    FakeClock,
    MockCameraHardware,
    MockDeviceStorage,
    StaticDecoder,
)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "hardware: mark test as requiring a physical camera"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Run tests that require a physical camera",
    )


def pytest_collection_modifyitems(config, items):
    """Skip hardware tests unless --run-hardware is specified."""
    if config.getoption("--run-hardware"):
        return

    skip_hardware = pytest.mark.skip(reason="Need --run-hardware option to run")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def camera_config():
    """Config with short timers so recording and focus tests run quickly."""
    return load_config(
        {
            "record.timer_tick_ms": "20",
            "record.min_recording_ms": "10",
            "focus.fail_reset_ms": "10",
            "session.preview_start_timeout_s": "0.5",
            "record.space_min_bytes": str(2 * 1024 * 1024),
            "record.space_padding_bytes": str(1024 * 1024),
        }
    )


@pytest.fixture
def event_log():
    """EventBus plus the list of every event published on it."""
    bus = EventBus()
    events = []
    bus.add_observer(events.append)
    return bus, events


@pytest.fixture
def picture_storage() -> MockDeviceStorage:
    return MockDeviceStorage("pictures")


@pytest.fixture
def video_storage() -> MockDeviceStorage:
    return MockDeviceStorage("videos")


@pytest.fixture
def hardware() -> MockCameraHardware:
    return MockCameraHardware()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(start=100.0)


@pytest.fixture
def decoder() -> StaticDecoder:
    return StaticDecoder()


@pytest.fixture
def camera_app(hardware, picture_storage, video_storage, camera_config, event_log, decoder, fake_clock):
    bus, _ = event_log
    return CameraApp(
        hardware,
        picture_storage,
        video_storage,
        camera_config,
        bus=bus,
        decoder=decoder,
        clock=fake_clock,
    )
