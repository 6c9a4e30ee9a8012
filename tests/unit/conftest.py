"""Unit test fixtures for isolated, fast test execution.

Everything here runs against the in-memory mocks from
``tests.infrastructure.mocks``; no camera or media storage is touched.
"""

from __future__ import annotations

from typing import Callable, List

import pytest
import pytest_asyncio

from capture_control.camera.state import CaptureMode
from capture_control.core.events import Event, Topic


@pytest.fixture
def topics_of() -> Callable[[List[Event]], List[Topic]]:
    """Project an event log down to its topic sequence."""
    return lambda events: [event.topic for event in events]


@pytest.fixture
def payloads_of() -> Callable[[List[Event], Topic], list]:
    return lambda events, topic: [event.payload for event in events if event.topic is topic]


@pytest_asyncio.fixture
async def started_app(camera_app):
    """CameraApp with the back camera acquired and streaming."""
    assert await camera_app.start()
    yield camera_app
    await camera_app.close()


@pytest_asyncio.fixture
async def video_app(started_app):
    """Started CameraApp switched to video mode."""
    await started_app.set_capture_mode(CaptureMode.VIDEO)
    yield started_app
