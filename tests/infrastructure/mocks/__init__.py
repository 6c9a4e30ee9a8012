"""Mock camera hardware and storage."""

from .camera_mocks import (
    DEFAULT_CAPABILITIES,
    MB,
    FakeClock,
    MockCameraHandle,
    MockCameraHardware,
    MockDeviceStorage,
    StaticDecoder,
)

__all__ = [
    "DEFAULT_CAPABILITIES",
    "FakeClock",
    "MB",
    "MockCameraHandle",
    "MockCameraHardware",
    "MockDeviceStorage",
    "StaticDecoder",
]
