"""Interfaces the capture core expects from the camera driver and media storage.

Drivers implement these protocols; the controllers never import a concrete
backend. Long-running requests are coroutines. Hardware notifications are
plain callbacks assigned by :class:`~capture_control.camera.session.DeviceSession`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from capture_control.camera.state import Size, VideoProfile

PREVIEW_STARTED = "started"
PREVIEW_STOPPED = "stopped"
RECORDER_FILE_SIZE_LIMIT = "FileSizeLimitReached"

STORAGE_CREATED = "created"
STORAGE_MODIFIED = "modified"
STORAGE_DELETED = "deleted"
STORAGE_AVAILABLE = "available"
STORAGE_UNAVAILABLE = "unavailable"
STORAGE_SHARED = "shared"


@dataclass(frozen=True, slots=True)
class StorageChange:
    """Change notification from a storage area. ``path`` is absolute for file events."""

    reason: str
    path: str = ""


StorageListener = Callable[[StorageChange], None]
ShutterCallback = Callable[[], None]
StateCallback = Callable[[str], None]


@runtime_checkable
class DeviceStorage(Protocol):
    """A named media storage area (pictures or videos)."""

    name: str

    async def add_named(self, blob: bytes, path: str) -> str:
        """Store ``blob`` at relative ``path`` and return its absolute path."""
        ...

    async def get(self, path: str) -> bytes: ...

    async def delete(self, path: str) -> None: ...

    async def free_space(self) -> int: ...

    async def available(self) -> str:
        """One of ``available``, ``unavailable`` or ``shared``."""
        ...

    async def enumerate(self, prefix: str = "") -> List[str]: ...

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        """Register for change notifications; returns an unsubscribe callable."""
        ...


@runtime_checkable
class CameraHandle(Protocol):
    """An acquired camera. Only one exists at a time."""

    capabilities: Mapping[str, Any]
    picture_size: Optional[Size]
    thumbnail_size: Optional[Size]
    flash_mode: Optional[str]
    focus_mode: Optional[str]

    on_shutter: Optional[ShutterCallback]
    on_preview_state_change: Optional[StateCallback]
    on_recorder_state_change: Optional[StateCallback]

    async def release(self) -> None: ...

    async def get_preview_stream(self, size: Optional[Size]) -> Any: ...

    async def get_preview_stream_video_mode(self, profile: VideoProfile) -> Any: ...

    async def take_picture(self, config: Dict[str, Any]) -> bytes: ...

    async def start_recording(self, config: Dict[str, Any], storage: DeviceStorage, path: str) -> None: ...

    def stop_recording(self) -> None: ...

    async def auto_focus(self) -> bool: ...

    def resume_preview(self) -> None: ...


@runtime_checkable
class CameraHardware(Protocol):
    def list_cameras(self) -> Sequence[str]: ...

    async def acquire(self, camera_index: int) -> CameraHandle: ...


__all__ = [
    "CameraHandle",
    "CameraHardware",
    "DeviceStorage",
    "PREVIEW_STARTED",
    "PREVIEW_STOPPED",
    "RECORDER_FILE_SIZE_LIMIT",
    "STORAGE_AVAILABLE",
    "STORAGE_CREATED",
    "STORAGE_DELETED",
    "STORAGE_MODIFIED",
    "STORAGE_SHARED",
    "STORAGE_UNAVAILABLE",
    "StorageChange",
    "StorageListener",
]
