"""Core data structures shared by the capture controllers.

Everything here is plain data: sizes, capability snapshots, selection policy,
state enums and the payloads published on the event bus.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


# ---------------------------------------------------------------------------
# Sizes and profiles


@dataclass(frozen=True, slots=True)
class Size:
    width: int
    height: int

    @property
    def pixels(self) -> int:
        return self.width * self.height

    @property
    def aspect(self) -> float:
        return self.width / self.height if self.height else 0.0

    def as_tuple(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def covers(self, other: "Size") -> bool:
        return self.width >= other.width and self.height >= other.height

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


PictureSize = Size
ThumbnailSize = Size


@dataclass(frozen=True, slots=True)
class VideoProfile:
    name: str
    width: int
    height: int
    rotation: int = 0

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)

    def with_rotation(self, rotation: int) -> "VideoProfile":
        return VideoProfile(self.name, self.width, self.height, int(rotation) % 360)


# ---------------------------------------------------------------------------
# Capabilities and policy


def _freeze_profiles(profiles: Mapping[str, Size]) -> Mapping[str, Size]:
    return MappingProxyType(dict(profiles))


@dataclass(frozen=True, slots=True)
class CapabilitySet:
    """Snapshot of what an acquired camera supports; rebuilt on every acquire."""

    picture_sizes: Tuple[Size, ...] = ()
    thumbnail_sizes: Tuple[Size, ...] = ()
    preview_sizes: Tuple[Size, ...] = ()
    recorder_profiles: Mapping[str, Size] = field(default_factory=lambda: MappingProxyType({}))
    flash_modes: Tuple[str, ...] = ()
    focus_modes: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.recorder_profiles, MappingProxyType):
            object.__setattr__(self, "recorder_profiles", _freeze_profiles(self.recorder_profiles))

    def supports_flash(self, modes) -> bool:
        return all(mode in self.flash_modes for mode in modes)

    def supports_focus(self, mode: str) -> bool:
        return mode in self.focus_modes


@dataclass(frozen=True, slots=True)
class SelectionPolicy:
    """Constraints applied by the size and profile selection functions.

    ``max_pixel_count`` is the smaller of the display and snapshot ceilings.
    ``estimated_jpeg_bytes`` is the expected JPEG size of a picture at that
    ceiling; smaller pictures are estimated linearly by pixel count.
    """

    max_pixel_count: int
    estimated_jpeg_bytes: int
    target_size: Optional[Size] = None
    target_file_size: int = 0
    preferred_profiles: Tuple[str, ...] = ()

    @classmethod
    def from_settings(
        cls,
        selection,
        *,
        target_size: Optional[Size] = None,
        target_file_size: int = 0,
    ) -> "SelectionPolicy":
        return cls(
            max_pixel_count=selection.max_pixel_count,
            estimated_jpeg_bytes=selection.estimated_jpeg_bytes,
            target_size=target_size,
            target_file_size=max(0, int(target_file_size or 0)),
            preferred_profiles=tuple(selection.preferred_profiles),
        )


# ---------------------------------------------------------------------------
# State enums


class StorageState(Enum):
    UNINITIALIZED = "uninitialized"
    AVAILABLE = "available"
    NO_CARD = "nocard"
    UNMOUNTED = "unmounted"
    LOW_CAPACITY = "nospace"


class CaptureMode(Enum):
    PHOTO = "camera"
    VIDEO = "video"


class FocusState(Enum):
    NONE = "none"
    FOCUSING = "focusing"
    FOCUSED = "focused"
    FAIL = "fail"


# ---------------------------------------------------------------------------
# Session records


@dataclass(slots=True)
class RecordingSession:
    """Bookkeeping for the single in-flight recording."""

    relative_path: str
    absolute_path: str
    started_at: float
    max_file_size_bytes: int
    rotation: int = 0
    size_limit_hit: bool = False


@dataclass(frozen=True, slots=True)
class Position:
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    timestamp: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "altitude": self.altitude,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


# ---------------------------------------------------------------------------
# Event payloads


@dataclass(frozen=True, slots=True)
class UserAlert:
    title: str
    text: str


@dataclass(frozen=True, slots=True)
class StorageStatus:
    state: StorageState
    overlay: Optional[str]


@dataclass(frozen=True, slots=True)
class RecordingTick:
    elapsed_ms: int
    text: str


@dataclass(frozen=True, slots=True)
class ImageAsset:
    path: str
    blob: bytes = field(repr=False)


@dataclass(frozen=True, slots=True)
class VideoAsset:
    video_path: str
    poster_path: str
    video: bytes = field(repr=False)
    poster: bytes = field(repr=False)
    width: int = 0
    height: int = 0
    rotation: int = 0


def format_timer(seconds: float) -> str:
    """``MM:SS`` below one hour, ``H:MM:SS`` from one hour on."""
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


__all__ = [
    "CapabilitySet",
    "CaptureMode",
    "FocusState",
    "ImageAsset",
    "PictureSize",
    "Position",
    "RecordingSession",
    "RecordingTick",
    "SelectionPolicy",
    "Size",
    "StorageState",
    "StorageStatus",
    "ThumbnailSize",
    "UserAlert",
    "VideoAsset",
    "VideoProfile",
    "format_timer",
]
