"""Capability normalization and deterministic parameter selection.

All functions here are pure: same capability lists and policy in, same
selection out. They never raise on non-empty input.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from capture_control.camera.defaults import THUMBNAIL_ASPECT_TOLERANCE
from capture_control.camera.state import CapabilitySet, SelectionPolicy, Size, VideoProfile
from capture_control.core.logging_utils import LoggerLike, ensure_structured_logger

LOW_FILE_SIZE_PROFILE = "qcif"
DEFAULT_PROFILE = "cif"


# ---------------------------------------------------------------------------
# Normalization


def normalize_sizes(raw_sizes: Optional[Iterable[Any]]) -> Tuple[Size, ...]:
    """Normalize backend-reported sizes, dropping malformed and duplicate entries."""

    normalized: List[Size] = []
    seen = set()
    for raw in raw_sizes or ():
        try:
            width, height = _parse_size(raw)
        except (TypeError, ValueError, KeyError):
            continue
        if width <= 0 or height <= 0 or (width, height) in seen:
            continue
        seen.add((width, height))
        normalized.append(Size(width, height))
    return tuple(normalized)


def normalize_profiles(raw_profiles: Optional[Mapping[str, Any]]) -> Dict[str, Size]:
    """Normalize recorder profiles keyed by name, keeping enumeration order.

    Entries may be a size directly or a dict carrying a ``video`` block with
    ``width``/``height``.
    """

    profiles: Dict[str, Size] = {}
    for name, raw in (raw_profiles or {}).items():
        if isinstance(raw, Mapping) and isinstance(raw.get("video"), Mapping):
            raw = raw["video"]
        try:
            width, height = _parse_size(raw)
        except (TypeError, ValueError, KeyError):
            continue
        profiles[str(name)] = Size(width, height)
    return profiles


def build_capability_set(raw: Mapping[str, Any], *, logger: LoggerLike = None) -> CapabilitySet:
    """Create a CapabilitySet from a raw device capability report."""

    log = ensure_structured_logger(logger, fallback_name=__name__)
    capabilities = CapabilitySet(
        picture_sizes=normalize_sizes(raw.get("picture_sizes") or raw.get("pictureSizes")),
        thumbnail_sizes=normalize_sizes(raw.get("thumbnail_sizes") or raw.get("thumbnailSizes")),
        preview_sizes=normalize_sizes(raw.get("preview_sizes") or raw.get("previewSizes")),
        recorder_profiles=normalize_profiles(raw.get("recorder_profiles") or raw.get("recorderProfiles")),
        flash_modes=tuple(str(mode) for mode in (raw.get("flash_modes") or raw.get("flashModes") or ())),
        focus_modes=tuple(str(mode) for mode in (raw.get("focus_modes") or raw.get("focusModes") or ())),
    )
    log.debug(
        "Built capabilities: %d picture, %d thumbnail, %d preview sizes, %d profiles",
        len(capabilities.picture_sizes),
        len(capabilities.thumbnail_sizes),
        len(capabilities.preview_sizes),
        len(capabilities.recorder_profiles),
    )
    return capabilities


# ---------------------------------------------------------------------------
# Selection


def estimate_jpeg_bytes(size: Size, policy: SelectionPolicy) -> float:
    if policy.max_pixel_count <= 0:
        return 0.0
    return size.pixels * policy.estimated_jpeg_bytes / policy.max_pixel_count


def pick_picture_size(sizes: Sequence[Size], policy: SelectionPolicy) -> Size:
    """Choose the still-capture resolution.

    Sizes above the pixel ceiling are dropped, then sizes whose estimated
    JPEG size exceeds ``policy.target_file_size`` (when one is set). With a
    target size the smallest size covering it wins, falling back to the
    largest qualifying size. Without one the largest qualifying size wins.
    An empty qualifying set falls back to ``sizes[0]``.
    """

    if not sizes:
        raise ValueError("pick_picture_size requires at least one size")

    qualifying = [size for size in sizes if size.pixels <= policy.max_pixel_count]
    if policy.target_file_size > 0:
        qualifying = [
            size for size in qualifying if estimate_jpeg_bytes(size, policy) <= policy.target_file_size
        ]
    if not qualifying:
        return sizes[0]

    largest = _largest(qualifying)
    if policy.target_size is None:
        return largest

    covering = [size for size in qualifying if size.covers(policy.target_size)]
    if not covering:
        return largest
    return _smallest(covering)


def pick_thumbnail_size(
    thumbnail_sizes: Sequence[Size],
    picture_size: Size,
    viewport_width: int,
    viewport_height: int,
) -> Optional[Size]:
    """Smallest thumbnail with the picture's aspect ratio that fills the screen.

    ``None`` means no thumbnail matches the aspect ratio; the hardware
    default stays in effect.
    """

    if not picture_size.height:
        return None
    target = picture_size.aspect
    candidates = [
        size
        for size in thumbnail_sizes
        if size.height and abs(size.aspect - target) < THUMBNAIL_ASPECT_TOLERANCE
    ]
    if not candidates:
        return None

    candidates.sort(key=lambda size: size.pixels)
    vw, vh = viewport_width, viewport_height
    for size in candidates:
        w, h = size.width, size.height
        if (w >= vw or h >= vh) and (w >= vh or h >= vw):
            return size
    return candidates[-1]


def pick_video_profile(
    profiles: Mapping[str, Size],
    preferred: Sequence[str],
    policy: SelectionPolicy,
) -> VideoProfile:
    """Name and size of the recorder profile to use; rotation is left at 0."""

    if not profiles:
        raise ValueError("pick_video_profile requires at least one profile")

    name: Optional[str] = None
    if policy.target_file_size > 0 and LOW_FILE_SIZE_PROFILE in profiles:
        name = LOW_FILE_SIZE_PROFILE
    if name is None:
        name = next((candidate for candidate in preferred if candidate in profiles), None)
    if name is None and DEFAULT_PROFILE in profiles:
        name = DEFAULT_PROFILE
    if name is None:
        name = next(iter(profiles))

    size = profiles[name]
    return VideoProfile(name=name, width=size.width, height=size.height, rotation=0)


def select_preview_size(
    preview_sizes: Sequence[Size],
    viewport_width: int,
    viewport_height: int,
) -> Optional[Size]:
    """Preview stream size: closest aspect to the viewport, smallest that covers it."""

    if not preview_sizes:
        return None
    # Viewport is usually portrait while sensors report landscape sizes.
    long_side, short_side = max(viewport_width, viewport_height), min(viewport_width, viewport_height)
    target = Size(long_side, short_side)
    best_delta = min(_aspect_delta(size, target.aspect) for size in preview_sizes)
    matching = [size for size in preview_sizes if _aspect_delta(size, target.aspect) - best_delta < 1e-6]
    covering = [size for size in matching if size.covers(target)]
    if covering:
        return _smallest(covering)
    return _largest(matching)


# ---------------------------------------------------------------------------
# Internal helpers


def _largest(sizes: Iterable[Size]) -> Size:
    # max() keeps the first of equal-area sizes, matching enumeration order.
    return max(sizes, key=lambda size: size.pixels)


def _smallest(sizes: Iterable[Size]) -> Size:
    return min(sizes, key=lambda size: size.pixels)


def _parse_size(raw: Any) -> Tuple[int, int]:
    if isinstance(raw, Size):
        return raw.width, raw.height
    if isinstance(raw, Mapping):
        return int(raw["width"]), int(raw["height"])
    if isinstance(raw, (list, tuple)) and len(raw) == 2:
        return int(raw[0]), int(raw[1])
    if isinstance(raw, str) and "x" in raw.lower():
        w, h = raw.lower().split("x", 1)
        return int(w), int(h)
    raise ValueError(f"Invalid size: {raw!r}")


def _aspect_delta(size: Size, target_ar: float) -> float:
    if target_ar <= 0.0 or not size.height:
        return 0.0
    return abs(size.aspect - target_ar)


__all__ = [
    "build_capability_set",
    "estimate_jpeg_bytes",
    "normalize_profiles",
    "normalize_sizes",
    "pick_picture_size",
    "pick_thumbnail_size",
    "pick_video_profile",
    "select_preview_size",
]
