"""Typed configuration helpers for the capture core."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from capture_control.camera import defaults as d
from capture_control.core.config_manager import ConfigManager
from capture_control.core.logging_config import configure_logging
from capture_control.core.logging_utils import LoggerLike, ensure_structured_logger

Resolution = Tuple[int, int]


@dataclass(slots=True)
class SelectionSettings:
    max_image_pixels: int
    max_snapshot_pixels: int
    estimated_jpeg_bytes: int
    preferred_profiles: Tuple[str, ...]

    @property
    def max_pixel_count(self) -> int:
        return min(self.max_image_pixels, self.max_snapshot_pixels)


@dataclass(slots=True)
class RecordSettings:
    space_min_bytes: int
    space_padding_bytes: int
    min_recording_ms: int
    timer_tick_ms: int
    write_timeout_s: float
    poster_jpeg_quality: int
    use_pyav: bool


@dataclass(slots=True)
class StorageSettings:
    root: Path
    pictures_dir: str
    videos_dir: str
    dcf_tag: str
    bytes_per_pixel: int
    header_slack_bytes: int


@dataclass(slots=True)
class DisplaySettings:
    viewport: Resolution


@dataclass(slots=True)
class FocusSettings:
    fail_reset_ms: int


@dataclass(slots=True)
class SessionSettings:
    camera_index: int
    preview_start_timeout_s: float


@dataclass(slots=True)
class LoggingSettings:
    level: str
    file: Path


@dataclass(slots=True)
class CameraConfig:
    selection: SelectionSettings
    record: RecordSettings
    storage: StorageSettings
    display: DisplaySettings
    focus: FocusSettings
    session: SessionSettings
    logging: LoggingSettings


# ---------------------------------------------------------------------------
# Public API


def load_config(
    settings: Optional[Mapping[str, Any]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    logger: LoggerLike = None,
) -> CameraConfig:
    """Build a typed config from flat ``section.key`` settings plus overrides."""

    log = ensure_structured_logger(logger, fallback_name=__name__)
    merged: Dict[str, Any] = dict(settings or {})
    if overrides:
        for key, value in overrides.items():
            if value is not None:
                merged[key] = value

    selection = SelectionSettings(
        max_image_pixels=_coerce_int(
            merged, ("selection.max_image_pixels", "max_image_pixel_size"), d.DEFAULT_MAX_IMAGE_PIXEL_SIZE
        ),
        max_snapshot_pixels=_coerce_int(
            merged, ("selection.max_snapshot_pixels", "max_snapshot_pixel_size"), d.DEFAULT_MAX_SNAPSHOT_PIXEL_SIZE
        ),
        estimated_jpeg_bytes=_coerce_int(
            merged, ("selection.estimated_jpeg_bytes",), d.DEFAULT_ESTIMATED_JPEG_FILE_SIZE
        ),
        preferred_profiles=_coerce_names(
            merged,
            ("selection.preferred_profiles", "camera.recording.preferredSizes"),
            d.DEFAULT_PREFERRED_PROFILES,
        ),
    )

    record = RecordSettings(
        space_min_bytes=_coerce_int(merged, ("record.space_min_bytes",), d.DEFAULT_RECORD_SPACE_MIN),
        space_padding_bytes=_coerce_int(merged, ("record.space_padding_bytes",), d.DEFAULT_RECORD_SPACE_PADDING),
        min_recording_ms=_coerce_int(merged, ("record.min_recording_ms",), d.DEFAULT_MIN_RECORDING_TIME_MS),
        timer_tick_ms=max(1, _coerce_int(merged, ("record.timer_tick_ms",), d.DEFAULT_TIMER_TICK_MS)),
        write_timeout_s=max(0.0, _coerce_float(merged, ("record.write_timeout_s",), d.DEFAULT_WRITE_TIMEOUT_S)),
        poster_jpeg_quality=_clamp(
            _coerce_int(merged, ("record.poster_jpeg_quality",), d.DEFAULT_POSTER_JPEG_QUALITY), 1, 95
        ),
        use_pyav=_coerce_bool(merged, ("record.use_pyav",), True),
    )

    storage = StorageSettings(
        root=_coerce_path(merged, ("storage.root", "output_dir"), Path(d.DEFAULT_STORAGE_ROOT)),
        pictures_dir=_coerce_str(merged, ("storage.pictures_dir",), d.DEFAULT_PICTURES_DIR),
        videos_dir=_coerce_str(merged, ("storage.videos_dir",), d.DEFAULT_VIDEOS_DIR),
        dcf_tag=_coerce_dcf_tag(merged, ("storage.dcf_tag",), d.DEFAULT_DCF_TAG, logger=log),
        bytes_per_pixel=_coerce_int(merged, ("storage.bytes_per_pixel",), d.DEFAULT_BYTES_PER_PIXEL),
        header_slack_bytes=_coerce_int(merged, ("storage.header_slack_bytes",), d.DEFAULT_HEADER_SLACK_BYTES),
    )

    display = DisplaySettings(
        viewport=_coerce_resolution(
            merged, ("display.viewport", "viewport"), default=d.DEFAULT_VIEWPORT, logger=log
        ),
    )

    focus = FocusSettings(
        fail_reset_ms=_coerce_int(merged, ("focus.fail_reset_ms",), d.DEFAULT_FOCUS_FAIL_RESET_MS),
    )

    session = SessionSettings(
        camera_index=_coerce_int(merged, ("session.camera_index",), d.DEFAULT_CAMERA_INDEX),
        preview_start_timeout_s=_coerce_float(
            merged, ("session.preview_start_timeout_s",), d.DEFAULT_PREVIEW_START_TIMEOUT_S
        ),
    )

    logging_settings = LoggingSettings(
        level=_coerce_str(merged, ("logging.level", "log_level"), d.DEFAULT_LOG_LEVEL),
        file=_coerce_path(merged, ("logging.file", "log_file"), Path(d.DEFAULT_LOG_FILE)),
    )

    return CameraConfig(
        selection=selection,
        record=record,
        storage=storage,
        display=display,
        focus=focus,
        session=session,
        logging=logging_settings,
    )


async def load_config_file(
    path: Path,
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    logger: LoggerLike = None,
) -> CameraConfig:
    """Read a ``key = value`` settings file and build a typed config from it."""

    manager = ConfigManager(logger=logger)
    settings = await manager.read_config_async(Path(path))
    return load_config(settings, overrides, logger=logger)


async def persist_config_async(path: Path, config: CameraConfig, *, logger: LoggerLike = None) -> bool:
    """Write every setting of ``config`` back to ``path``."""

    manager = ConfigManager(logger=logger)
    return await manager.write_config_async(Path(path), _flatten_config(config))


def as_dict(config: CameraConfig) -> Dict[str, Any]:
    return asdict(config)


# ---------------------------------------------------------------------------
# Internal helpers


def _flatten_config(config: CameraConfig) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    updates["selection.max_image_pixels"] = config.selection.max_image_pixels
    updates["selection.max_snapshot_pixels"] = config.selection.max_snapshot_pixels
    updates["selection.estimated_jpeg_bytes"] = config.selection.estimated_jpeg_bytes
    updates["selection.preferred_profiles"] = list(config.selection.preferred_profiles)

    updates["record.space_min_bytes"] = config.record.space_min_bytes
    updates["record.space_padding_bytes"] = config.record.space_padding_bytes
    updates["record.min_recording_ms"] = config.record.min_recording_ms
    updates["record.timer_tick_ms"] = config.record.timer_tick_ms
    updates["record.write_timeout_s"] = config.record.write_timeout_s
    updates["record.poster_jpeg_quality"] = config.record.poster_jpeg_quality
    updates["record.use_pyav"] = config.record.use_pyav

    updates["storage.root"] = str(config.storage.root)
    updates["storage.pictures_dir"] = config.storage.pictures_dir
    updates["storage.videos_dir"] = config.storage.videos_dir
    updates["storage.dcf_tag"] = config.storage.dcf_tag
    updates["storage.bytes_per_pixel"] = config.storage.bytes_per_pixel
    updates["storage.header_slack_bytes"] = config.storage.header_slack_bytes

    updates["display.viewport"] = f"{config.display.viewport[0]}x{config.display.viewport[1]}"
    updates["focus.fail_reset_ms"] = config.focus.fail_reset_ms
    updates["session.camera_index"] = config.session.camera_index
    updates["session.preview_start_timeout_s"] = config.session.preview_start_timeout_s

    updates["logging.level"] = config.logging.level
    updates["logging.file"] = str(config.logging.file)
    return updates


def apply_logging_settings(config: CameraConfig, *, console: bool = True) -> None:
    """Configure the package loggers from ``config.logging``."""
    configure_logging(config.logging.level, console=console, log_file=config.logging.file)


def _first_present(data: Mapping[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _coerce_bool(data: Mapping[str, Any], keys: Tuple[str, ...], default: bool) -> bool:
    raw = _first_present(data, keys)
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def _coerce_str(data: Mapping[str, Any], keys: Tuple[str, ...], default: str) -> str:
    raw = _first_present(data, keys)
    if raw is None:
        return default
    text = str(raw).strip()
    return text or default


def _coerce_int(data: Mapping[str, Any], keys: Tuple[str, ...], default: int) -> int:
    raw = _first_present(data, keys)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _coerce_float(data: Mapping[str, Any], keys: Tuple[str, ...], default: float) -> float:
    raw = _first_present(data, keys)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _coerce_path(data: Mapping[str, Any], keys: Tuple[str, ...], default: Path) -> Path:
    raw = _first_present(data, keys)
    if raw is None or raw == "":
        return Path(default)
    return Path(str(raw)).expanduser()


def _coerce_names(data: Mapping[str, Any], keys: Tuple[str, ...], default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = _first_present(data, keys)
    if raw is None:
        return tuple(default)
    if isinstance(raw, str):
        items = [part.strip() for part in raw.split(",")]
    elif isinstance(raw, (list, tuple)):
        items = [str(part).strip() for part in raw]
    else:
        return tuple(default)
    return tuple(item for item in items if item)


def _coerce_dcf_tag(data: Mapping[str, Any], keys: Tuple[str, ...], default: str, *, logger) -> str:
    raw = _coerce_str(data, keys, default).upper()
    if len(raw) == 5 and all(ch.isalnum() or ch == "_" for ch in raw):
        return raw
    logger.debug("Invalid DCF directory tag %r, using default %s", raw, default)
    return default


def _coerce_resolution(
    data: Mapping[str, Any],
    keys: Tuple[str, ...],
    *,
    default: Resolution,
    logger,
) -> Resolution:
    raw = _first_present(data, keys)
    if raw is None:
        return default
    try:
        return _parse_resolution(raw)
    except (TypeError, ValueError):
        logger.debug("Failed to parse resolution from %r, using default %s", raw, default)
        return default


def _parse_resolution(raw: Any) -> Resolution:
    if isinstance(raw, (list, tuple)) and len(raw) == 2:
        return int(raw[0]), int(raw[1])
    if isinstance(raw, str) and "x" in raw.lower():
        width, height = raw.lower().split("x", 1)
        return int(width.strip()), int(height.strip())
    if isinstance(raw, str) and "," in raw:
        width, height = raw.split(",", 1)
        return int(width.strip()), int(height.strip())
    raise ValueError(f"Unsupported resolution value: {raw!r}")


__all__ = [
    "CameraConfig",
    "apply_logging_settings",
    "DisplaySettings",
    "FocusSettings",
    "LoggingSettings",
    "RecordSettings",
    "SelectionSettings",
    "SessionSettings",
    "StorageSettings",
    "as_dict",
    "load_config",
    "load_config_file",
    "persist_config_async",
]
