"""Poster-frame extraction for finished recordings (PyAV with OpenCV fallback)."""

from __future__ import annotations

import asyncio
import io
import os
import tempfile
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Optional, Protocol

import cv2
import numpy as np
from PIL import Image

from capture_control.camera.defaults import DEFAULT_POSTER_JPEG_QUALITY
from capture_control.camera.hardware import DeviceStorage
from capture_control.camera.state import VideoAsset
from capture_control.core.errors import CameraError, ExtractionFailure
from capture_control.core.logging_utils import LoggerLike, ensure_structured_logger

try:  # pragma: no cover - optional dependency
    import av  # type: ignore

    _HAS_PYAV = True
except Exception:  # pragma: no cover - optional dependency
    av = None  # type: ignore
    _HAS_PYAV = False


@dataclass(slots=True)
class DecodedFrame:
    image: np.ndarray  # RGB, height x width x 3
    width: int
    height: int
    rotation: Any = 0


class VideoDecoder(Protocol):
    def decode(self, blob: bytes) -> DecodedFrame: ...


class PyAvDecoder:
    """First video frame via libav; rotation from the stream's ``rotate`` tag."""

    def decode(self, blob: bytes) -> DecodedFrame:
        if av is None:
            raise ExtractionFailure("PyAV is not installed")
        try:
            with av.open(io.BytesIO(blob), mode="r") as container:
                if not container.streams.video:
                    raise ExtractionFailure("no video track")
                stream = container.streams.video[0]
                rotation = (stream.metadata or {}).get("rotate")
                for frame in container.decode(stream):
                    if rotation is None:
                        rotation = getattr(frame, "rotation", 0)
                    image = frame.to_ndarray(format="rgb24")
                    return DecodedFrame(image=image, width=frame.width, height=frame.height, rotation=rotation)
        except ExtractionFailure:
            raise
        except Exception as exc:
            raise ExtractionFailure(f"not a video file: {exc}", cause=exc) from exc
        raise ExtractionFailure("video has no frames")


class OpenCvDecoder:
    """First video frame via OpenCV; needs a real file, so the blob is spooled to disk."""

    def decode(self, blob: bytes) -> DecodedFrame:
        fd, tmp_path = tempfile.mkstemp(suffix=".3gp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(blob)
            capture = cv2.VideoCapture(tmp_path)
            try:
                if not capture.isOpened():
                    raise ExtractionFailure("not a video file")
                ok, frame = capture.read()
                if not ok or frame is None:
                    raise ExtractionFailure("video has no frames")
                prop = getattr(cv2, "CAP_PROP_ORIENTATION_META", None)
                rotation = capture.get(prop) if prop is not None else 0
            finally:
                capture.release()
        finally:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        image = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        height, width = image.shape[:2]
        return DecodedFrame(image=image, width=width, height=height, rotation=rotation)


def default_decoder(use_pyav: Optional[bool] = None) -> VideoDecoder:
    use = _HAS_PYAV if use_pyav is None else (use_pyav and _HAS_PYAV)
    return PyAvDecoder() if use else OpenCvDecoder()


def encode_jpeg(image: np.ndarray, *, quality: int = DEFAULT_POSTER_JPEG_QUALITY) -> bytes:
    out = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(image)).convert("RGB").save(out, format="JPEG", quality=quality)
    return out.getvalue()


def poster_path_for(video_path: str) -> str:
    """``DCIM/100CAMRA/VID_0001.3gp`` -> ``DCIM/100CAMRA/VID_0001.jpg``."""
    return str(PurePosixPath(video_path).with_suffix(".jpg"))


class PosterExtractor:
    """Decodes one frame of a finished video and stores it as the poster JPEG."""

    def __init__(
        self,
        video_storage: DeviceStorage,
        picture_storage: DeviceStorage,
        *,
        decoder: Optional[VideoDecoder] = None,
        use_pyav: Optional[bool] = None,
        quality: int = DEFAULT_POSTER_JPEG_QUALITY,
        logger: LoggerLike = None,
    ) -> None:
        self._video_storage = video_storage
        self._picture_storage = picture_storage
        self._decoder = decoder or default_decoder(use_pyav)
        self._quality = quality
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)

    def _rotation(self, raw: Any) -> int:
        try:
            return int(float(raw)) % 360
        except (TypeError, ValueError):
            self._logger.warning("Unexpected rotation %r; using 0", raw)
            return 0

    async def extract(self, relative_path: str, absolute_path: str) -> VideoAsset:
        try:
            blob = await self._video_storage.get(absolute_path)
        except OSError as exc:
            raise ExtractionFailure(f"cannot read {absolute_path}: {exc}", cause=exc) from exc

        try:
            frame = await asyncio.to_thread(self._decoder.decode, blob)
            poster = await asyncio.to_thread(encode_jpeg, frame.image, quality=self._quality)
        except ExtractionFailure:
            raise
        except Exception as exc:
            raise ExtractionFailure(f"decode failed: {exc}", cause=exc) from exc

        rotation = self._rotation(frame.rotation)
        poster_relative = poster_path_for(relative_path)
        try:
            poster_path = await self._picture_storage.add_named(poster, poster_relative)
        except (CameraError, OSError) as exc:
            self._logger.warning("Poster for %s not saved: %s", relative_path, exc)
            poster_path = poster_relative

        self._logger.info(
            "Poster for %s: %dx%d rotation %d", relative_path, frame.width, frame.height, rotation
        )
        return VideoAsset(
            video_path=absolute_path,
            poster_path=poster_path,
            video=blob,
            poster=poster,
            width=int(frame.width),
            height=int(frame.height),
            rotation=rotation,
        )


__all__ = [
    "DecodedFrame",
    "OpenCvDecoder",
    "PosterExtractor",
    "PyAvDecoder",
    "VideoDecoder",
    "default_decoder",
    "encode_jpeg",
    "poster_path_for",
]
