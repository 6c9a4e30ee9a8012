"""Pick requests: another application asks for one photo or video."""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from PIL import Image

from capture_control.camera.state import Size, VideoAsset
from capture_control.core.errors import InvalidStateError
from capture_control.core.events import EventBus, Topic
from capture_control.core.logging_utils import LoggerLike, ensure_structured_logger

PICK_CANCELLED = "pick cancelled"


@dataclass(slots=True)
class PendingPickRequest:
    post_result: Callable[[Dict[str, Any]], Any] = field(repr=False)
    post_error: Callable[[str], Any] = field(repr=False)
    max_file_size_bytes: int = 0
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def target_size(self) -> Optional[Size]:
        if self.width and self.height:
            return Size(int(self.width), int(self.height))
        return None


def resize_jpeg(blob: bytes, width: int, height: int, *, quality: int = 90) -> bytes:
    """Scale a JPEG to exactly ``width`` x ``height``."""
    with Image.open(io.BytesIO(blob)) as image:
        if image.size == (width, height):
            return blob
        resized = image.convert("RGB").resize((width, height), Image.Resampling.LANCZOS)
    out = io.BytesIO()
    resized.save(out, format="JPEG", quality=quality)
    return out.getvalue()


class PickFlow:
    """Holds the single outstanding pick and the media awaiting confirmation."""

    def __init__(self, bus: EventBus, *, logger: LoggerLike = None) -> None:
        self._bus = bus
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self.pending: Optional[PendingPickRequest] = None
        self._held: Optional[Dict[str, Any]] = None

    @property
    def active(self) -> bool:
        return self.pending is not None

    @property
    def awaiting_confirmation(self) -> bool:
        return self._held is not None

    def begin(self, request: PendingPickRequest) -> None:
        if self.pending is not None:
            raise InvalidStateError("A pick request is already outstanding")
        self.pending = request
        self._held = None
        self._logger.info(
            "Pick started (max %d bytes, size %s)", request.max_file_size_bytes, request.target_size
        )

    async def hold_photo(self, blob: bytes) -> None:
        self._held = {"kind": "image", "blob": blob}
        await self._bus.publish(Topic.PICK_CONFIRM, dict(self._held), source="pick")

    async def hold_video(self, asset: VideoAsset) -> None:
        self._held = {"kind": "video", "video": asset.video, "poster": asset.poster, "asset": asset}
        await self._bus.publish(
            Topic.PICK_CONFIRM,
            {
                "kind": "video",
                "video": asset.video,
                "poster": asset.poster,
                "width": asset.width,
                "height": asset.height,
                "rotation": asset.rotation,
            },
            source="pick",
        )

    async def select(self) -> Dict[str, Any]:
        """Deliver the held media to the requester and end the pick."""

        request, media = self.pending, self._held
        if request is None or media is None:
            raise InvalidStateError("Nothing to select")

        if media["kind"] == "image":
            blob = media["blob"]
            if request.width and request.height:
                blob = await asyncio.to_thread(resize_jpeg, blob, int(request.width), int(request.height))
            result = {"type": "image/jpeg", "blob": blob}
        else:
            result = {"type": "video/3gpp", "blob": media["video"], "poster": media["poster"]}

        self.pending = None
        self._held = None
        request.post_result(result)
        self._logger.info("Pick completed with %s", result["type"])
        return result

    def retake(self) -> None:
        self._held = None

    def cancel(self) -> None:
        request = self.pending
        self.pending = None
        self._held = None
        if request is not None:
            request.post_error(PICK_CANCELLED)
            self._logger.info("Pick cancelled")


__all__ = ["PICK_CANCELLED", "PendingPickRequest", "PickFlow", "resize_jpeg"]
