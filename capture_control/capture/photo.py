"""Still-photo capture state machine."""

from __future__ import annotations

import asyncio
import itertools
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from capture_control.camera.config import CameraConfig
from capture_control.camera.hardware import DeviceStorage
from capture_control.camera.session import DeviceSession
from capture_control.camera.state import FocusState, ImageAsset, Position, UserAlert
from capture_control.capture.pick import PickFlow
from capture_control.core.errors import (
    CameraError,
    FocusFailure,
    HardwareCaptureFailure,
    InvalidStateError,
    StorageWriteFailure,
)
from capture_control.core.events import EventBus, Topic
from capture_control.core.logging_utils import LoggerLike, ensure_structured_logger
from capture_control.core.task_registry import TaskRegistry
from capture_control.storage.dcf import DcfNamer
from capture_control.storage.gate import StorageGate


class PhotoState(Enum):
    IDLE = "idle"
    AUTO_FOCUSING = "auto_focusing"
    CAPTURING = "capturing"
    ERROR = "error"


class CaptureController:
    """Takes one picture at a time.

    The preview resumes as soon as the hardware returns the JPEG; the file is
    written in the background so the next capture is not delayed by storage.
    """

    def __init__(
        self,
        session: DeviceSession,
        gate: StorageGate,
        bus: EventBus,
        namer: DcfNamer,
        storage: DeviceStorage,
        pick: PickFlow,
        config: CameraConfig,
        *,
        logger: LoggerLike = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session = session
        self._gate = gate
        self._bus = bus
        self._namer = namer
        self._storage = storage
        self._pick = pick
        self._config = config
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._clock = clock
        self._tasks = TaskRegistry()
        self._save_ids = itertools.count(1)
        self.state = PhotoState.IDLE
        self.position: Optional[Position] = None

    # ------------------------------------------------------------------
    def set_position(self, position: Optional[Position]) -> None:
        self.position = position

    def build_request(self) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "orientation": self._session.orientation,
            "date_time": int(self._clock()),
            "file_format": "jpeg",
        }
        # Picks go to another app; location is not shared with it.
        if self.position is not None and not self._pick.active:
            request["position"] = self.position.as_dict()
        return request

    async def capture(self) -> Optional[bytes]:
        """Take a picture. Returns the JPEG, or ``None`` when nothing was captured."""

        if self.state is not PhotoState.IDLE:
            raise InvalidStateError(f"Capture already in progress ({self.state.value})")
        handle = self._session.require_handle()

        await self._gate.check()
        if not self._gate.admits_capture():
            self._logger.info("Capture blocked: storage %s", self._gate.state.value)
            return None

        await self._bus.publish(Topic.BUSY, source="photo")
        try:
            if self._session.requires_auto_focus and not await self._auto_focus(handle):
                return None

            self.state = PhotoState.CAPTURING
            try:
                blob = await handle.take_picture(self.build_request())
            except Exception as exc:
                raise HardwareCaptureFailure(f"take_picture: {exc}", cause=exc) from exc

            self._logger.info("Captured %d byte picture", len(blob))
            if self._pick.active:
                await self._pick.hold_photo(blob)
            else:
                self._session.resume_preview()

            task = asyncio.get_running_loop().create_task(self._save(blob), name="CaptureController:save")
            self._tasks.register_keyed("saves", str(next(self._save_ids)), task)
            return blob
        except CameraError as exc:
            self.state = PhotoState.ERROR
            self._logger.error("Capture failed: %s", exc)
            await self._alert(exc)
            self._session.resume_preview()
            return None
        finally:
            self.state = PhotoState.IDLE
            await self._bus.publish(Topic.READY, source="photo")

    async def _auto_focus(self, handle) -> bool:
        self.state = PhotoState.AUTO_FOCUSING
        await self._bus.publish(Topic.FOCUS_STATE, FocusState.FOCUSING, source="photo")
        try:
            focused = bool(await handle.auto_focus())
        except Exception as exc:
            self._logger.warning("Auto focus raised: %s", FocusFailure(str(exc), cause=exc))
            focused = False

        if focused:
            await self._bus.publish(Topic.FOCUS_STATE, FocusState.FOCUSED, source="photo")
            return True

        self._logger.info("Auto focus failed; capture skipped")
        await self._bus.publish(Topic.FOCUS_STATE, FocusState.FAIL, source="photo")
        task = asyncio.get_running_loop().create_task(self._reset_focus(), name="CaptureController:focus")
        self._tasks.register("focus-reset", task)
        return False

    async def _reset_focus(self) -> None:
        await asyncio.sleep(self._config.focus.fail_reset_ms / 1000.0)
        await self._bus.publish(Topic.FOCUS_STATE, FocusState.NONE, source="photo")

    async def _save(self, blob: bytes) -> Optional[ImageAsset]:
        try:
            name = await self._namer.next_name("image")
            absolute = await self._storage.add_named(blob, name.path)
        except (CameraError, OSError) as exc:
            failure = exc if isinstance(exc, CameraError) else StorageWriteFailure(str(exc), cause=exc)
            self._logger.error("Saving picture failed: %s", failure)
            await self._alert(failure)
            return None

        asset = ImageAsset(path=absolute, blob=blob)
        self._logger.debug("Picture saved to %s", absolute)
        await self._bus.publish(Topic.NEW_IMAGE, asset, source="photo")
        await self._gate.check()
        return asset

    async def _alert(self, exc: CameraError) -> None:
        if exc.alert is not None:
            await self._bus.publish(Topic.ALERT, UserAlert(*exc.alert), source="photo")

    async def wait_saves(self) -> None:
        await self._tasks.wait_group("saves")

    async def close(self) -> None:
        await self.wait_saves()
        await self._tasks.cancel_all()


__all__ = ["CaptureController", "PhotoState"]
