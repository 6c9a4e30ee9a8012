"""Top-level orchestration of the capture core."""

from __future__ import annotations

import time
from typing import Callable, Optional

from capture_control.camera.config import CameraConfig, load_config
from capture_control.camera.hardware import CameraHardware, DeviceStorage
from capture_control.camera.session import DeviceSession
from capture_control.camera.state import CaptureMode, Position, UserAlert
from capture_control.capture.photo import CaptureController
from capture_control.capture.pick import PendingPickRequest, PickFlow
from capture_control.capture.poster import PosterExtractor, VideoDecoder
from capture_control.capture.record import RecordController
from capture_control.core.errors import CameraError
from capture_control.core.events import EventBus, Topic
from capture_control.core.logging_utils import LoggerLike, ensure_structured_logger
from capture_control.storage.dcf import DcfNamer
from capture_control.storage.device_storage import open_storage
from capture_control.storage.gate import StorageGate


class CameraApp:
    """Wires the session, controllers and storage gate for one camera UI.

    The UI layer subscribes to :attr:`bus` and calls the methods below in
    response to user input and visibility changes.
    """

    def __init__(
        self,
        hardware: CameraHardware,
        picture_storage: DeviceStorage,
        video_storage: DeviceStorage,
        config: Optional[CameraConfig] = None,
        *,
        bus: Optional[EventBus] = None,
        decoder: Optional[VideoDecoder] = None,
        logger: LoggerLike = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name="CameraApp")
        self.config = config or load_config(logger=self._logger)
        self.hardware = hardware
        self.picture_storage = picture_storage
        self.video_storage = video_storage
        self.bus = bus or EventBus(logger=self._logger.getChild("events"))

        storage_cfg = self.config.storage
        self.gate = StorageGate(
            picture_storage,
            self.bus,
            bytes_per_pixel=storage_cfg.bytes_per_pixel,
            header_slack_bytes=storage_cfg.header_slack_bytes,
            logger=self._logger.getChild("gate"),
        )
        self.namer = DcfNamer(
            [picture_storage, video_storage], tag=storage_cfg.dcf_tag, logger=self._logger.getChild("dcf")
        )
        self.pick = PickFlow(self.bus, logger=self._logger.getChild("pick"))
        self.session = DeviceSession(
            hardware, self.gate, self.bus, self.config, logger=self._logger.getChild("session")
        )
        self.extractor = PosterExtractor(
            video_storage,
            picture_storage,
            decoder=decoder,
            use_pyav=self.config.record.use_pyav,
            quality=self.config.record.poster_jpeg_quality,
            logger=self._logger.getChild("poster"),
        )
        self.photo = CaptureController(
            self.session,
            self.gate,
            self.bus,
            self.namer,
            picture_storage,
            self.pick,
            self.config,
            logger=self._logger.getChild("photo"),
        )
        self.record = RecordController(
            self.session,
            self.gate,
            self.bus,
            self.namer,
            video_storage,
            self.extractor,
            self.pick,
            self.config,
            logger=self._logger.getChild("record"),
            clock=clock,
        )

        self.hidden = False
        self._detach_gate: Optional[Callable[[], None]] = None

    @classmethod
    def from_config(
        cls,
        hardware: CameraHardware,
        config: Optional[CameraConfig] = None,
        *,
        decoder: Optional[VideoDecoder] = None,
        logger: LoggerLike = None,
    ) -> "CameraApp":
        """Build an app whose media lives in directories under ``config.storage.root``."""
        config = config or load_config(logger=logger)
        storage_cfg = config.storage
        pictures = open_storage(storage_cfg.root, storage_cfg.pictures_dir, logger=logger)
        videos = open_storage(storage_cfg.root, storage_cfg.videos_dir, logger=logger)
        return cls(hardware, pictures, videos, config, decoder=decoder, logger=logger)

    # ------------------------------------------------------------------
    # Lifecycle

    @property
    def capture_mode(self) -> CaptureMode:
        return self.session.capture_mode

    async def start(self) -> bool:
        """Acquire the configured camera and start the preview."""

        if self._detach_gate is None:
            self._detach_gate = self.gate.attach()
        await self.gate.check()
        return await self._load_camera()

    async def _load_camera(self, camera_index: Optional[int] = None) -> bool:
        try:
            await self.session.start(camera_index)
        except CameraError as exc:
            self._logger.error("Camera unavailable: %s", exc)
            if exc.alert is not None:
                await self.bus.publish(Topic.ALERT, UserAlert(*exc.alert), source="app")
            return False
        # Picture size may have changed; capacity depends on it.
        await self.gate.check()
        return True

    async def teardown(self) -> None:
        """Leave the camera: stop any recording, cancel the pick and release hardware."""

        self.clear_position()
        self.pick.cancel()
        self.session.set_pick_constraints(target_size=None, target_file_size=0)
        await self.record.close()
        await self.session.release()
        self._logger.info("Camera torn down")

    async def close(self) -> None:
        await self.teardown()
        await self.record.shutdown()
        await self.photo.close()
        await self.session.close()
        if self._detach_gate is not None:
            self._detach_gate()
            self._detach_gate = None
        await self.gate.close()

    async def set_hidden(self, hidden: bool) -> None:
        if hidden == self.hidden:
            return
        self.hidden = hidden
        if hidden:
            await self.teardown()
        else:
            await self._load_camera()

    # ------------------------------------------------------------------
    # Capture

    async def capture(self) -> None:
        """Shutter button: photo in photo mode, record toggle in video mode."""

        if self.capture_mode is CaptureMode.PHOTO:
            await self.photo.capture()
            return

        if self.record.is_recording:
            await self.record.stop_recording()
            return
        if self.record.is_finishing:
            self._logger.info("Shutter ignored: previous recording still %s", self.record.state.value)
            return

        started = await self.record.start_recording()
        if started is not None and self.hidden:
            # Backgrounded while the recorder was starting.
            self._logger.info("App hidden during start; stopping recording")
            await self.record.stop_recording()

    async def set_capture_mode(self, mode: CaptureMode) -> CaptureMode:
        if mode is self.session.capture_mode:
            return mode
        if self.record.is_recording:
            await self.record.stop_recording()
        self.session.capture_mode = mode
        await self.bus.publish(Topic.CAPTURE_MODE, mode, source="app")
        if self.session.handle is not None and not self.hidden:
            await self._load_camera()
        return mode

    async def toggle_mode(self) -> CaptureMode:
        target = CaptureMode.VIDEO if self.capture_mode is CaptureMode.PHOTO else CaptureMode.PHOTO
        return await self.set_capture_mode(target)

    def has_front_camera(self) -> bool:
        return len(self.hardware.list_cameras()) > 1

    async def toggle_camera(self) -> int:
        if self.record.is_recording:
            await self.record.stop_recording()
        index = 1 - self.session.camera_index if self.has_front_camera() else self.session.camera_index
        await self._load_camera(index)
        await self.bus.publish(Topic.CAMERA_CHANGED, self.session.camera_index, source="app")
        return self.session.camera_index

    async def toggle_flash(self) -> Optional[str]:
        self.session.toggle_flash()
        name = self.get_flash_mode_name()
        await self.bus.publish(Topic.FLASH_MODE, name, source="app")
        return name

    def get_flash_mode_name(self) -> Optional[str]:
        return self.session.flash_mode_name()

    def set_orientation(self, degrees: int) -> None:
        self.session.orientation = int(degrees) % 360

    # ------------------------------------------------------------------
    # Location

    def update_position(self, position: Position) -> None:
        self.photo.set_position(position)

    def clear_position(self) -> None:
        self.photo.set_position(None)

    # ------------------------------------------------------------------
    # Pick

    async def begin_pick(self, request: PendingPickRequest) -> None:
        self.pick.begin(request)
        self.session.set_pick_constraints(
            target_size=request.target_size, target_file_size=request.max_file_size_bytes
        )
        # Size and profile selection depend on the pick constraints.
        if self.session.handle is not None and not self.hidden:
            await self._load_camera()

    async def select_pressed(self) -> None:
        await self.pick.select()
        self.session.set_pick_constraints(target_size=None, target_file_size=0)

    async def retake_pressed(self) -> None:
        self.pick.retake()
        if self.capture_mode is CaptureMode.PHOTO:
            self.session.resume_preview()
        else:
            try:
                await self.session.restart_preview()
            except CameraError as exc:
                self._logger.error("Preview restart failed: %s", exc)

    def cancel_pick(self) -> None:
        self.pick.cancel()
        self.session.set_pick_constraints(target_size=None, target_file_size=0)


__all__ = ["CameraApp"]
