"""Lifecycle of the single acquired camera handle."""

from __future__ import annotations

import asyncio
import itertools
from enum import Enum
from typing import Any, Callable, Optional

from capture_control.camera.capabilities import (
    build_capability_set,
    pick_picture_size,
    pick_thumbnail_size,
    pick_video_profile,
    select_preview_size,
)
from capture_control.camera.config import CameraConfig
from capture_control.camera.controls import FlashState, FocusDecision, choose_focus_mode
from capture_control.camera.hardware import PREVIEW_STARTED, CameraHandle, CameraHardware
from capture_control.camera.state import (
    CapabilitySet,
    CaptureMode,
    SelectionPolicy,
    Size,
    VideoProfile,
)
from capture_control.core.errors import HardwareAcquireFailure, InvalidStateError
from capture_control.core.events import EventBus, Topic
from capture_control.core.logging_utils import LoggerLike, ensure_structured_logger
from capture_control.core.task_registry import TaskRegistry
from capture_control.storage.gate import StorageGate


class SessionState(Enum):
    RELEASED = "released"
    ACQUIRING = "acquiring"
    CONFIGURING = "configuring"
    STREAMING = "streaming"
    RELEASING = "releasing"


RecorderListener = Callable[[str], None]


class DeviceSession:
    """Owns the acquired :class:`CameraHandle` and everything derived from it.

    ``acquire`` always releases a held handle first, so at most one handle is
    live. ``configure`` applies the size, flash and focus selections for the
    current capture mode and waits for the preview to report ``started``.
    Capabilities are re-read on every acquire.
    """

    def __init__(
        self,
        hardware: CameraHardware,
        gate: StorageGate,
        bus: EventBus,
        config: CameraConfig,
        *,
        logger: LoggerLike = None,
    ) -> None:
        self._hardware = hardware
        self._gate = gate
        self._bus = bus
        self._config = config
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._tasks = TaskRegistry()
        self._notify_ids = itertools.count(1)

        self.state = SessionState.RELEASED
        self.camera_index = config.session.camera_index
        self.capture_mode = CaptureMode.PHOTO
        self.orientation = 0
        self.flash = FlashState()

        self.handle: Optional[CameraHandle] = None
        self.capabilities: Optional[CapabilitySet] = None
        self.picture_size: Optional[Size] = None
        self.thumbnail_size: Optional[Size] = None
        self.preview_size: Optional[Size] = None
        self.video_profile: Optional[VideoProfile] = None
        self.focus = FocusDecision(None, False)
        self.stream: Any = None

        self._target_size: Optional[Size] = None
        self._target_file_size = 0
        self._recorder_listener: Optional[RecorderListener] = None
        self._preview_started: Optional[asyncio.Future] = None

    # ------------------------------------------------------------------
    # Properties

    @property
    def is_streaming(self) -> bool:
        return self.state is SessionState.STREAMING

    @property
    def requires_auto_focus(self) -> bool:
        return self.focus.requires_auto_focus

    def require_handle(self) -> CameraHandle:
        if self.handle is None or self.state is not SessionState.STREAMING:
            raise InvalidStateError(f"No streaming camera (session {self.state.value})")
        return self.handle

    def selection_policy(self) -> SelectionPolicy:
        return SelectionPolicy.from_settings(
            self._config.selection,
            target_size=self._target_size,
            target_file_size=self._target_file_size,
        )

    def set_pick_constraints(self, *, target_size: Optional[Size], target_file_size: int) -> None:
        """Constraints from a pending pick; applied on the next configure."""
        self._target_size = target_size
        self._target_file_size = max(0, int(target_file_size or 0))

    def set_recorder_listener(self, listener: Optional[RecorderListener]) -> None:
        self._recorder_listener = listener

    # ------------------------------------------------------------------
    # Lifecycle

    async def acquire(self, camera_index: Optional[int] = None) -> CameraHandle:
        if self.state in (SessionState.ACQUIRING, SessionState.CONFIGURING, SessionState.RELEASING):
            raise InvalidStateError(f"Cannot acquire while {self.state.value}")

        if self.handle is not None:
            await self.release()

        if camera_index is not None:
            self.camera_index = camera_index
        self.state = SessionState.ACQUIRING
        self._logger.info("Acquiring camera %d", self.camera_index)
        try:
            handle = await self._hardware.acquire(self.camera_index)
        except Exception as exc:
            self.state = SessionState.RELEASED
            self._logger.error("Camera %d acquire failed: %s", self.camera_index, exc)
            raise HardwareAcquireFailure(f"camera {self.camera_index}: {exc}", cause=exc) from exc

        self.handle = handle
        self.capabilities = build_capability_set(handle.capabilities or {}, logger=self._logger)
        self.state = SessionState.CONFIGURING
        return handle

    async def configure(self) -> None:
        """Apply selections to the acquired handle and start the preview."""

        if self.state is not SessionState.CONFIGURING or self.handle is None:
            raise InvalidStateError(f"Cannot configure while {self.state.value}")

        handle = self.handle
        caps = self.capabilities or CapabilitySet()
        policy = self.selection_policy()
        viewport_w, viewport_h = self._config.display.viewport

        self.picture_size = pick_picture_size(caps.picture_sizes, policy) if caps.picture_sizes else None
        if self.picture_size is not None:
            handle.picture_size = self.picture_size
        self._gate.set_picture_size(self.picture_size)

        self.thumbnail_size = None
        if self.picture_size is not None:
            self.thumbnail_size = pick_thumbnail_size(
                caps.thumbnail_sizes, self.picture_size, viewport_w, viewport_h
            )
            if self.thumbnail_size is not None:
                handle.thumbnail_size = self.thumbnail_size

        self.flash.record_support(self.camera_index, caps.flash_modes)
        self.apply_flash()
        self.apply_focus()

        handle.on_shutter = self._on_shutter
        handle.on_preview_state_change = self._on_preview_state_change
        handle.on_recorder_state_change = self._on_recorder_state_change

        self._logger.debug(
            "Configured camera %d: picture=%s thumbnail=%s flash=%s focus=%s",
            self.camera_index,
            self.picture_size,
            self.thumbnail_size,
            handle.flash_mode,
            self.focus.mode,
        )

        try:
            await self._start_preview(handle, caps, policy)
        except BaseException:
            await self.release()
            raise

    async def start(self, camera_index: Optional[int] = None) -> None:
        """Release, acquire and configure in one step."""
        await self.acquire(camera_index)
        await self.configure()

    async def restart_preview(self) -> None:
        handle = self.require_handle()
        self.state = SessionState.CONFIGURING
        try:
            await self._start_preview(handle, self.capabilities or CapabilitySet(), self.selection_policy())
        except BaseException:
            await self.release()
            raise

    async def _start_preview(self, handle: CameraHandle, caps: CapabilitySet, policy: SelectionPolicy) -> None:
        loop = asyncio.get_running_loop()
        self._preview_started = loop.create_future()

        try:
            if self.capture_mode is CaptureMode.VIDEO:
                if not caps.recorder_profiles:
                    raise HardwareAcquireFailure("camera reports no recorder profiles")
                self.video_profile = pick_video_profile(
                    caps.recorder_profiles, self._config.selection.preferred_profiles, policy
                )
                self.stream = await handle.get_preview_stream_video_mode(self.video_profile)
            else:
                viewport_w, viewport_h = self._config.display.viewport
                self.preview_size = select_preview_size(caps.preview_sizes, viewport_w, viewport_h)
                self.stream = await handle.get_preview_stream(self.preview_size)
        except HardwareAcquireFailure:
            raise
        except Exception as exc:
            raise HardwareAcquireFailure(f"preview stream: {exc}", cause=exc) from exc

        timeout = self._config.session.preview_start_timeout_s
        try:
            await asyncio.wait_for(asyncio.shield(self._preview_started), timeout)
        except asyncio.TimeoutError as exc:
            raise HardwareAcquireFailure(f"preview did not start within {timeout:.1f}s", cause=exc) from exc

        self.state = SessionState.STREAMING
        self._logger.info("Camera %d streaming (%s mode)", self.camera_index, self.capture_mode.value)
        await self._bus.publish(Topic.PREVIEW_STARTED, self.capture_mode, source="session")

    async def release(self) -> None:
        """Release the handle. Safe to call repeatedly; failures are logged."""

        handle = self.handle
        if handle is None:
            self.state = SessionState.RELEASED
            return

        self.state = SessionState.RELEASING
        handle.on_shutter = None
        handle.on_preview_state_change = None
        handle.on_recorder_state_change = None
        if self._preview_started is not None and not self._preview_started.done():
            self._preview_started.cancel()
        try:
            await handle.release()
            self._logger.info("Camera %d released", self.camera_index)
        except Exception as exc:
            self._logger.warning("Camera %d release failed: %s", self.camera_index, exc)
        finally:
            self.handle = None
            self.stream = None
            self.state = SessionState.RELEASED

    async def close(self) -> None:
        await self.release()
        await self._tasks.cancel_all()

    # ------------------------------------------------------------------
    # Flash and focus

    def apply_flash(self) -> Optional[str]:
        name = self.flash.select(self.capture_mode, self.camera_index)
        if name is not None and self.handle is not None:
            self.handle.flash_mode = name
        return name

    def toggle_flash(self) -> Optional[str]:
        self.flash.toggle(self.capture_mode, self.camera_index)
        return self.apply_flash()

    def flash_mode_name(self) -> Optional[str]:
        return self.flash.display_name(self.capture_mode, self.camera_index)

    def apply_focus(self) -> FocusDecision:
        caps = self.capabilities or CapabilitySet()
        self.focus = choose_focus_mode(self.capture_mode, caps.focus_modes)
        if self.focus.mode is not None and self.handle is not None:
            self.handle.focus_mode = self.focus.mode
        return self.focus

    def resume_preview(self) -> None:
        if self.handle is not None:
            self.handle.resume_preview()

    # ------------------------------------------------------------------
    # Hardware notifications

    def _publish_soon(self, topic: Topic, payload: Any = None) -> None:
        task = asyncio.get_running_loop().create_task(
            self._bus.publish(topic, payload, source="session"), name=f"DeviceSession:{topic.value}"
        )
        self._tasks.register_keyed("notify", str(next(self._notify_ids)), task)

    def _on_shutter(self) -> None:
        self._publish_soon(Topic.SHUTTER)

    def _on_preview_state_change(self, state: str) -> None:
        self._logger.debug("Preview state: %s", state)
        future = self._preview_started
        if state == PREVIEW_STARTED and future is not None and not future.done():
            future.set_result(True)

    def _on_recorder_state_change(self, state: str) -> None:
        self._logger.debug("Recorder state: %s", state)
        if self._recorder_listener is not None:
            self._recorder_listener(state)


__all__ = ["DeviceSession", "SessionState"]
