"""Video recording state machine.

A recording ends in three steps: the hardware is told to stop, the storage
reports the video file as ``modified`` (the write is complete), and a poster
frame is extracted from the finished file. The storage notification is
matched on the recording's absolute path; notifications for other files and
repeats for the same file are ignored.
"""

from __future__ import annotations

import asyncio
import os
import time
from enum import Enum
from typing import Callable, Optional

from capture_control.camera.config import CameraConfig
from capture_control.camera.hardware import (
    RECORDER_FILE_SIZE_LIMIT,
    STORAGE_MODIFIED,
    DeviceStorage,
    StorageChange,
)
from capture_control.camera.session import DeviceSession
from capture_control.camera.state import RecordingSession, RecordingTick, StorageState, UserAlert, VideoAsset, format_timer
from capture_control.capture.pick import PickFlow
from capture_control.capture.poster import PosterExtractor
from capture_control.core.errors import (
    CameraError,
    ExtractionFailure,
    HardwareCaptureFailure,
    InvalidStateError,
    StorageSpaceExhausted,
    StorageWriteFailure,
)
from capture_control.core.events import EventBus, Topic
from capture_control.core.logging_utils import LoggerLike, ensure_structured_logger
from capture_control.core.task_registry import TaskRegistry
from capture_control.storage.dcf import DcfNamer
from capture_control.storage.gate import StorageGate

RECORDING_ERROR_ALERT = ("error-recording-title", "error-recording")
SIZE_LIMIT_ALERT = ("size-limit-reached", "storage-size-limit-reached")
PICK_SIZE_LIMIT_ALERT = ("size-limit-reached", "activity-size-limit-reached")


class RecordState(Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    RECORDING = "recording"
    SIZE_LIMIT_STOPPING = "size_limit_stopping"
    STOPPING = "stopping"
    AWAITING_WRITE = "awaiting_write"
    EXTRACTING_POSTER = "extracting_poster"
    ERROR = "error"


_STOPPABLE = (RecordState.RECORDING, RecordState.SIZE_LIMIT_STOPPING)
_FINISHING = (RecordState.STOPPING, RecordState.AWAITING_WRITE, RecordState.EXTRACTING_POSTER)
_UNUSABLE_STORAGE = (StorageState.NO_CARD, StorageState.UNMOUNTED)


class RecordController:
    def __init__(
        self,
        session: DeviceSession,
        gate: StorageGate,
        bus: EventBus,
        namer: DcfNamer,
        storage: DeviceStorage,
        extractor: PosterExtractor,
        pick: PickFlow,
        config: CameraConfig,
        *,
        logger: LoggerLike = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._gate = gate
        self._bus = bus
        self._namer = namer
        self._storage = storage
        self._extractor = extractor
        self._pick = pick
        self._config = config
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._clock = clock
        self._tasks = TaskRegistry()

        self.state = RecordState.IDLE
        self.recording: Optional[RecordingSession] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._completion: Optional[asyncio.Future] = None
        self._write_seen = False

        session.set_recorder_listener(self.handle_recorder_state)

    # ------------------------------------------------------------------
    # Properties

    @property
    def is_recording(self) -> bool:
        return self.state in _STOPPABLE

    @property
    def is_finishing(self) -> bool:
        return self.state in _FINISHING

    def elapsed(self) -> float:
        if self.recording is None:
            return 0.0
        return max(0.0, self._clock() - self.recording.started_at)

    # ------------------------------------------------------------------
    # Start

    async def start_recording(self) -> Optional[RecordingSession]:
        """Start a recording; ``None`` when it could not be started."""

        if self.state is not RecordState.IDLE:
            raise InvalidStateError(f"Cannot start recording while {self.state.value}")
        handle = self._session.require_handle()

        # Low capacity is judged against the video's own free space in _admit.
        storage_state = await self._gate.check()
        if storage_state in _UNUSABLE_STORAGE:
            self._logger.info("Recording blocked: storage %s", storage_state.value)
            return None

        self.state = RecordState.PREPARING
        await self._bus.publish(Topic.BUSY, source="record")
        try:
            name = await self._namer.next_name("video")
            absolute = await self._ensure_directory(name.directory, name.name)
            max_bytes = await self._admit()

            rotation = self._session.orientation
            recording = RecordingSession(
                relative_path=name.path,
                absolute_path=absolute,
                started_at=self._clock(),
                max_file_size_bytes=max_bytes,
                rotation=rotation,
            )
            request = {"rotation": rotation, "max_file_size_bytes": max_bytes}
            self.recording = recording
            self._write_seen = False
            try:
                await handle.start_recording(request, self._storage, name.path)
            except Exception as exc:
                raise HardwareCaptureFailure(
                    f"start_recording: {exc}", cause=exc, alert=RECORDING_ERROR_ALERT
                ) from exc
        except (CameraError, OSError) as exc:
            self.state = RecordState.ERROR
            self.recording = None
            self._logger.error("Recording not started: %s", exc)
            alert = exc.alert if isinstance(exc, CameraError) else RECORDING_ERROR_ALERT
            if alert is not None:
                await self._bus.publish(Topic.ALERT, UserAlert(*alert), source="record")
            self.state = RecordState.IDLE
            await self._bus.publish(Topic.READY, source="record")
            return None

        self.state = RecordState.RECORDING
        self._logger.info(
            "Recording %s (limit %d bytes, rotation %d)",
            recording.relative_path,
            recording.max_file_size_bytes,
            recording.rotation,
        )
        await self._bus.publish(Topic.RECORDING_STATE, True, source="record")
        await self._publish_tick()
        loop = asyncio.get_running_loop()
        self._tasks.register("ticker", loop.create_task(self._tick(), name="RecordController:ticker"))
        self._tasks.register("min-duration", loop.create_task(self._enable_input_later(), name="RecordController:min"))
        return recording

    async def _ensure_directory(self, directory: str, name: str) -> str:
        """Create the target directory through the storage and return the video's absolute path.

        The hardware recorder does not create directories, so a zero-byte
        hidden sibling is written first and then removed.
        """

        placeholder = f"{directory}.{name}"
        try:
            placeholder_abs = await self._storage.add_named(b"", placeholder)
        except OSError as exc:
            raise StorageWriteFailure(
                f"placeholder {placeholder}: {exc}", cause=exc, alert=RECORDING_ERROR_ALERT
            ) from exc
        absolute = os.path.join(os.path.dirname(placeholder_abs), name)
        try:
            await self._storage.delete(placeholder_abs)
        except (CameraError, OSError) as exc:
            self._logger.warning("Placeholder %s not removed: %s", placeholder_abs, exc)
        return absolute

    async def _admit(self) -> int:
        """Maximum file size for the new recording, or raise when space is short."""

        try:
            free = await self._storage.free_space()
        except OSError as exc:
            raise StorageWriteFailure(f"free_space: {exc}", cause=exc, alert=RECORDING_ERROR_ALERT) from exc
        reserve = self._config.record.space_min_bytes
        max_bytes = free - reserve - self._config.record.space_padding_bytes
        pick_limit = self._pick.pending.max_file_size_bytes if self._pick.pending else 0
        if pick_limit > 0:
            max_bytes = min(max_bytes, pick_limit)
        if free < reserve or max_bytes <= 0:
            raise StorageSpaceExhausted(f"{free} bytes free, {reserve} reserved")
        return max_bytes

    async def _publish_tick(self) -> None:
        elapsed = self.elapsed()
        await self._bus.publish(
            Topic.RECORDING_TICK,
            RecordingTick(elapsed_ms=int(elapsed * 1000), text=format_timer(elapsed)),
            source="record",
        )

    async def _tick(self) -> None:
        interval = self._config.record.timer_tick_ms / 1000.0
        while True:
            await asyncio.sleep(interval)
            await self._publish_tick()

    async def _enable_input_later(self) -> None:
        # Stopping within the first moments of a recording leaves an empty file.
        await asyncio.sleep(self._config.record.min_recording_ms / 1000.0)
        await self._bus.publish(Topic.READY, source="record")

    # ------------------------------------------------------------------
    # Stop

    async def stop_recording(self) -> None:
        """Stop the hardware and wait (in the background) for the file to be written."""

        if self.state in _FINISHING or self.state is RecordState.IDLE:
            self._logger.debug("stop_recording ignored while %s", self.state.value)
            return
        if self.state not in _STOPPABLE or self.recording is None:
            raise InvalidStateError(f"Cannot stop recording while {self.state.value}")

        self._completion = asyncio.get_running_loop().create_future()
        self._unsubscribe = self._storage.subscribe(self._on_storage_change)

        self.state = RecordState.STOPPING
        await self._tasks.cancel("ticker")
        await self._tasks.cancel("min-duration")
        handle = self._session.handle
        if handle is not None:
            try:
                handle.stop_recording()
            except Exception as exc:
                self._logger.warning("Hardware stop_recording failed: %s", exc)

        self._logger.info("Recording stopped after %.1fs", self.elapsed())
        if self.state is RecordState.STOPPING:
            self.state = RecordState.AWAITING_WRITE
            timeout = self._config.record.write_timeout_s
            if timeout > 0:
                task = asyncio.get_running_loop().create_task(
                    self._expire_write(self.recording, timeout), name="RecordController:write-timeout"
                )
                self._tasks.register("write-timeout", task)
        await self._bus.publish(Topic.RECORDING_STATE, False, source="record")
        await self._bus.publish(Topic.READY, source="record")

    def handle_recorder_state(self, state: str) -> None:
        """Recorder notifications from the hardware."""

        if state != RECORDER_FILE_SIZE_LIMIT or self.state is not RecordState.RECORDING:
            return
        if self.recording is None or self.recording.size_limit_hit:
            return
        self.recording.size_limit_hit = True
        self.state = RecordState.SIZE_LIMIT_STOPPING
        self._logger.info("File size limit reached; stopping")
        task = asyncio.get_running_loop().create_task(self._stop_for_size_limit(), name="RecordController:limit")
        self._tasks.register("size-limit", task)

    async def _stop_for_size_limit(self) -> None:
        await self.stop_recording()
        alert = PICK_SIZE_LIMIT_ALERT if self._pick.active else SIZE_LIMIT_ALERT
        await self._bus.publish(Topic.ALERT, UserAlert(*alert), source="record")

    def _on_storage_change(self, change: StorageChange) -> None:
        recording = self.recording
        if recording is None or self._write_seen:
            return
        if change.reason != STORAGE_MODIFIED or change.path != recording.absolute_path:
            return
        self._write_seen = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        task = asyncio.get_running_loop().create_task(self._finish(recording), name="RecordController:finish")
        self._tasks.register("finish", task)

    async def _expire_write(self, recording: RecordingSession, timeout: float) -> None:
        await asyncio.sleep(timeout)
        if self._write_seen or self.recording is not recording:
            return
        self._logger.warning(
            "No write notification for %s after %.1fs; giving up on its poster",
            recording.absolute_path,
            timeout,
        )
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.recording = None
        self.state = RecordState.IDLE
        if self._completion is not None and not self._completion.done():
            self._completion.set_result(None)

    async def _finish(self, recording: RecordingSession) -> Optional[VideoAsset]:
        await self._tasks.cancel("write-timeout")
        self.state = RecordState.EXTRACTING_POSTER
        asset: Optional[VideoAsset] = None
        try:
            asset = await self._extractor.extract(recording.relative_path, recording.absolute_path)
        except ExtractionFailure as exc:
            self._logger.warning("Not a video file, deleting %s: %s", recording.absolute_path, exc)
            try:
                await self._storage.delete(recording.absolute_path)
            except (CameraError, OSError) as delete_exc:
                self._logger.error("Deleting %s failed: %s", recording.absolute_path, delete_exc)

        try:
            if asset is not None:
                if self._pick.active:
                    await self._pick.hold_video(asset)
                else:
                    await self._bus.publish(Topic.NEW_VIDEO, asset, source="record")
        finally:
            self.recording = None
            self.state = RecordState.IDLE
            if self._completion is not None and not self._completion.done():
                self._completion.set_result(asset)
        return asset

    async def wait_completion(self, timeout: Optional[float] = None) -> Optional[VideoAsset]:
        """Result of the last stopped recording once its poster is ready."""
        if self._completion is None:
            return None
        return await asyncio.wait_for(asyncio.shield(self._completion), timeout)

    async def close(self) -> None:
        if self.is_recording:
            await self.stop_recording()
        await self._tasks.cancel("ticker")
        await self._tasks.cancel("min-duration")

    async def shutdown(self) -> None:
        """Close and drop any pending write wait; the controller is not reused."""
        await self.close()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self._tasks.cancel_all()


__all__ = ["RecordController", "RecordState"]
