"""Storage availability tracking and capture admission."""

from __future__ import annotations

import asyncio
import itertools
from typing import Callable, Optional

from capture_control.camera.defaults import DEFAULT_BYTES_PER_PIXEL, DEFAULT_HEADER_SLACK_BYTES
from capture_control.camera.hardware import (
    STORAGE_AVAILABLE,
    STORAGE_DELETED,
    STORAGE_SHARED,
    STORAGE_UNAVAILABLE,
    DeviceStorage,
    StorageChange,
)
from capture_control.camera.state import Size, StorageState, StorageStatus
from capture_control.core.events import EventBus, Topic
from capture_control.core.logging_utils import LoggerLike, ensure_structured_logger
from capture_control.core.task_registry import TaskRegistry

_OVERLAYS = {
    StorageState.UNINITIALIZED: None,
    StorageState.AVAILABLE: None,
    StorageState.NO_CARD: "nocard",
    StorageState.UNMOUNTED: "pluggedin",
    StorageState.LOW_CAPACITY: "nospace",
}

_AVAILABILITY = {
    STORAGE_AVAILABLE: StorageState.AVAILABLE,
    STORAGE_UNAVAILABLE: StorageState.NO_CARD,
    STORAGE_SHARED: StorageState.UNMOUNTED,
}


def overlay_for(state: StorageState) -> Optional[str]:
    """Overlay id shown for ``state``; ``None`` hides the overlay."""
    return _OVERLAYS[state]


class StorageGate:
    """Tracks whether the picture storage can take another capture.

    Availability (card present, not shared over USB) is learned once through
    ``available()`` and afterwards from change notifications. Capacity is
    re-measured on every :meth:`check`, so freeing space lifts the
    low-capacity state.
    """

    def __init__(
        self,
        storage: DeviceStorage,
        bus: EventBus,
        *,
        bytes_per_pixel: int = DEFAULT_BYTES_PER_PIXEL,
        header_slack_bytes: int = DEFAULT_HEADER_SLACK_BYTES,
        logger: LoggerLike = None,
    ) -> None:
        self._storage = storage
        self._bus = bus
        self._bytes_per_pixel = max(1, bytes_per_pixel)
        self._header_slack = max(0, header_slack_bytes)
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._state = StorageState.UNINITIALIZED
        self._picture_size: Optional[Size] = None
        self._tasks = TaskRegistry()
        self._change_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # State

    @property
    def state(self) -> StorageState:
        return self._state

    @property
    def overlay(self) -> Optional[str]:
        return overlay_for(self._state)

    @property
    def picture_size(self) -> Optional[Size]:
        return self._picture_size

    def set_picture_size(self, size: Optional[Size]) -> None:
        self._picture_size = size

    def required_bytes(self) -> int:
        """Worst-case bytes for one still at the selected picture size."""
        if self._picture_size is None:
            return self._header_slack
        return self._picture_size.pixels * self._bytes_per_pixel + self._header_slack

    def admits_capture(self) -> bool:
        return self._state is StorageState.AVAILABLE

    async def _set_state(self, state: StorageState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        self._logger.info("Storage state %s -> %s", previous.value, state.value)
        await self._bus.publish(
            Topic.STORAGE_STATE,
            StorageStatus(state=state, overlay=overlay_for(state)),
            source="storage",
        )

    # ------------------------------------------------------------------
    # Checks

    async def check(self) -> StorageState:
        """Recompute the storage state and return it."""

        if self._state is StorageState.UNINITIALIZED:
            try:
                availability = await self._storage.available()
            except OSError as exc:
                # Unreadable media counts as no card until an availability change arrives.
                self._logger.error("Storage availability query failed: %s", exc)
                availability = STORAGE_UNAVAILABLE
            self._logger.debug("Initial storage availability: %s", availability)
            await self._set_state(_AVAILABILITY.get(availability, StorageState.NO_CARD))

        if self._state in (StorageState.AVAILABLE, StorageState.LOW_CAPACITY):
            try:
                free = await self._storage.free_space()
            except OSError as exc:
                self._logger.warning("Free space query failed, keeping %s: %s", self._state.value, exc)
                return self._state
            required = self.required_bytes()
            if free < required:
                self._logger.warning(
                    "Low storage: %d bytes free, %d required per picture", free, required
                )
                await self._set_state(StorageState.LOW_CAPACITY)
            else:
                await self._set_state(StorageState.AVAILABLE)
        return self._state

    async def handle_change(self, change: StorageChange) -> StorageState:
        """Apply a storage change notification, then re-check capacity."""

        if change.reason in _AVAILABILITY:
            await self._set_state(_AVAILABILITY[change.reason])
        elif change.reason == STORAGE_DELETED:
            await self._bus.publish(Topic.ITEM_DELETED, change.path, source="storage")
        return await self.check()

    # ------------------------------------------------------------------
    # Storage subscription

    def attach(self) -> Callable[[], None]:
        """Follow change notifications of the picture storage."""

        def _on_change(change: StorageChange) -> None:
            task = asyncio.get_running_loop().create_task(
                self._handle_change_logged(change), name=f"StorageGate:{change.reason}"
            )
            self._tasks.register_keyed("changes", str(next(self._change_ids)), task)

        return self._storage.subscribe(_on_change)

    async def _handle_change_logged(self, change: StorageChange) -> None:
        try:
            await self.handle_change(change)
        except Exception:
            self._logger.error("Storage change %s failed", change.reason, exc_info=True)

    async def drain(self) -> None:
        """Wait for pending change notifications to be applied."""
        await self._tasks.wait_group("changes")

    async def close(self) -> None:
        await self._tasks.cancel_all()


__all__ = ["StorageGate", "overlay_for"]
