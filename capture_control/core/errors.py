"""Exception taxonomy for camera capture operations."""

from __future__ import annotations

from typing import Optional


class CameraError(Exception):
    """Base class for recoverable capture failures.

    ``alert`` carries the message key pair shown to the user, or ``None`` when
    the failure is handled without a dialog.
    """

    alert: Optional[tuple[str, str]] = None

    def __init__(
        self,
        message: str = "",
        *,
        cause: Optional[BaseException] = None,
        alert: Optional[tuple[str, str]] = None,
    ) -> None:
        super().__init__(message or self.__class__.__name__)
        if cause is not None:
            self.__cause__ = cause
        if alert is not None:
            self.alert = alert


class HardwareAcquireFailure(CameraError):
    """The driver refused or failed to hand out a camera handle."""

    alert = ("error-title", "error-acquire")


class HardwareCaptureFailure(CameraError):
    """Picture or recording request rejected by the hardware."""

    alert = ("error-saving-title", "error-saving")


class StorageWriteFailure(CameraError):
    alert = ("error-saving-title", "error-saving")


class StorageSpaceExhausted(CameraError):
    """Free space is below the recording reserve; nothing was started."""

    alert = ("nospace2-title", "nospace2-text")


class FocusFailure(CameraError):
    alert = None


class ExtractionFailure(CameraError):
    """A finished video could not be decoded into a poster frame.

    The file is deleted without a dialog.
    """

    alert = None


class InvalidStateError(RuntimeError):
    """Operation invoked in a state that does not permit it (a caller bug)."""


__all__ = [
    "CameraError",
    "ExtractionFailure",
    "FocusFailure",
    "HardwareAcquireFailure",
    "HardwareCaptureFailure",
    "InvalidStateError",
    "StorageSpaceExhausted",
    "StorageWriteFailure",
]
