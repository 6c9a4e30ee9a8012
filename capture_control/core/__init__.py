"""Shared infrastructure: logging, configuration files, events, task lifecycle."""

from .errors import (
    CameraError,
    ExtractionFailure,
    FocusFailure,
    HardwareAcquireFailure,
    HardwareCaptureFailure,
    InvalidStateError,
    StorageSpaceExhausted,
    StorageWriteFailure,
)
from .events import Event, EventBus, Topic
from .logging_utils import LoggerLike, StructuredLogger, ensure_structured_logger, get_module_logger
from .task_registry import TaskRegistry

__all__ = [
    "CameraError",
    "Event",
    "EventBus",
    "ExtractionFailure",
    "FocusFailure",
    "HardwareAcquireFailure",
    "HardwareCaptureFailure",
    "InvalidStateError",
    "LoggerLike",
    "StorageSpaceExhausted",
    "StorageWriteFailure",
    "StructuredLogger",
    "TaskRegistry",
    "Topic",
    "ensure_structured_logger",
    "get_module_logger",
]
