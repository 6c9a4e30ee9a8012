"""Photo and video controllers, poster extraction and pick requests."""

from .photo import CaptureController, PhotoState
from .pick import PendingPickRequest, PickFlow
from .poster import PosterExtractor
from .record import RecordController, RecordState

__all__ = [
    "CaptureController",
    "PendingPickRequest",
    "PhotoState",
    "PickFlow",
    "PosterExtractor",
    "RecordController",
    "RecordState",
]
