"""Media storage: availability gate, DCF naming and the directory-backed store."""

from .dcf import DcfName, DcfNamer
from .device_storage import LocalDeviceStorage, open_storage
from .gate import StorageGate, overlay_for

__all__ = [
    "DcfName",
    "DcfNamer",
    "LocalDeviceStorage",
    "StorageGate",
    "open_storage",
    "overlay_for",
]
