"""Capture-control core for a camera application.

Selects operating parameters from hardware capability reports, drives still
capture and video recording, and gates both on storage availability.
"""

from .app import CameraApp
from .camera.config import CameraConfig, load_config, load_config_file
from .core.events import Event, EventBus, Topic

__version__ = "0.3.0"

__all__ = [
    "CameraApp",
    "CameraConfig",
    "Event",
    "EventBus",
    "Topic",
    "load_config",
    "load_config_file",
    "__version__",
]
