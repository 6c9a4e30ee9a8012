"""Flash and focus policy for the acquired camera."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

from capture_control.camera.defaults import FRONT_CAMERA_INDEX
from capture_control.camera.state import CaptureMode

FOCUS_CONTINUOUS_PICTURE = "continuous-picture"
FOCUS_CONTINUOUS_VIDEO = "continuous-video"
FOCUS_AUTO = "auto"


@dataclass(slots=True)
class FlashTable:
    """Flash modes for one capture mode, with a remembered index per camera."""

    modes: Tuple[str, ...]
    default_index: int
    supported: Dict[int, bool] = field(default_factory=dict)
    current_index: Dict[int, int] = field(default_factory=dict)

    def index_for(self, camera_index: int) -> int:
        return self.current_index.setdefault(camera_index, self.default_index)

    def name_for(self, camera_index: int) -> str:
        return self.modes[self.index_for(camera_index)]

    def advance(self, camera_index: int) -> str:
        self.current_index[camera_index] = (self.index_for(camera_index) + 1) % len(self.modes)
        return self.name_for(camera_index)

    def is_supported(self, camera_index: int) -> bool:
        return self.supported.get(camera_index, False)


class FlashState:
    """Per-mode flash tables: photo ``off/auto/on`` (auto), video ``off/torch`` (off)."""

    def __init__(self) -> None:
        self._tables: Dict[CaptureMode, FlashTable] = {
            CaptureMode.PHOTO: FlashTable(modes=("off", "auto", "on"), default_index=1),
            CaptureMode.VIDEO: FlashTable(modes=("off", "torch"), default_index=0),
        }

    def table(self, mode: CaptureMode) -> FlashTable:
        return self._tables[mode]

    def record_support(self, camera_index: int, flash_modes: Sequence[str]) -> None:
        """A mode table is usable only if the camera reports every mode in it."""
        available = set(flash_modes)
        for table in self._tables.values():
            table.supported[camera_index] = set(table.modes) <= available

    def select(self, mode: CaptureMode, camera_index: int) -> Optional[str]:
        """Mode name to apply to hardware, or ``None`` when flash is unsupported."""
        table = self._tables[mode]
        name = table.name_for(camera_index)
        return name if table.is_supported(camera_index) else None

    def toggle(self, mode: CaptureMode, camera_index: int) -> Optional[str]:
        table = self._tables[mode]
        table.advance(camera_index)
        return self.select(mode, camera_index)

    def display_name(self, mode: CaptureMode, camera_index: int) -> Optional[str]:
        # The front camera has no flash regardless of what it reports.
        if camera_index == FRONT_CAMERA_INDEX:
            return None
        return self.select(mode, camera_index)


@dataclass(frozen=True, slots=True)
class FocusDecision:
    mode: Optional[str]
    requires_auto_focus: bool


def choose_focus_mode(capture_mode: CaptureMode, focus_modes: Sequence[str]) -> FocusDecision:
    """Continuous focus for the active mode when available, else triggered ``auto``."""

    supported = set(focus_modes)
    if capture_mode is CaptureMode.PHOTO and FOCUS_CONTINUOUS_PICTURE in supported:
        return FocusDecision(FOCUS_CONTINUOUS_PICTURE, False)
    if capture_mode is CaptureMode.VIDEO and FOCUS_CONTINUOUS_VIDEO in supported:
        return FocusDecision(FOCUS_CONTINUOUS_VIDEO, False)
    if FOCUS_AUTO in supported:
        return FocusDecision(FOCUS_AUTO, True)
    return FocusDecision(None, False)


__all__ = [
    "FOCUS_AUTO",
    "FOCUS_CONTINUOUS_PICTURE",
    "FOCUS_CONTINUOUS_VIDEO",
    "FlashState",
    "FlashTable",
    "FocusDecision",
    "choose_focus_mode",
]
