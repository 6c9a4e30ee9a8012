"""Typed event bus used by the controllers to talk to the UI layer.

Controllers publish :class:`Event` objects; observers register with an
optional topic filter. Observers may be plain callables or coroutine
functions. A failing observer is logged and never interrupts the publisher
or the remaining observers.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Union

from .logging_utils import LoggerLike, ensure_structured_logger


class Topic(Enum):
    """Events emitted by the capture core."""

    # Input gating
    BUSY = "busy"
    READY = "ready"
    # Hardware feedback
    SHUTTER = "shutter"
    PREVIEW_STARTED = "preview_started"
    FOCUS_STATE = "focus_state"
    FLASH_MODE = "flash_mode"
    CAPTURE_MODE = "capture_mode"
    CAMERA_CHANGED = "camera_changed"
    # Recording
    RECORDING_STATE = "recording_state"
    RECORDING_TICK = "recording_tick"
    # Media
    NEW_IMAGE = "new_image"
    NEW_VIDEO = "new_video"
    ITEM_DELETED = "item_deleted"
    PICK_CONFIRM = "pick_confirm"
    # Storage and errors
    STORAGE_STATE = "storage_state"
    ALERT = "alert"


@dataclass(slots=True)
class Event:
    topic: Topic
    payload: Any = None
    source: str = ""


EventObserver = Callable[[Event], Union[Awaitable[None], None]]


@dataclass(slots=True)
class _Registration:
    observer: EventObserver
    topics: Optional[Set[Topic]] = field(default=None)

    def accepts(self, topic: Topic) -> bool:
        return self.topics is None or topic in self.topics


class EventBus:
    """Fan-out of controller events to registered observers."""

    def __init__(self, *, logger: LoggerLike = None) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name="EventBus")
        self._registrations: List[_Registration] = []
        self._history: Dict[Topic, Event] = {}

    def add_observer(
        self,
        observer: EventObserver,
        *,
        topics: Optional[Iterable[Topic]] = None,
    ) -> Callable[[], None]:
        """Register ``observer`` and return a callable that unregisters it."""
        if not any(reg.observer == observer for reg in self._registrations):
            filt = set(topics) if topics is not None else None
            self._registrations.append(_Registration(observer, filt))
            self._logger.debug(
                "Added observer %s (filter: %s)",
                getattr(observer, "__name__", repr(observer)),
                sorted(t.value for t in filt) if filt else "all",
            )
        return lambda: self.remove_observer(observer)

    def remove_observer(self, observer: EventObserver) -> None:
        self._registrations = [reg for reg in self._registrations if reg.observer != observer]

    def last(self, topic: Topic) -> Optional[Event]:
        """Most recent event published on ``topic``."""
        return self._history.get(topic)

    async def publish(self, topic: Topic, payload: Any = None, *, source: str = "") -> Event:
        event = Event(topic, payload, source)
        self._history[topic] = event
        for reg in list(self._registrations):
            if not reg.accepts(topic):
                continue
            try:
                result = reg.observer(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self._logger.error(
                    "Observer %s failed on %s",
                    getattr(reg.observer, "__name__", repr(reg.observer)),
                    topic.value,
                    exc_info=True,
                )
        return event


__all__ = ["Event", "EventBus", "EventObserver", "Topic"]
