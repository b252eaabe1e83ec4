from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from ..models import CycleState, DisplayFrame
from ..utils import pan_offset

log = logging.getLogger(__name__)

FrameListener = Callable[[DisplayFrame], None]


class DisplayPublisher:
    """
    Single slot holding the frame the renderer should draw.
    Readers never block and always see either the old or the new frame.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame: Optional[DisplayFrame] = None
        self._offset = 0.0
        self._listeners: List[FrameListener] = []

    def read(self) -> Optional[DisplayFrame]:
        return self._frame

    @property
    def offset(self) -> float:
        return self._offset

    def set_offset(self, pixels: float) -> None:
        self._offset = float(pixels)

    def set_pan(self, fraction: float, display_width: int, zoom: float) -> float:
        self._offset = pan_offset(fraction, display_width, zoom)
        return self._offset

    def publish(self, frame: DisplayFrame, cycle: Optional[CycleState] = None) -> bool:
        with self._lock:
            if cycle is not None and cycle.cancelled:
                log.debug("Dropping frame of superseded cycle %d", cycle.number)
                return False
            self._frame = frame
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(frame)
            except Exception:  # noqa: BLE001
                log.exception("Frame listener failed")
        return True

    def subscribe(self, listener: FrameListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe
