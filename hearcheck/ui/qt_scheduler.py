from __future__ import annotations

import time
from typing import Callable, Optional, Set

from PySide6.QtCore import QObject, QTimer


class QtTimerHandle:
    def __init__(self, timer: QTimer, owner: "QtScheduler") -> None:
        self._timer = timer
        self._owner = owner
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._timer.stop()
        self._owner._release(self)

    def _fire(self, callback: Callable[[], None]) -> None:
        if not self._active:
            return
        self._active = False
        self._owner._release(self)
        callback()


class QtScheduler:
    """Scheduler on the Qt event loop: one single-shot QTimer per call."""

    def __init__(self, parent: Optional[QObject] = None) -> None:
        self._parent = parent
        self._live: Set[QtTimerHandle] = set()

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> QtTimerHandle:
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        handle = QtTimerHandle(timer, self)
        timer.timeout.connect(lambda: handle._fire(callback))
        self._live.add(handle)
        timer.start(max(0, int(round(delay_s * 1000))))
        return handle

    def cancel_all(self) -> None:
        for handle in list(self._live):
            handle.cancel()

    def _release(self, handle: QtTimerHandle) -> None:
        self._live.discard(handle)
        handle._timer.deleteLater()
