from __future__ import annotations

from typing import Callable, List

from PySide6.QtCore import QThread, Signal


class VoiceListThread(QThread):
    """Lists the synthesis voices off the UI thread; the listing can take seconds."""

    finished = Signal(object)

    def __init__(self, load: Callable[[], List[dict]]) -> None:
        super().__init__()
        self._load = load

    def run(self) -> None:  # type: ignore[override]
        self.finished.emit(self._load())
