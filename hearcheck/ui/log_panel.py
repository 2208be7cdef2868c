from __future__ import annotations
import logging
from datetime import datetime
from PySide6.QtWidgets import QGroupBox, QVBoxLayout, QPlainTextEdit
from PySide6.QtCore import QObject, Signal

VISIBLE_LINES = 3


class LogPanel(QGroupBox):
    """Session log under the test pages: newest line last, capped history."""

    def __init__(self, parent=None, max_lines: int = 500) -> None:
        super().__init__("Log", parent)
        self._view = QPlainTextEdit(self)
        self._view.setReadOnly(True)
        self._view.setMaximumBlockCount(max_lines)
        self._view.setFixedHeight(int(self._view.fontMetrics().lineSpacing() * (VISIBLE_LINES + 0.4)))
        box = QVBoxLayout(self)
        box.setContentsMargins(4, 2, 4, 4)
        box.addWidget(self._view)

    def append(self, message: str) -> None:
        self._view.appendPlainText(f"[{datetime.now():%H:%M:%S}] {message}")
        bar = self._view.verticalScrollBar()
        bar.setValue(bar.maximum())

    def clear(self) -> None:
        self._view.clear()


class _Bridge(QObject):
    message = Signal(str)


class QtLogHandler(logging.Handler):
    """Forwards ``hearcheck`` log records to a LogPanel through a queued signal."""

    def __init__(self, panel: LogPanel, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._bridge = _Bridge()
        self._bridge.message.connect(panel.append)
        self.setFormatter(logging.Formatter('%(levelname)s %(name)s: %(message)s'))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._bridge.message.emit(self.format(record))
        except RuntimeError:
            # panel already destroyed
            self.handleError(record)
