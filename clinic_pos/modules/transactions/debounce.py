from __future__ import annotations

from typing import Any, Callable

from PySide6.QtCore import QObject, QTimer, Signal


class Debouncer(QObject):
    """
    Cancel-and-reschedule around one owned single-shot QTimer.

    Every ``schedule`` restarts the timer, so only the last value issued inside
    the settle window is delivered. ``cancel`` drops a pending value for good.
    """

    fired = Signal(object)

    def __init__(self, delay_ms: int, callback: Callable[[Any], None] | None = None, parent=None):
        super().__init__(parent)
        self._callback = callback
        self._value: Any = None
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(int(delay_ms))
        self._timer.timeout.connect(self._deliver)

    @property
    def delay_ms(self) -> int:
        return self._timer.interval()

    @property
    def pending(self) -> bool:
        return self._timer.isActive()

    def schedule(self, value: Any = None) -> None:
        self._value = value
        self._timer.start()

    def cancel(self) -> None:
        self._timer.stop()
        self._value = None

    def flush(self) -> None:
        """Deliver a pending value now instead of waiting for the timer."""
        if self._timer.isActive():
            self._timer.stop()
            self._deliver()

    def _deliver(self) -> None:
        value, self._value = self._value, None
        if self._callback is not None:
            self._callback(value)
        self.fired.emit(value)
