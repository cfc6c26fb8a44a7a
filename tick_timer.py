from typing import Callable

from PyQt6.QtCore import QObject, Qt, QTimer


class QtTickTimer(QObject):
    """Repeating host-timer tick on the Qt event loop of the creating thread.

    Ticks are delivered cooperatively between other events, so the callback
    must return quickly and never block.
    """

    def __init__(self, interval_ms: int, callback: Callable[[], None]):
        super().__init__()
        self._callback = callback
        self._timer = QTimer(self)
        self._timer.setInterval(max(1, int(interval_ms)))
        self._timer.setTimerType(Qt.TimerType.PreciseTimer)
        self._timer.timeout.connect(self._on_timeout)

    @property
    def interval_ms(self) -> int:
        return self._timer.interval()

    def start(self) -> None:
        if not self._timer.isActive():
            self._timer.start()

    def stop(self) -> None:
        self._timer.stop()

    def is_active(self) -> bool:
        return self._timer.isActive()

    def _on_timeout(self) -> None:
        self._callback()
