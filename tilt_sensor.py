"""Accelerometer intensity source: device tilt drives the meter level."""

from typing import Callable, Optional

from PyQt6.QtCore import QObject

from config import TiltConfig
from logging_utils import log_event
from tilt_mapper import TiltSmoother


class AccelerometerTilt(QObject):
    """
    Reads the Qt Sensors accelerometer (gravity included) and hands smoothed
    levels to ``on_level`` whenever they move past the publish threshold.
    """

    def __init__(self, on_level: Callable[[float], None], config: Optional[TiltConfig] = None,
                 initial: float = 0.0, sensor=None):
        super().__init__()
        self.smoother = TiltSmoother(config, initial)
        self._on_level = on_level
        self._sensor = sensor
        self.readings = 0

    def start(self) -> bool:
        """Connect to the platform accelerometer. Returns False when there is none."""
        if self._sensor is None:
            from PyQt6.QtSensors import QAccelerometer
            self._sensor = QAccelerometer(self)
        self._sensor.readingChanged.connect(self._on_reading)
        if not self._sensor.connectToBackend():
            log_event("WARN", "Tilt", "No accelerometer available, tilt input disabled")
            return False
        self._sensor.start()
        log_event("INFO", "Tilt", "Accelerometer started")
        return True

    def stop(self) -> None:
        if self._sensor is not None:
            self._sensor.stop()

    def reset(self, level: float) -> None:
        self.smoother.reset(level)

    def _on_reading(self) -> None:
        reading = self._sensor.reading()
        if reading is None:
            return
        self.readings += 1
        level = self.smoother.feed(reading.x(), reading.y(), reading.z())
        if level is not None:
            self._on_level(level)
