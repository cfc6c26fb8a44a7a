#!/usr/bin/env python3
"""
Geiger Meter - radiation-counter style click meter

Sonifies a 0-100 level as a randomized click stream. Run with no arguments
for the slider window, or --headless to just play a fixed level. --tilt lets
the device accelerometer drive the level.
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QCoreApplication, Qt, QTimer
from PyQt6.QtWidgets import (
    QApplication,
    QLabel,
    QPushButton,
    QSlider,
    QVBoxLayout,
    QWidget,
)

from config import Config, TiltConfig
from config_loader import load_config
from geiger_engine import GeigerEngine
from intensity_mapper import clamp_intensity
import list_audio_devices
from logging_utils import log_event, set_log_level
from meter_status import SEGMENT_COUNT, active_segments, meter_status, segment_color
from tilt_sensor import AccelerometerTilt

POWER_ON_LEVEL = 10.0
SLIDER_STEPS_PER_UNIT = 2  # 0.5 resolution


class MeterWindow(QWidget):
    """Minimal host UI: power toggle, level slider, status readout."""

    def __init__(self, engine: GeigerEngine, tilt_config: Optional[TiltConfig] = None):
        super().__init__()
        self.engine = engine
        self.tilt: Optional[AccelerometerTilt] = None
        self.setWindowTitle("Geiger Meter")

        self.power_button = QPushButton("Initialize System")
        self.power_button.setCheckable(True)
        self.power_button.toggled.connect(self._on_power_toggled)

        self.slider = QSlider(Qt.Orientation.Horizontal)
        self.slider.setRange(0, 100 * SLIDER_STEPS_PER_UNIT)
        self.slider.setEnabled(False)
        self.slider.valueChanged.connect(self._on_slider_changed)

        self.level_label = QLabel()
        self.bar_label = QLabel()
        self.bar_label.setTextFormat(Qt.TextFormat.RichText)

        layout = QVBoxLayout(self)
        layout.addWidget(self.power_button)
        layout.addWidget(self.slider)
        layout.addWidget(self.bar_label)
        layout.addWidget(self.level_label)

        self._refresh()

        if tilt_config is not None:
            self.tilt = AccelerometerTilt(self._on_tilt_level, tilt_config)
            if not self.tilt.start():
                self.tilt = None

    def _set_level(self, level: float) -> None:
        level = clamp_intensity(level)
        self.slider.blockSignals(True)
        self.slider.setValue(int(round(level * SLIDER_STEPS_PER_UNIT)))
        self.slider.blockSignals(False)
        self.engine.set_intensity(level)
        self._refresh()

    def _on_power_toggled(self, on: bool) -> None:
        self.power_button.setText("De-initialize" if on else "Initialize System")
        self.slider.setEnabled(on)
        level = POWER_ON_LEVEL if on else 0.0
        if self.tilt is not None:
            self.tilt.reset(level)
        self._set_level(level)
        self.engine.set_enabled(on)
        self._refresh()

    def _on_slider_changed(self, value: int) -> None:
        self.engine.set_intensity(value / SLIDER_STEPS_PER_UNIT)
        self._refresh()

    def _on_tilt_level(self, level: float) -> None:
        if self.engine.enabled:
            self._set_level(level)

    def _refresh(self) -> None:
        if not self.engine.enabled:
            self.level_label.setText("System Offline  --")
            self.bar_label.setText("")
            return
        level = self.engine.intensity
        lit = active_segments(level)
        cells = "".join(
            f'<span style="color:{segment_color(i) if i < lit else "gray"}">&#9646;</span>'
            for i in range(SEGMENT_COUNT)
        )
        self.bar_label.setText(cells)
        self.level_label.setText(
            f"{level:.1f}%  {meter_status(level).value}  ({self.engine.rate_hz:.1f} clicks/s)"
        )

    def closeEvent(self, event) -> None:
        if self.tilt is not None:
            self.tilt.stop()
        self.engine.dispose()
        super().closeEvent(event)


def run_gui(engine: GeigerEngine, tilt_config: Optional[TiltConfig] = None) -> int:
    app = QApplication([sys.argv[0]])
    app.setStyle("Fusion")
    window = MeterWindow(engine, tilt_config)
    window.show()
    return app.exec()


def run_headless(engine: GeigerEngine, intensity: float, seconds: float,
                 tilt_config: Optional[TiltConfig] = None) -> int:
    app = QCoreApplication([sys.argv[0]])
    engine.set_intensity(intensity)
    engine.set_enabled(True)
    if engine.is_unsupported:
        log_event("ERROR", "App", "No audio output available")
        return 1

    tilt = None
    if tilt_config is not None:
        tilt = AccelerometerTilt(engine.set_intensity, tilt_config, initial=engine.intensity)
        tilt.start()

    def _finish():
        if tilt is not None:
            tilt.stop()
        engine.dispose()
        app.quit()

    QTimer.singleShot(int(seconds * 1000), _finish)
    return app.exec()


def build_engine(config: Config) -> GeigerEngine:
    set_log_level(config.log_level)
    return GeigerEngine(config)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the Geiger meter")
    parser.add_argument("--config", type=Path, default=None,
                        help="Path to a JSON config file (default: ~/.geigermeter/config.json)")
    parser.add_argument("--log-level", default=None,
                        help="Override log level (DEBUG/INFO/WARNING/ERROR)")
    parser.add_argument("--list-devices", action="store_true",
                        help="List audio output devices and exit")
    parser.add_argument("--tilt", action="store_true",
                        help="Drive the level from the device accelerometer")
    parser.add_argument("--headless", action="store_true",
                        help="No window; play --intensity for --seconds")
    parser.add_argument("--intensity", type=float, default=50.0,
                        help="Level for --headless mode (0-100, default: 50)")
    parser.add_argument("--seconds", type=float, default=10.0,
                        help="Duration for --headless mode (default: 10)")
    args = parser.parse_args()

    if args.list_devices:
        sys.exit(list_audio_devices.main())

    config = load_config(args.config)
    engine = build_engine(config)
    if args.log_level:
        set_log_level(args.log_level)
    tilt_config = engine.config.tilt if args.tilt else None

    if args.headless:
        exit_code = run_headless(engine, args.intensity, args.seconds, tilt_config)
    else:
        exit_code = run_gui(engine, tilt_config)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
