"""Motion-sensor input: turns a gravity vector into a meter level.

Holding the device upright reads 0; tilting it toward flat raises the level,
reaching 100 at ``max_tilt_threshold``.
"""

import math
from typing import Optional

from config import TiltConfig
from intensity_mapper import clamp_intensity


def tilt_to_intensity(x: Optional[float], y: Optional[float], z: Optional[float],
                      config: Optional[TiltConfig] = None) -> Optional[float]:
    """Target level for an acceleration-including-gravity reading, or None to ignore it."""
    cfg = config or TiltConfig()
    if x is None or y is None or z is None:
        return None

    total = math.sqrt(x * x + y * y + z * z)
    if total < cfg.min_total_accel:
        return None

    upright = abs(y / total)
    tilt = 1.0 - upright
    return clamp_intensity(tilt / cfg.max_tilt_threshold * 100.0)


class TiltSmoother:
    """Exponential smoothing of sensor targets with a publish threshold."""

    def __init__(self, config: Optional[TiltConfig] = None, initial: float = 0.0):
        self.config = config or TiltConfig()
        self.level = clamp_intensity(initial)
        self.published = round(self.level, 1)

    def update(self, target: float) -> float:
        self.level += (clamp_intensity(target) - self.level) * self.config.smoothing_factor
        return self.level

    def publish(self) -> Optional[float]:
        """Rounded level if it moved enough since the last publish, else None."""
        if abs(self.level - self.published) <= self.config.publish_delta:
            return None
        self.published = round(self.level, 1)
        return self.published

    def reset(self, level: float) -> None:
        self.level = clamp_intensity(level)
        self.published = round(self.level, 1)

    def feed(self, x: Optional[float], y: Optional[float], z: Optional[float]) -> Optional[float]:
        """Smooth one accelerometer reading in; returns a level worth publishing, or None."""
        target = tilt_to_intensity(x, y, z, self.config)
        if target is None:
            return None
        self.update(target)
        return self.publish()
