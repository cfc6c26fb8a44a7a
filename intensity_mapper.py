import math
from typing import Optional

from config import MapperConfig

INTENSITY_MIN = 0.0
INTENSITY_MAX = 100.0


def clamp_intensity(value: float) -> float:
    """Clamp a meter reading to [0, 100]. NaN reads as 0."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return INTENSITY_MIN
    if math.isnan(value):
        return INTENSITY_MIN
    return max(INTENSITY_MIN, min(INTENSITY_MAX, value))


class IntensityMapper:
    """
    Maps intensity (0-100) onto the two audio controls:
    - click rate (Hz): super-linear, crackle at the bottom, near-continuous at the top
    - undertone level: beep layer gain, inaudible below ~30% and dominant near 100%
    """

    def __init__(self, config: Optional[MapperConfig] = None):
        self.config = config or MapperConfig()

    def map_rate(self, intensity: float) -> float:
        cfg = self.config
        value = clamp_intensity(intensity)
        if value <= 0:
            return cfg.idle_rate_hz
        return cfg.idle_rate_hz + value ** cfg.rate_exponent / cfg.rate_divisor

    def map_undertone_level(self, intensity: float) -> float:
        cfg = self.config
        normalized = clamp_intensity(intensity) / INTENSITY_MAX
        level = normalized ** cfg.undertone_exponent * cfg.undertone_max
        return max(0.0, min(cfg.undertone_max, level))
